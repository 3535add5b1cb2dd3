"""Tests for the Redis threshold hit cache."""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from token_signal_tracker.metrics.hit_cache import HitCacheConfig, ThresholdHitCache


@pytest.fixture
def redis() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def cache(redis: AsyncMock) -> ThresholdHitCache:
    return ThresholdHitCache(redis, config=HitCacheConfig(key_prefix="test:", ttl_seconds=60))


class TestThresholdHitCache:
    @pytest.mark.asyncio
    async def test_get_recorded_parses_members(self, cache: ThresholdHitCache, redis: AsyncMock) -> None:
        redis.smembers.return_value = {b"2:price", b"2.5:market_cap", b"junk:price"}
        assert await cache.get_recorded(7) == {(2.0, "price"), (2.5, "market_cap")}
        redis.smembers.assert_awaited_once_with("test:7")

    @pytest.mark.asyncio
    async def test_empty_set_is_a_miss(self, cache: ThresholdHitCache, redis: AsyncMock) -> None:
        redis.smembers.return_value = set()
        assert await cache.get_recorded(7) is None

    @pytest.mark.asyncio
    async def test_redis_error_is_a_miss(self, cache: ThresholdHitCache, redis: AsyncMock) -> None:
        redis.smembers.side_effect = RedisConnectionError("refused")
        assert await cache.get_recorded(7) is None

    @pytest.mark.asyncio
    async def test_add_sets_ttl(self, cache: ThresholdHitCache, redis: AsyncMock) -> None:
        await cache.add(7, 10.0, "price")
        redis.sadd.assert_awaited_once_with("test:7", "10:price")
        redis.expire.assert_awaited_once_with("test:7", 60)

    @pytest.mark.asyncio
    async def test_add_swallows_redis_error(self, cache: ThresholdHitCache, redis: AsyncMock) -> None:
        redis.sadd.side_effect = RedisConnectionError("refused")
        await cache.add(7, 2.0, "price")
        redis.expire.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_warm_replaces_set(self, cache: ThresholdHitCache, redis: AsyncMock) -> None:
        await cache.warm(7, {(2.0, "price")})
        redis.delete.assert_awaited_once_with("test:7")
        redis.sadd.assert_awaited_once_with("test:7", "2:price")

    @pytest.mark.asyncio
    async def test_warm_with_nothing_is_noop(self, cache: ThresholdHitCache, redis: AsyncMock) -> None:
        await cache.warm(7, set())
        redis.delete.assert_not_awaited()
