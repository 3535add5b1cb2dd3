"""Redis-backed cache of recorded threshold crossings.

The ``threshold_events`` table is the source of truth. This cache only
saves a query per observation; a miss or a Redis error falls back to the
table, and the set is rebuilt from it on demand.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "tokensignal:thresholds:"
DEFAULT_TTL_SECONDS = 7 * 24 * 3600


@dataclass(frozen=True)
class HitCacheConfig:
    key_prefix: str = DEFAULT_KEY_PREFIX
    ttl_seconds: int = DEFAULT_TTL_SECONDS


def _member(multiplier: float, basis: str) -> str:
    return f"{multiplier:g}:{basis}"


def _parse_member(raw: bytes | str) -> tuple[float, str] | None:
    text = raw.decode() if isinstance(raw, bytes) else raw
    multiplier, _, basis = text.partition(":")
    try:
        return float(multiplier), basis
    except ValueError:
        return None


class ThresholdHitCache:
    """Per-signal Redis set of ``multiplier:basis`` members."""

    def __init__(self, redis: Redis, *, config: HitCacheConfig | None = None) -> None:
        self._redis = redis
        self._config = config or HitCacheConfig()

    def _key(self, signal_id: int) -> str:
        return f"{self._config.key_prefix}{signal_id}"

    async def get_recorded(self, signal_id: int) -> set[tuple[float, str]] | None:
        """Cached (multiplier, basis) pairs, or None on a miss or Redis error."""
        try:
            members = await self._redis.smembers(self._key(signal_id))
        except RedisError as e:
            logger.warning("Threshold cache read failed for signal %d: %s", signal_id, e)
            return None
        if not members:
            return None
        parsed = (_parse_member(m) for m in members)
        return {p for p in parsed if p is not None}

    async def add(self, signal_id: int, multiplier: float, basis: str) -> None:
        key = self._key(signal_id)
        try:
            await self._redis.sadd(key, _member(multiplier, basis))
            await self._redis.expire(key, self._config.ttl_seconds)
        except RedisError as e:
            logger.warning("Threshold cache write failed for signal %d: %s", signal_id, e)

    async def warm(self, signal_id: int, recorded: set[tuple[float, str]]) -> None:
        """Replace the cached set with the pairs read from the table."""
        if not recorded:
            return
        key = self._key(signal_id)
        try:
            await self._redis.delete(key)
            await self._redis.sadd(key, *(_member(m, b) for m, b in recorded))
            await self._redis.expire(key, self._config.ttl_seconds)
        except RedisError as e:
            logger.warning("Threshold cache warm failed for signal %d: %s", signal_id, e)
