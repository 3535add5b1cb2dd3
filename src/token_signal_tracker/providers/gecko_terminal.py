"""GeckoTerminal client for OHLCV candles.

Candles are served per pool, so every request first resolves the token's
top pool (GeckoTerminal pool search, falling back to the most liquid
DexScreener pair). Resolved pools are cached for the client's lifetime.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import aiohttp

from token_signal_tracker.providers.dexscreener import DexScreenerClient
from token_signal_tracker.providers.http import (
    JsonHttpClient,
    ProviderError,
    ProviderNotFoundError,
)
from token_signal_tracker.providers.models import Candle, Resolution

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.geckoterminal.com/api/v2"
DEFAULT_NETWORK = "solana"
DEFAULT_REQUESTS_PER_SECOND = 0.5  # public API allows 30 calls/minute
MAX_OHLCV_LIMIT = 1000
SOURCE_NAME = "geckoterminal"


def parse_ohlcv_list(payload: Any) -> list[Candle]:
    """Extract candles from an OHLCV response, oldest first.

    GeckoTerminal returns ``data.attributes.ohlcv_list`` newest first as
    ``[timestamp_seconds, open, high, low, close, volume]`` rows.
    """
    try:
        rows = payload["data"]["attributes"]["ohlcv_list"]
    except (KeyError, TypeError):
        raise ProviderError("geckoterminal: unexpected OHLCV response shape") from None
    if not isinstance(rows, list):
        raise ProviderError("geckoterminal: unexpected OHLCV response shape")

    candles: list[Candle] = []
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) < 5:
            logger.debug("Skipping malformed OHLCV row: %r", row)
            continue
        candles.append(Candle.from_ohlcv_row(row))
    candles.sort(key=lambda c: c.timestamp)
    return candles


class GeckoTerminalClient(JsonHttpClient):
    """OHLCV source backed by the GeckoTerminal public API."""

    name = SOURCE_NAME

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        network: str = DEFAULT_NETWORK,
        pool_fallback: DexScreenerClient | None = None,
        requests_per_second: float = DEFAULT_REQUESTS_PER_SECOND,
        timeout_seconds: float = 15.0,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        max_ohlcv_limit: int = MAX_OHLCV_LIMIT,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__(
            base_url,
            requests_per_second=requests_per_second,
            timeout_seconds=timeout_seconds,
            max_retries=max_retries,
            retry_base_delay=retry_base_delay,
            session=session,
        )
        self._network = network
        self._pool_fallback = pool_fallback
        self._max_ohlcv_limit = min(max_ohlcv_limit, MAX_OHLCV_LIMIT)
        self._pools: dict[str, str] = {}

        logger.info(
            "Initialized GeckoTerminalClient with network=%s, rate_limit=%.2f req/s",
            network,
            requests_per_second,
        )

    @property
    def max_ohlcv_limit(self) -> int:
        return self._max_ohlcv_limit

    async def get_top_pool(self, mint: str) -> str | None:
        """Resolve the pool to read candles from, or None if the token has none."""
        cached = self._pools.get(mint)
        if cached:
            return cached

        pool: str | None = None
        try:
            data = await self._request_json(
                f"/networks/{self._network}/tokens/{mint}/pools",
                params={"page": 1},
            )
            pools = data.get("data") if isinstance(data, dict) else None
            if pools:
                pool = (pools[0].get("attributes") or {}).get("address")
        except ProviderNotFoundError:
            pool = None
        except ProviderError as e:
            logger.debug("GeckoTerminal pool lookup failed for %s: %s", mint, e)

        if not pool and self._pool_fallback is not None:
            try:
                pool = await self._pool_fallback.get_pool_address(mint)
            except ProviderError as e:
                logger.debug("DexScreener pool lookup failed for %s: %s", mint, e)
            if pool:
                logger.debug("Using DexScreener pool for %s: %s", mint, pool)

        if pool:
            self._pools[mint] = pool
        return pool

    async def get_ohlcv(
        self,
        mint: str,
        resolution: Resolution,
        limit: int,
        *,
        before: datetime | None = None,
    ) -> list[Candle]:
        """Fetch up to ``limit`` candles ending at ``before`` (default: now).

        Raises:
            ProviderNotFoundError: If no pool exists for the token.
            ProviderError: On any other provider failure.
        """
        pool = await self.get_top_pool(mint)
        if not pool:
            raise ProviderNotFoundError(f"geckoterminal: no pool for {mint}")

        params: dict[str, Any] = {
            "aggregate": 1,
            "limit": max(1, min(limit, self._max_ohlcv_limit)),
            "currency": "usd",
        }
        if before is not None:
            params["before_timestamp"] = int(before.timestamp())

        payload = await self._request_json(
            f"/networks/{self._network}/pools/{pool}/ohlcv/{resolution.value}",
            params=params,
        )
        candles = parse_ohlcv_list(payload)
        logger.debug("Fetched %d %s candles for %s", len(candles), resolution.value, mint)
        return candles
