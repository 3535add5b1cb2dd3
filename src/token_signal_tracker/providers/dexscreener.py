"""DexScreener client for spot quotes and token metadata."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import aiohttp

from token_signal_tracker.providers.http import JsonHttpClient, ProviderNotFoundError
from token_signal_tracker.providers.models import PriceQuote, TokenMeta

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.dexscreener.com/latest/dex"
DEFAULT_REQUESTS_PER_SECOND = 4.0
SOURCE_NAME = "dexscreener"


def _positive_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if f > 0 else None


def _pair_liquidity(pair: dict[str, Any]) -> float:
    liquidity = pair.get("liquidity") or {}
    return _positive_float(liquidity.get("usd")) or 0.0


class DexScreenerClient(JsonHttpClient):
    """Reads the most liquid DexScreener pair for a token."""

    name = SOURCE_NAME

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        requests_per_second: float = DEFAULT_REQUESTS_PER_SECOND,
        timeout_seconds: float = 15.0,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
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

    async def get_pairs(self, mint: str) -> list[dict[str, Any]]:
        """Return all pairs for a token, most liquid first."""
        data = await self._request_json(f"/tokens/{mint}")
        pairs = data.get("pairs") if isinstance(data, dict) else None
        if not pairs:
            return []
        return sorted(pairs, key=_pair_liquidity, reverse=True)

    async def get_best_pair(self, mint: str) -> dict[str, Any]:
        pairs = await self.get_pairs(mint)
        if not pairs:
            raise ProviderNotFoundError(f"dexscreener: no pairs for {mint}")
        return pairs[0]

    async def get_pool_address(self, mint: str) -> str | None:
        pairs = await self.get_pairs(mint)
        for pair in pairs:
            address = pair.get("pairAddress") or pair.get("address")
            if address:
                return str(address)
        return None

    async def get_quote(self, mint: str) -> PriceQuote:
        pair = await self.get_best_pair(mint)
        price = _positive_float(pair.get("priceUsd"))
        if price is None:
            raise ProviderNotFoundError(f"dexscreener: no USD price for {mint}")
        return PriceQuote(price=price, source=SOURCE_NAME, timestamp=datetime.now(UTC))

    async def get_token_meta(self, mint: str) -> TokenMeta:
        pair = await self.get_best_pair(mint)
        price = _positive_float(pair.get("priceUsd"))
        market_cap = _positive_float(pair.get("marketCap"))
        fdv = _positive_float(pair.get("fdv"))

        # fdv = total supply * price
        supply: float | None = None
        if fdv is not None and price is not None:
            supply = fdv / price
        elif market_cap is not None and price is not None:
            supply = market_cap / price

        volume = pair.get("volume") or {}
        base_token = pair.get("baseToken") or {}
        return TokenMeta(
            supply=supply,
            market_cap=market_cap or fdv,
            live_market_cap=market_cap,
            volume_24h=_positive_float(volume.get("h24")),
            liquidity=_positive_float((pair.get("liquidity") or {}).get("usd")),
            symbol=base_token.get("symbol"),
            name=base_token.get("name"),
            source=SOURCE_NAME,
        )
