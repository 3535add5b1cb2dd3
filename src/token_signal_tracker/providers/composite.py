"""Provider that routes quotes/metadata and candles to different sources."""

from __future__ import annotations

from datetime import datetime

from token_signal_tracker.config import ProviderSettings
from token_signal_tracker.providers.dexscreener import DexScreenerClient
from token_signal_tracker.providers.gecko_terminal import GeckoTerminalClient
from token_signal_tracker.providers.models import Candle, PriceQuote, Resolution, TokenMeta


class CompositeProvider:
    """Quotes and metadata from DexScreener, candles from GeckoTerminal."""

    def __init__(self, quotes: DexScreenerClient, candles: GeckoTerminalClient) -> None:
        self._quotes = quotes
        self._candles = candles

    @classmethod
    def from_settings(cls, settings: ProviderSettings) -> CompositeProvider:
        dexscreener = DexScreenerClient(
            base_url=settings.dexscreener_base_url,
            requests_per_second=settings.dexscreener_requests_per_second,
            timeout_seconds=settings.timeout_seconds,
            max_retries=settings.max_retries,
        )
        gecko = GeckoTerminalClient(
            base_url=settings.geckoterminal_base_url,
            network=settings.network,
            pool_fallback=dexscreener,
            requests_per_second=settings.requests_per_second,
            timeout_seconds=settings.timeout_seconds,
            max_retries=settings.max_retries,
            max_ohlcv_limit=settings.max_ohlcv_limit,
        )
        return cls(dexscreener, gecko)

    @property
    def max_ohlcv_limit(self) -> int:
        return self._candles.max_ohlcv_limit

    async def get_quote(self, mint: str) -> PriceQuote:
        return await self._quotes.get_quote(mint)

    async def get_token_meta(self, mint: str) -> TokenMeta:
        return await self._quotes.get_token_meta(mint)

    async def get_ohlcv(
        self,
        mint: str,
        resolution: Resolution,
        limit: int,
        *,
        before: datetime | None = None,
    ) -> list[Candle]:
        return await self._candles.get_ohlcv(mint, resolution, limit, before=before)

    async def close(self) -> None:
        await self._candles.close()
        await self._quotes.close()
