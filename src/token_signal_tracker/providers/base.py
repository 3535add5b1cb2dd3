"""Market data provider interface."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from token_signal_tracker.providers.models import Candle, PriceQuote, Resolution, TokenMeta


@runtime_checkable
class MarketDataProvider(Protocol):
    """Source of quotes, token metadata and candles.

    Implementations raise ``ProviderError`` (or a subclass) on failure.
    ``get_ohlcv`` returns candles in ascending timestamp order, at most
    ``limit`` of them, ending at ``before`` when given (else at now).
    """

    @property
    def max_ohlcv_limit(self) -> int: ...

    async def get_quote(self, mint: str) -> PriceQuote: ...

    async def get_token_meta(self, mint: str) -> TokenMeta: ...

    async def get_ohlcv(
        self,
        mint: str,
        resolution: Resolution,
        limit: int,
        *,
        before: datetime | None = None,
    ) -> list[Candle]: ...

    async def close(self) -> None: ...
