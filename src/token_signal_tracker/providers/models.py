"""Data models returned by market data providers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum


class Resolution(str, Enum):
    """Candle resolution."""

    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"

    @property
    def step(self) -> timedelta:
        """Duration covered by one candle."""
        if self is Resolution.MINUTE:
            return timedelta(minutes=1)
        if self is Resolution.HOUR:
            return timedelta(hours=1)
        return timedelta(days=1)


@dataclass(frozen=True)
class Candle:
    """One OHLCV bucket. Only high and low are guaranteed."""

    timestamp: datetime
    high: float
    low: float
    open: float | None = None
    close: float | None = None
    volume: float | None = None

    @classmethod
    def from_ohlcv_row(cls, row: list[float] | tuple[float, ...]) -> Candle:
        """Build a candle from a ``[ts_seconds, o, h, l, c, v]`` row."""
        ts, open_, high, low, close = row[:5]
        volume = row[5] if len(row) > 5 else None
        return cls(
            timestamp=datetime.fromtimestamp(float(ts), tz=UTC),
            high=float(high),
            low=float(low),
            open=float(open_) if open_ is not None else None,
            close=float(close) if close is not None else None,
            volume=float(volume) if volume is not None else None,
        )


@dataclass(frozen=True)
class PriceQuote:
    """Spot USD price for a token."""

    price: float
    source: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class TokenMeta:
    """Token metadata used for market-cap and activity calculations.

    ``live_market_cap`` is the circulating market cap reported by the venue;
    ``market_cap`` falls back to the fully diluted value when the venue does
    not report a circulating one.
    """

    supply: float | None = None
    market_cap: float | None = None
    live_market_cap: float | None = None
    volume_24h: float | None = None
    liquidity: float | None = None
    symbol: str | None = None
    name: str | None = None
    source: str | None = None

    @property
    def best_market_cap(self) -> float | None:
        return self.live_market_cap or self.market_cap
