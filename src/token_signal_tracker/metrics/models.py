"""Data models for the metrics engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from token_signal_tracker.providers.models import Resolution
from token_signal_tracker.storage.repos import SignalMetricsDTO

# Multiples whose first-reach time is kept on the snapshot.
SNAPSHOT_MULTIPLES = (2, 3, 5, 10)


def seconds(delta: timedelta) -> int:
    """Whole seconds of a non-negative duration."""
    return max(int(delta.total_seconds()), 0)


class BaselineSource(str, Enum):
    """Which fallback step produced a baseline."""

    SIGNAL = "signal"
    DERIVED = "derived"
    FIRST_SAMPLE = "first_sample"


@dataclass(frozen=True)
class Baseline:
    """Entry reference values for a signal.

    At least one of ``price`` / ``market_cap`` is set.
    """

    entry_at: datetime
    price: float | None
    market_cap: float | None
    supply: float | None
    source: BaselineSource

    def market_cap_at(self, price: float | None) -> float | None:
        """Market cap equivalent of a price, via supply or proportional scaling."""
        if price is None:
            return None
        if self.supply:
            return price * self.supply
        if self.market_cap and self.price:
            return self.market_cap * (price / self.price)
        return None

    def price_multiple(self, price: float | None) -> float | None:
        if price is None or not self.price:
            return None
        return price / self.price

    def market_cap_multiple(self, market_cap: float | None) -> float | None:
        if market_cap is None or not self.market_cap:
            return None
        return market_cap / self.market_cap


@dataclass(frozen=True)
class PriceObservation:
    """A live price (and optional market cap) seen at a point in time."""

    price: float
    observed_at: datetime
    provider: str
    market_cap: float | None = None


@dataclass(frozen=True)
class TierWindow:
    """One boundary-aligned candle fetch: ``[start, end)`` at ``resolution``."""

    resolution: Resolution
    start: datetime
    end: datetime
    limit: int

    def contains(self, ts: datetime) -> bool:
        """True if a candle starting at ``ts`` starts inside the window."""
        return self.start <= ts < self.end


@dataclass(frozen=True)
class AthResult:
    """Output of one ATH/drawdown computation."""

    entry_price: float
    entry_at: datetime
    ath_price: float
    ath_at: datetime
    ath_multiple: float
    ath_market_cap: float | None
    max_drawdown: float
    max_drawdown_price: float
    max_drawdown_at: datetime
    max_drawdown_market_cap: float | None
    time_to_ath: timedelta
    time_to_drawdown: timedelta
    time_from_drawdown_to_ath: timedelta | None
    time_to_multiples: dict[int, timedelta]
    current_price: float | None
    current_multiple: float | None
    current_market_cap: float | None
    candle_count: int
    failed_tiers: tuple[Resolution, ...] = ()

    def to_metrics(self, signal_id: int, *, updated_at: datetime) -> SignalMetricsDTO:
        """Snapshot row for this result."""
        time_to = {m: seconds(d) for m, d in self.time_to_multiples.items()}
        return SignalMetricsDTO(
            signal_id=signal_id,
            current_price=self.current_price,
            current_market_cap=self.current_market_cap,
            current_multiple=self.current_multiple,
            ath_price=self.ath_price,
            ath_market_cap=self.ath_market_cap,
            ath_multiple=self.ath_multiple,
            ath_at=self.ath_at,
            max_drawdown=self.max_drawdown,
            max_drawdown_price=self.max_drawdown_price,
            max_drawdown_market_cap=self.max_drawdown_market_cap,
            max_drawdown_at=self.max_drawdown_at,
            time_to_ath_seconds=seconds(self.time_to_ath),
            time_to_drawdown_seconds=seconds(self.time_to_drawdown),
            time_from_drawdown_to_ath_seconds=(
                seconds(self.time_from_drawdown_to_ath)
                if self.time_from_drawdown_to_ath is not None
                else None
            ),
            time_to_2x_seconds=time_to.get(2),
            time_to_3x_seconds=time_to.get(3),
            time_to_5x_seconds=time_to.get(5),
            time_to_10x_seconds=time_to.get(10),
            updated_at=updated_at,
        )


class GateReason(str, Enum):
    """Why the recompute gate decided as it did."""

    FORCED = "forced"
    NO_METRICS = "no_metrics"
    FRESH = "fresh"
    INACTIVE = "inactive"
    DEAD_COLLAPSED = "dead_collapsed"
    DEAD_NEVER_PUMPED = "dead_never_pumped"
    NEW_PEAK = "new_peak"
    NEAR_PEAK = "near_peak"
    STALE = "stale"
    NO_CHANGE = "no_change"


@dataclass(frozen=True)
class GateDecision:
    recompute: bool
    reason: GateReason
