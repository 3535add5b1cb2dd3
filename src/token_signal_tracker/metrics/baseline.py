"""Entry baseline resolution.

Fallback order:
1. Entry values stored on the signal.
2. Derive the missing one of price / supply / market cap when the other
   two are known.
3. The first price sample's price and market cap, then step 2 again.
"""

from __future__ import annotations

import logging

from token_signal_tracker.metrics.models import Baseline, BaselineSource
from token_signal_tracker.storage.repos import PriceSampleDTO, SignalDTO

logger = logging.getLogger(__name__)


class MissingBaselineError(Exception):
    """Raised when neither an entry price nor an entry market cap can be established."""

    def __init__(self, signal_id: int | None, mint: str) -> None:
        super().__init__(f"Insufficient baseline for signal {signal_id} ({mint})")
        self.signal_id = signal_id
        self.mint = mint


def _positive(value: float | None) -> float | None:
    if value is None or value <= 0:
        return None
    return value


def _derive(
    price: float | None, supply: float | None, market_cap: float | None
) -> tuple[float | None, float | None, float | None, bool]:
    derived = False
    if price is None and market_cap is not None and supply is not None:
        price = market_cap / supply
        derived = True
    if supply is None and market_cap is not None and price is not None:
        supply = market_cap / price
        derived = True
    if market_cap is None and price is not None and supply is not None:
        market_cap = price * supply
        derived = True
    return price, supply, market_cap, derived


def resolve_baseline(
    signal: SignalDTO, first_sample: PriceSampleDTO | None = None
) -> Baseline | None:
    """Resolve the entry baseline for a signal.

    Returns:
        The baseline, or None when neither a price nor a market cap can be
        established. Callers skip the signal for this cycle.
    """
    price = _positive(signal.entry_price)
    supply = _positive(signal.entry_supply)
    market_cap = _positive(signal.entry_market_cap)

    price, supply, market_cap, derived = _derive(price, supply, market_cap)
    source = BaselineSource.DERIVED if derived else BaselineSource.SIGNAL

    if price is None and market_cap is None and first_sample is not None:
        price = _positive(first_sample.price)
        market_cap = _positive(first_sample.market_cap)
        price, supply, market_cap, _ = _derive(price, supply, market_cap)
        source = BaselineSource.FIRST_SAMPLE

    if price is None and market_cap is None:
        logger.debug("No baseline for signal %s (%s)", signal.id, signal.mint)
        return None

    return Baseline(
        entry_at=signal.entry_time,
        price=price,
        market_cap=market_cap,
        supply=supply,
        source=source,
    )


def require_baseline(signal: SignalDTO, first_sample: PriceSampleDTO | None = None) -> Baseline:
    """Like ``resolve_baseline`` but raises ``MissingBaselineError``."""
    baseline = resolve_baseline(signal, first_sample)
    if baseline is None:
        raise MissingBaselineError(signal.id, signal.mint)
    return baseline
