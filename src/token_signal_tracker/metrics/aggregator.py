"""ATH and pre-ATH drawdown reconstruction from tiered candles.

This module provides the AthDrawdownAggregator that fetches minute, hour
and day candles for the boundary-aligned windows between entry and now,
merges them, and derives the all-time-high, the deepest dip before it
and the time-to-multiple statistics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from token_signal_tracker.metrics.models import SNAPSHOT_MULTIPLES, AthResult, Baseline, TierWindow
from token_signal_tracker.metrics.tiers import DEFAULT_MAX_LIMIT, plan_tiers
from token_signal_tracker.providers.base import MarketDataProvider
from token_signal_tracker.providers.models import Candle, Resolution

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandleSet:
    """Merged in-window candles from all tiers, oldest first."""

    candles: list[Candle]
    failed_tiers: tuple[Resolution, ...] = ()


def merge_tier_candles(windows: list[tuple[TierWindow, list[Candle]]]) -> list[Candle]:
    """Keep each tier's in-window candles and merge them by timestamp."""
    merged: list[Candle] = []
    for window, candles in windows:
        merged.extend(c for c in candles if window.contains(c.timestamp))
    merged.sort(key=lambda c: c.timestamp)
    return merged


def compute_ath_drawdown(
    candles: list[Candle],
    *,
    baseline: Baseline,
    now: datetime,
    current_price: float | None = None,
    stored_ath_price: float | None = None,
    stored_ath_at: datetime | None = None,
    multiples: tuple[int, ...] = SNAPSHOT_MULTIPLES,
    failed_tiers: tuple[Resolution, ...] = (),
) -> AthResult | None:
    """Derive ATH, drawdown and time statistics from merged candles.

    Candles that start before entry are ignored. Returns None when no
    candle remains: the stored ATH (if any) is left as it is and nothing
    is derived from a lone live price.
    """
    if not baseline.price:
        return None

    entry_price = baseline.price
    entry_at = baseline.entry_at
    ordered = sorted((c for c in candles if c.timestamp >= entry_at), key=lambda c: c.timestamp)
    if not ordered:
        return None

    ath_price = entry_price
    ath_at = entry_at
    for candle in ordered:
        if candle.high > ath_price:
            ath_price = candle.high
            ath_at = candle.timestamp

    if current_price is not None and current_price > ath_price:
        ath_price = current_price
        ath_at = now

    if stored_ath_price is not None and stored_ath_price > ath_price:
        ath_price = stored_ath_price
        ath_at = stored_ath_at or ath_at

    # Deepest low from entry up to and including the peak candle.
    drawdown_price = entry_price
    drawdown_at = entry_at
    in_range = [c for c in ordered if entry_at <= c.timestamp <= ath_at]
    for candle in in_range:
        if candle.low < drawdown_price:
            drawdown_price = candle.low
            drawdown_at = candle.timestamp
    if not in_range and current_price is not None and current_price < entry_price:
        drawdown_price = current_price
        drawdown_at = now

    time_to_multiples: dict[int, timedelta] = {}
    for multiple in multiples:
        target = entry_price * multiple
        for candle in ordered:
            if candle.high >= target:
                time_to_multiples[multiple] = max(candle.timestamp - entry_at, timedelta(0))
                break

    return AthResult(
        entry_price=entry_price,
        entry_at=entry_at,
        ath_price=ath_price,
        ath_at=ath_at,
        ath_multiple=ath_price / entry_price,
        ath_market_cap=baseline.market_cap_at(ath_price),
        max_drawdown=(drawdown_price - entry_price) / entry_price,
        max_drawdown_price=drawdown_price,
        max_drawdown_at=drawdown_at,
        max_drawdown_market_cap=baseline.market_cap_at(drawdown_price),
        time_to_ath=ath_at - entry_at,
        time_to_drawdown=drawdown_at - entry_at,
        time_from_drawdown_to_ath=(
            ath_at - drawdown_at if drawdown_at <= ath_at else ath_at - entry_at
        ),
        time_to_multiples=time_to_multiples,
        current_price=current_price,
        current_multiple=baseline.price_multiple(current_price),
        current_market_cap=baseline.market_cap_at(current_price),
        candle_count=len(ordered),
        failed_tiers=failed_tiers,
    )


class AthDrawdownAggregator:
    """Fetches tiered candles and computes ATH/drawdown metrics.

    Example:
        ```python
        aggregator = AthDrawdownAggregator(provider)
        result = await aggregator.compute(
            signal_id=signal.id,
            mint=signal.mint,
            baseline=baseline,
            now=datetime.now(UTC),
            current_price=quote.price,
        )
        if result is None:
            ...  # no candles: keep the stored snapshot
        ```
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        *,
        max_limit: int | None = None,
        multiples: tuple[int, ...] = SNAPSHOT_MULTIPLES,
    ) -> None:
        self._provider = provider
        self._max_limit = max_limit or getattr(provider, "max_ohlcv_limit", DEFAULT_MAX_LIMIT)
        self._multiples = multiples

    async def fetch_candles(
        self,
        mint: str,
        *,
        entry_at: datetime,
        now: datetime,
        signal_id: int | None = None,
    ) -> CandleSet:
        """Fetch every tier independently; a failing tier contributes no candles."""
        fetched: list[tuple[TierWindow, list[Candle]]] = []
        failed: list[Resolution] = []

        for window in plan_tiers(entry_at, now, max_limit=self._max_limit):
            try:
                candles = await self._provider.get_ohlcv(
                    mint, window.resolution, window.limit, before=window.end
                )
            except Exception as e:
                logger.warning(
                    "Failed to fetch %s candles for signal %s (%s): %s",
                    window.resolution.value,
                    signal_id,
                    mint,
                    e,
                )
                failed.append(window.resolution)
                continue
            fetched.append((window, candles))

        return CandleSet(candles=merge_tier_candles(fetched), failed_tiers=tuple(failed))

    async def compute(
        self,
        *,
        signal_id: int | None,
        mint: str,
        baseline: Baseline,
        now: datetime,
        current_price: float | None = None,
        stored_ath_price: float | None = None,
        stored_ath_at: datetime | None = None,
    ) -> AthResult | None:
        """Fetch candles and compute metrics; None means no-op for this cycle."""
        if not baseline.price:
            logger.debug("Signal %s (%s) has no entry price; skipping ATH", signal_id, mint)
            return None

        candle_set = await self.fetch_candles(
            mint, entry_at=baseline.entry_at, now=now, signal_id=signal_id
        )
        if not candle_set.candles:
            logger.info(
                "No candles for signal %s (%s); keeping stored ATH", signal_id, mint
            )
            return None

        return compute_ath_drawdown(
            candle_set.candles,
            baseline=baseline,
            now=now,
            current_price=current_price,
            stored_ath_price=stored_ath_price,
            stored_ath_at=stored_ath_at,
            multiples=self._multiples,
            failed_tiers=candle_set.failed_tiers,
        )
