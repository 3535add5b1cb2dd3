"""Metrics engine: the single writer of metrics snapshots.

The engine wires the baseline resolver, the recompute gate, the ATH
aggregator and the threshold recorder together. Methods that touch the
database take the caller's session; ``compute`` performs provider I/O and
takes none, so no transaction is held open across network calls.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from token_signal_tracker.alerter.models import MetricsUpdatedNotification
from token_signal_tracker.metrics.aggregator import AthDrawdownAggregator
from token_signal_tracker.metrics.gate import RecomputeGate
from token_signal_tracker.metrics.models import (
    AthResult,
    Baseline,
    GateDecision,
    PriceObservation,
    seconds,
)
from token_signal_tracker.metrics.thresholds import ThresholdRecorder
from token_signal_tracker.storage.repos import (
    MetricsRepository,
    PriceSampleDTO,
    SignalDTO,
    SignalMetricsDTO,
    ThresholdEventDTO,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from token_signal_tracker.alerter.dispatcher import Notifier
    from token_signal_tracker.providers.base import MarketDataProvider

logger = logging.getLogger(__name__)


class MetricsEngine:
    """Computes and persists per-signal performance metrics.

    Example:
        ```python
        engine = MetricsEngine(provider, recorder=ThresholdRecorder(notifier=dispatcher))
        decision = engine.evaluate_gate(metrics=stored, current_multiple=2.1,
                                        latest_sample=sample, now=now)
        if decision.recompute:
            result = await engine.compute(signal, baseline, now=now, stored=stored)
            async with db.get_async_session() as session:
                await engine.persist(session, signal, result, now=now)
        ```
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        *,
        gate: RecomputeGate | None = None,
        aggregator: AthDrawdownAggregator | None = None,
        recorder: ThresholdRecorder | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.provider = provider
        self.gate = gate or RecomputeGate()
        self.aggregator = aggregator or AthDrawdownAggregator(provider)
        self.recorder = recorder or ThresholdRecorder()
        self._notifier = notifier

    def evaluate_gate(
        self,
        *,
        metrics: SignalMetricsDTO | None,
        current_multiple: float | None,
        latest_sample: PriceSampleDTO | None,
        now: datetime,
        force: bool = False,
    ) -> GateDecision:
        return self.gate.evaluate(
            metrics=metrics,
            current_multiple=current_multiple,
            latest_sample=latest_sample,
            now=now,
            force=force,
        )

    async def refresh_live(
        self,
        session: AsyncSession,
        *,
        signal: SignalDTO,
        baseline: Baseline,
        observation: PriceObservation,
    ) -> SignalMetricsDTO:
        """Write the live price onto the snapshot, raising the ATH if exceeded."""
        if signal.id is None:
            raise ValueError("signal must be persisted before its metrics are refreshed")
        market_cap = observation.market_cap
        if market_cap is None:
            market_cap = baseline.market_cap_at(observation.price)
        return await MetricsRepository(session).record_live_price(
            signal.id,
            price=observation.price,
            market_cap=market_cap,
            multiple=baseline.price_multiple(observation.price),
            observed_at=observation.observed_at,
            seconds_since_entry=seconds(observation.observed_at - baseline.entry_at),
            entry_price=baseline.price,
            entry_market_cap=(
                baseline.market_cap if baseline.market_cap is not None else baseline.market_cap_at(baseline.price)
            ),
            entry_at=baseline.entry_at,
        )

    async def compute(
        self,
        signal: SignalDTO,
        baseline: Baseline,
        *,
        now: datetime,
        current_price: float | None = None,
        stored: SignalMetricsDTO | None = None,
    ) -> AthResult | None:
        """Run the candle aggregation for one signal (provider I/O only)."""
        return await self.aggregator.compute(
            signal_id=signal.id,
            mint=signal.mint,
            baseline=baseline,
            now=now,
            current_price=current_price,
            stored_ath_price=stored.ath_price if stored else None,
            stored_ath_at=stored.ath_at if stored else None,
        )

    async def persist(
        self,
        session: AsyncSession,
        signal: SignalDTO,
        result: AthResult,
        *,
        now: datetime,
    ) -> SignalMetricsDTO:
        """Upsert the snapshot for ``result`` and return the stored row."""
        if signal.id is None:
            raise ValueError("signal must be persisted before its metrics are stored")
        stored = await MetricsRepository(session).upsert_snapshot(
            result.to_metrics(signal.id, updated_at=now)
        )
        logger.info(
            "Signal %d (%s): ATH %.2fx at %s, drawdown %.1f%%, %d candles",
            signal.id,
            signal.mint,
            stored.ath_multiple or 0.0,
            stored.ath_at.isoformat() if stored.ath_at else "n/a",
            (stored.max_drawdown or 0.0) * 100,
            result.candle_count,
        )
        return stored

    async def record_thresholds(
        self,
        session: AsyncSession,
        *,
        signal: SignalDTO,
        baseline: Baseline,
        observation: PriceObservation,
    ) -> list[ThresholdEventDTO]:
        return await self.recorder.record(
            session, signal=signal, baseline=baseline, observation=observation
        )

    async def publish_update(self, signal: SignalDTO, metrics: SignalMetricsDTO) -> None:
        """Publish a metrics-updated notification; failures are logged."""
        if self._notifier is None or signal.id is None:
            return
        try:
            await self._notifier.publish(
                MetricsUpdatedNotification(
                    signal_id=signal.id,
                    mint=signal.mint,
                    symbol=signal.symbol,
                    metrics=metrics,
                )
            )
        except Exception as e:
            logger.warning("Failed to publish metrics update for signal %d: %s", signal.id, e)
