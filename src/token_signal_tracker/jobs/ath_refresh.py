"""Candle-based ATH/drawdown refresh job.

A cycle runs in three phases:
1. Load every tracked signal with its baseline, stored snapshot and the
   latest sample taken after that snapshot (one read session).
2. Fetch live quotes where the gate needs them and apply the recompute gate.
3. Process survivors in delayed batches: fetch candles, upsert the snapshot,
   record thresholds and publish a metrics-updated notification.

No database transaction is held open across provider calls.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from token_signal_tracker.jobs.batching import BatchReport, run_in_batches
from token_signal_tracker.metrics.baseline import resolve_baseline
from token_signal_tracker.metrics.models import Baseline, GateReason, PriceObservation
from token_signal_tracker.providers.http import ProviderError
from token_signal_tracker.storage.repos import (
    MetricsRepository,
    PriceSampleDTO,
    PriceSampleRepository,
    SignalDTO,
    SignalMetricsDTO,
    SignalRepository,
)

if TYPE_CHECKING:
    from token_signal_tracker.metrics.engine import MetricsEngine
    from token_signal_tracker.providers.base import MarketDataProvider
    from token_signal_tracker.providers.models import PriceQuote
    from token_signal_tracker.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

# Reasons the gate can return before it looks at the live multiple.
_SKIP_WITHOUT_QUOTE = (GateReason.FRESH, GateReason.INACTIVE)


@dataclass
class SignalState:
    """Everything the gate and the aggregator need for one signal."""

    signal: SignalDTO
    baseline: Baseline
    stored: SignalMetricsDTO | None
    latest_sample: PriceSampleDTO | None
    quote: PriceQuote | None = None


@dataclass
class AthCycleReport:
    """Outcome of one ATH refresh cycle."""

    tracked: int = 0
    missing_baseline: int = 0
    decisions: Counter[str] = field(default_factory=Counter)
    updated: int = 0
    no_candles: int = 0
    batch: BatchReport = field(default_factory=BatchReport)


class AthRefreshJob:
    """Recomputes ATH/drawdown for signals that pass the recompute gate."""

    def __init__(
        self,
        db: DatabaseManager,
        provider: MarketDataProvider,
        engine: MetricsEngine,
        *,
        batch_size: int = 3,
        item_delay_seconds: float = 1.0,
        batch_delay_seconds: float = 3.0,
    ) -> None:
        self._db = db
        self._provider = provider
        self._engine = engine
        self._batch_size = batch_size
        self._item_delay = item_delay_seconds
        self._batch_delay = batch_delay_seconds

    async def load_states(self, report: AthCycleReport | None = None) -> list[SignalState]:
        states: list[SignalState] = []
        async with self._db.get_async_session() as session:
            signals = [s for s in await SignalRepository(session).list_tracked() if s.id is not None]
            ids = [s.id for s in signals]
            stored_by_id = await MetricsRepository(session).get_many(ids)
            samples = PriceSampleRepository(session)

            for signal in signals:
                baseline = resolve_baseline(signal, await samples.get_first_sample(signal.id))
                if baseline is None:
                    logger.info(
                        "Skipping ATH for signal %d (%s): no baseline", signal.id, signal.mint
                    )
                    if report is not None:
                        report.missing_baseline += 1
                    continue
                stored = stored_by_id.get(signal.id)
                latest = await samples.get_latest_sample(
                    signal.id, after=stored.updated_at if stored else None
                )
                states.append(SignalState(signal, baseline, stored, latest))

        if report is not None:
            report.tracked = len(signals)
        return states

    async def _fetch_quote(self, signal: SignalDTO) -> PriceQuote | None:
        try:
            return await self._provider.get_quote(signal.mint)
        except ProviderError as e:
            logger.debug("No live quote for signal %s (%s): %s", signal.id, signal.mint, e)
            return None

    async def select(
        self,
        states: list[SignalState],
        *,
        now: datetime,
        force: bool = False,
        report: AthCycleReport | None = None,
    ) -> list[SignalState]:
        """Apply the recompute gate; quotes are only fetched when the gate needs one."""
        survivors: list[SignalState] = []
        for state in states:
            decision = self._engine.evaluate_gate(
                metrics=state.stored,
                current_multiple=None,
                latest_sample=state.latest_sample,
                now=now,
                force=force,
            )
            if decision.reason not in _SKIP_WITHOUT_QUOTE:
                state.quote = await self._fetch_quote(state.signal)
                current = state.baseline.price_multiple(state.quote.price if state.quote else None)
                decision = self._engine.evaluate_gate(
                    metrics=state.stored,
                    current_multiple=current,
                    latest_sample=state.latest_sample,
                    now=now,
                    force=force,
                )

            if report is not None:
                report.decisions[decision.reason.value] += 1
            logger.debug(
                "Gate for signal %s (%s): %s (%s)",
                state.signal.id,
                state.signal.mint,
                "recompute" if decision.recompute else "skip",
                decision.reason.value,
            )
            if decision.recompute:
                survivors.append(state)
        return survivors

    async def refresh(self, state: SignalState, *, now: datetime) -> bool:
        """Recompute and persist one signal; False when no candles were available."""
        signal = state.signal
        current_price = state.quote.price if state.quote else None

        result = await self._engine.compute(
            signal, state.baseline, now=now, current_price=current_price, stored=state.stored
        )
        if result is None:
            return False

        async with self._db.get_async_session() as session:
            metrics = await self._engine.persist(session, signal, result, now=now)
            if state.quote is not None:
                await self._engine.record_thresholds(
                    session,
                    signal=signal,
                    baseline=state.baseline,
                    observation=PriceObservation(
                        price=state.quote.price,
                        observed_at=state.quote.timestamp,
                        provider=state.quote.source,
                        market_cap=state.baseline.market_cap_at(state.quote.price),
                    ),
                )

        await self._engine.publish_update(signal, metrics)
        return True

    async def run_cycle(self, *, force: bool = False, now: datetime | None = None) -> AthCycleReport:
        now = now or datetime.now(UTC)
        report = AthCycleReport()

        states = await self.load_states(report)
        survivors = await self.select(states, now=now, force=force, report=report)
        if not survivors:
            logger.info("ATH cycle: nothing to recompute (%d tracked)", report.tracked)
            return report

        logger.info("ATH cycle: recomputing %d of %d signals", len(survivors), report.tracked)

        async def worker(state: SignalState) -> None:
            if await self.refresh(state, now=now):
                report.updated += 1
            else:
                report.no_candles += 1

        report.batch = await run_in_batches(
            survivors,
            worker,
            batch_size=self._batch_size,
            item_delay=self._item_delay,
            batch_delay=self._batch_delay,
            label="signal",
        )
        logger.info(
            "ATH cycle complete: %d updated, %d without candles, %d failed",
            report.updated,
            report.no_candles,
            report.batch.failed,
        )
        return report
