"""Price sampling job.

Signals are sampled on an age-based schedule: young signals every minute,
older ones progressively less often. Each sample refreshes the live part of
the metrics snapshot and runs the threshold recorder.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from token_signal_tracker.jobs.batching import BatchReport, run_in_batches
from token_signal_tracker.metrics.baseline import MissingBaselineError, require_baseline
from token_signal_tracker.metrics.models import PriceObservation
from token_signal_tracker.providers.http import ProviderError
from token_signal_tracker.providers.models import TokenMeta
from token_signal_tracker.storage.models import TrackingStatus
from token_signal_tracker.storage.repos import (
    PriceSampleDTO,
    PriceSampleRepository,
    SignalDTO,
    SignalRepository,
)

if TYPE_CHECKING:
    from token_signal_tracker.metrics.engine import MetricsEngine
    from token_signal_tracker.providers.base import MarketDataProvider
    from token_signal_tracker.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

# (signal age upper bound, minimum gap between samples)
SAMPLING_SCHEDULE: tuple[tuple[timedelta, timedelta], ...] = (
    (timedelta(hours=2), timedelta(minutes=1)),
    (timedelta(hours=12), timedelta(minutes=5)),
    (timedelta(days=3), timedelta(minutes=15)),
    (timedelta(days=14), timedelta(minutes=60)),
    (timedelta(days=60), timedelta(hours=6)),
)
SAMPLING_INTERVAL_OLD = timedelta(hours=24)


def sampling_interval_for(age: timedelta) -> timedelta:
    """Minimum gap between samples for a signal of the given age."""
    for max_age, interval in SAMPLING_SCHEDULE:
        if age < max_age:
            return interval
    return SAMPLING_INTERVAL_OLD


def is_due_for_sampling(
    detected_at: datetime, last_sampled_at: datetime | None, now: datetime
) -> bool:
    if last_sampled_at is None:
        return True
    return now - last_sampled_at >= sampling_interval_for(now - detected_at)


def market_cap_from(price: float, meta: TokenMeta) -> float | None:
    """Live market cap if reported, else the venue's market cap, else price x supply."""
    if meta.best_market_cap:
        return meta.best_market_cap
    if meta.supply:
        return price * meta.supply
    return None


class SamplingJob:
    """Takes one price sample for every signal that is due."""

    def __init__(
        self,
        db: DatabaseManager,
        provider: MarketDataProvider,
        engine: MetricsEngine,
        *,
        batch_size: int = 5,
        item_delay_seconds: float = 0.0,
        batch_delay_seconds: float = 0.5,
    ) -> None:
        self._db = db
        self._provider = provider
        self._engine = engine
        self._batch_size = batch_size
        self._item_delay = item_delay_seconds
        self._batch_delay = batch_delay_seconds

    async def due_signals(self, now: datetime) -> list[SignalDTO]:
        async with self._db.get_async_session() as session:
            signals = await SignalRepository(session).list_tracked()
            last = await PriceSampleRepository(session).get_last_sampled_at(
                [s.id for s in signals if s.id is not None]
            )
        return [s for s in signals if is_due_for_sampling(s.detected_at, last.get(s.id), now)]

    async def run_cycle(self, now: datetime | None = None) -> BatchReport:
        now = now or datetime.now(UTC)
        due = await self.due_signals(now)
        if not due:
            logger.debug("No signals due for sampling")
            return BatchReport()

        logger.info("Sampling %d signals", len(due))
        report = await run_in_batches(
            due,
            self.sample_signal,
            batch_size=self._batch_size,
            item_delay=self._item_delay,
            batch_delay=self._batch_delay,
            label="signal",
        )
        logger.info(
            "Sampling cycle complete: %d sampled, %d failed", report.succeeded, report.failed
        )
        return report

    async def sample_signal(self, signal: SignalDTO) -> None:
        if signal.id is None:
            raise ValueError("signal must be persisted before it is sampled")
        quote = await self._provider.get_quote(signal.mint)
        try:
            meta = await self._provider.get_token_meta(signal.mint)
        except ProviderError as e:
            logger.debug("No token metadata for %s: %s", signal.mint, e)
            meta = TokenMeta()

        market_cap = market_cap_from(quote.price, meta)
        observation = PriceObservation(
            price=quote.price,
            observed_at=quote.timestamp,
            provider=quote.source,
            market_cap=market_cap,
        )

        async with self._db.get_async_session() as session:
            samples = PriceSampleRepository(session)
            signals = SignalRepository(session)

            await samples.add_sample(
                PriceSampleDTO(
                    signal_id=signal.id,
                    mint=signal.mint,
                    price=quote.price,
                    market_cap=market_cap,
                    volume=meta.volume_24h,
                    liquidity=meta.liquidity,
                    provider=quote.source,
                    sampled_at=observation.observed_at,
                )
            )

            pending = signal.tracking_status == TrackingStatus.ENTRY_PENDING.value
            if pending or (signal.entry_market_cap is None and market_cap is not None):
                if await signals.backfill_entry(
                    signal.id,
                    price=quote.price,
                    price_at=observation.observed_at,
                    provider=quote.source,
                    supply=meta.supply,
                    market_cap=market_cap,
                ):
                    logger.info("Back-filled entry for signal %d (%s)", signal.id, signal.mint)
                    signal = await signals.get(signal.id) or signal

            try:
                baseline = require_baseline(signal, await samples.get_first_sample(signal.id))
            except MissingBaselineError as e:
                logger.info("Skipping metrics: %s", e)
                return

            await self._engine.refresh_live(
                session, signal=signal, baseline=baseline, observation=observation
            )
            await self._engine.record_thresholds(
                session, signal=signal, baseline=baseline, observation=observation
            )
