"""Scheduler orchestrating the sampling and ATH refresh jobs.

This module provides the MetricsScheduler class that wires together the
providers, the metrics engine and the notification dispatcher, and runs
two independent periodic loops in one asyncio process.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from redis.asyncio import Redis

from token_signal_tracker.alerter.channels.telegram import TelegramChannel
from token_signal_tracker.alerter.dispatcher import AlertChannel, AlertDispatcher, Notifier
from token_signal_tracker.config import Settings, get_settings
from token_signal_tracker.jobs.ath_refresh import AthCycleReport, AthRefreshJob
from token_signal_tracker.jobs.batching import BatchReport
from token_signal_tracker.jobs.sampling import SamplingJob
from token_signal_tracker.metrics.engine import MetricsEngine
from token_signal_tracker.metrics.gate import GateThresholds, RecomputeGate
from token_signal_tracker.metrics.hit_cache import ThresholdHitCache
from token_signal_tracker.metrics.thresholds import ThresholdRecorder
from token_signal_tracker.providers.base import MarketDataProvider
from token_signal_tracker.providers.composite import CompositeProvider
from token_signal_tracker.storage.database import DatabaseManager

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    """Scheduler lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class SchedulerStats:
    """Statistics for the scheduler."""

    started_at: datetime | None = None
    sampling_cycles: int = 0
    ath_cycles: int = 0
    samples_taken: int = 0
    metrics_updated: int = 0
    errors: int = 0
    last_sampling_at: datetime | None = None
    last_ath_at: datetime | None = None
    last_error: str | None = None


class MetricsScheduler:
    """Periodic driver for price sampling and ATH recomputation.

    Each loop awaits its own cycle before waiting for the next tick, so at
    most one cycle per job type is active at a time.

    Example:
        ```python
        from token_signal_tracker.config import get_settings
        from token_signal_tracker.scheduler import MetricsScheduler

        async with MetricsScheduler(get_settings()) as scheduler:
            await scheduler.run_ath_cycle(force=True)
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        dry_run: bool | None = None,
        db: DatabaseManager | None = None,
        provider: MarketDataProvider | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            dry_run: If True, only log notifications. Overrides settings.dry_run.
            db: Database manager to use instead of one built from settings.
            provider: Market data provider to use instead of the default composite.
            notifier: Notification sink to use instead of the alert dispatcher.
        """
        self._settings = settings or get_settings()
        self._dry_run = dry_run if dry_run is not None else self._settings.dry_run

        self._state = SchedulerState.STOPPED
        self._stats = SchedulerStats()

        # Injected components are never closed by the scheduler.
        self._db_manager = db
        self._provider = provider
        self._notifier = notifier
        self._owns_db = db is None
        self._owns_provider = provider is None

        # Components (initialized in start())
        self._redis: Redis | None = None
        self._dispatcher: AlertDispatcher | None = None
        self._engine: MetricsEngine | None = None
        self._sampling_job: SamplingJob | None = None
        self._ath_job: AthRefreshJob | None = None

        # Synchronization
        self._stop_event: asyncio.Event | None = None
        self._sampling_task: asyncio.Task[None] | None = None
        self._ath_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> SchedulerState:
        """Current scheduler state."""
        return self._state

    @property
    def stats(self) -> SchedulerStats:
        """Current scheduler statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        return self._state == SchedulerState.RUNNING

    async def start(self, *, background: bool = True) -> None:
        """Start the scheduler.

        Args:
            background: Start the periodic loops. With False only the
                components are initialized, for one-shot cycle runs.

        Raises:
            RuntimeError: If the scheduler is already running.
        """
        if self._state != SchedulerState.STOPPED:
            raise RuntimeError(f"Cannot start scheduler in state {self._state}")

        self._state = SchedulerState.STARTING
        self._stop_event = asyncio.Event()
        logger.info("Starting scheduler...")

        try:
            await self._initialize_components()
            if background:
                await self._start_background_services()
            self._stats.started_at = datetime.now(UTC)
            self._state = SchedulerState.RUNNING
            logger.info("Scheduler started successfully")
        except Exception as e:
            self._state = SchedulerState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start scheduler: %s", e)
            await self._cleanup()
            raise

    async def stop(self) -> None:
        """Stop the loops and release resources."""
        if self._state == SchedulerState.STOPPED:
            return

        self._state = SchedulerState.STOPPING
        logger.info("Stopping scheduler...")

        if self._stop_event:
            self._stop_event.set()

        await self._stop_background_services()
        await self._cleanup()

        self._state = SchedulerState.STOPPED
        logger.info("Scheduler stopped")

    async def _initialize_components(self) -> None:
        settings = self._settings

        if self._db_manager is None:
            logger.debug("Initializing database manager...")
            self._db_manager = DatabaseManager(settings.database.url)

        if self._provider is None:
            logger.debug("Initializing market data providers...")
            self._provider = CompositeProvider.from_settings(settings.provider)

        if self._notifier is None:
            self._dispatcher = AlertDispatcher(
                self._build_alert_channels(),
                dry_run=self._dry_run,
                notify_metrics_updates=settings.telegram.notify_metrics_updates,
            )
            self._notifier = self._dispatcher

        hit_cache: ThresholdHitCache | None = None
        if settings.redis.enabled:
            logger.debug("Initializing Redis connection...")
            self._redis = Redis.from_url(settings.redis.url)
            hit_cache = ThresholdHitCache(self._redis)

        self._engine = MetricsEngine(
            self._provider,
            gate=RecomputeGate(GateThresholds.from_settings(settings.recompute)),
            recorder=ThresholdRecorder(
                multipliers=settings.thresholds.multipliers,
                notifier=self._notifier,
                hit_cache=hit_cache,
            ),
            notifier=self._notifier,
        )

        sched = settings.scheduler
        self._sampling_job = SamplingJob(
            self._db_manager,
            self._provider,
            self._engine,
            batch_size=sched.sampling_batch_size,
            batch_delay_seconds=sched.sampling_batch_delay_seconds,
        )
        self._ath_job = AthRefreshJob(
            self._db_manager,
            self._provider,
            self._engine,
            batch_size=sched.batch_size,
            item_delay_seconds=sched.item_delay_seconds,
            batch_delay_seconds=sched.batch_delay_seconds,
        )
        logger.info("All components initialized")

    def _build_alert_channels(self) -> list[AlertChannel]:
        """Build list of enabled alert channels."""
        channels: list[AlertChannel] = []
        telegram = self._settings.telegram

        if telegram.enabled and telegram.bot_token and telegram.chat_id:
            channels.append(TelegramChannel(telegram.bot_token.get_secret_value(), telegram.chat_id))
            logger.info("Telegram channel enabled")

        if not channels:
            logger.warning("No alert channels configured")

        return channels

    async def _start_background_services(self) -> None:
        logger.debug("Starting sampling loop...")
        self._sampling_task = asyncio.create_task(self._run_sampling_loop())
        logger.debug("Starting ATH refresh loop...")
        self._ath_task = asyncio.create_task(self._run_ath_loop())

    async def _stop_background_services(self) -> None:
        if self._sampling_task:
            self._sampling_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sampling_task
            self._sampling_task = None

        if self._ath_task:
            self._ath_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._ath_task
            self._ath_task = None

    async def _cleanup(self) -> None:
        if self._dispatcher:
            await self._dispatcher.close()
            self._dispatcher = None
            self._notifier = None

        if self._owns_provider and self._provider is not None:
            close = getattr(self._provider, "close", None)
            if close is not None:
                await close()
            self._provider = None

        if self._owns_db and self._db_manager is not None:
            await self._db_manager.dispose_async()
            self._db_manager = None

        if self._redis:
            await self._redis.aclose()
            self._redis = None

        logger.debug("Resources cleaned up")

    async def run_sampling_cycle(self) -> BatchReport:
        """Run one sampling cycle now."""
        if self._sampling_job is None:
            raise RuntimeError("Scheduler components are not initialized")
        try:
            report = await self._sampling_job.run_cycle()
        except Exception as e:
            self._record_error(e)
            raise
        self._stats.sampling_cycles += 1
        self._stats.samples_taken += report.succeeded
        self._stats.errors += report.failed
        self._stats.last_sampling_at = datetime.now(UTC)
        return report

    async def run_ath_cycle(self, *, force: bool = False) -> AthCycleReport:
        """Run one ATH refresh cycle now; ``force`` bypasses the recompute gate."""
        if self._ath_job is None:
            raise RuntimeError("Scheduler components are not initialized")
        try:
            report = await self._ath_job.run_cycle(force=force)
        except Exception as e:
            self._record_error(e)
            raise
        self._stats.ath_cycles += 1
        self._stats.metrics_updated += report.updated
        self._stats.errors += report.batch.failed
        self._stats.last_ath_at = datetime.now(UTC)
        return report

    def _record_error(self, error: Exception) -> None:
        self._stats.errors += 1
        self._stats.last_error = str(error)

    async def _run_sampling_loop(self) -> None:
        if not self._stop_event:
            return

        if self._settings.scheduler.run_on_start:
            try:
                await self.run_sampling_cycle()
            except Exception as e:
                logger.error("Sampling cycle error: %s", e)

        interval = self._settings.scheduler.sampling_interval_seconds
        while not self._stop_event.is_set():
            try:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                    break
                except TimeoutError:
                    pass

                await self.run_sampling_cycle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Sampling cycle error: %s", e)

    async def _run_ath_loop(self) -> None:
        if not self._stop_event:
            return

        interval = self._settings.scheduler.ath_interval_seconds
        while not self._stop_event.is_set():
            try:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                    break
                except TimeoutError:
                    pass

                await self.run_ath_cycle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("ATH refresh cycle error: %s", e)

    async def run(self) -> None:
        """Start the scheduler and run until stopped or cancelled."""
        await self.start()

        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def __aenter__(self) -> MetricsScheduler:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()
