"""Tests for the price sampling job."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from token_signal_tracker.jobs.sampling import (
    SamplingJob,
    is_due_for_sampling,
    market_cap_from,
    sampling_interval_for,
)
from token_signal_tracker.metrics.engine import MetricsEngine
from token_signal_tracker.metrics.models import GateReason
from token_signal_tracker.metrics.thresholds import ThresholdRecorder
from token_signal_tracker.providers.http import ProviderNotFoundError
from token_signal_tracker.providers.models import PriceQuote, TokenMeta
from token_signal_tracker.storage.database import DatabaseManager
from token_signal_tracker.storage.models import TrackingStatus
from token_signal_tracker.storage.repos import (
    MetricsRepository,
    PriceSampleDTO,
    PriceSampleRepository,
    SignalDTO,
    SignalRepository,
    ThresholdEventRepository,
)


def make_provider(price: float, at: datetime, meta: TokenMeta | None = None) -> MagicMock:
    provider = MagicMock()
    provider.max_ohlcv_limit = 1000
    provider.get_quote = AsyncMock(return_value=PriceQuote(price=price, source="dexscreener", timestamp=at))
    provider.get_token_meta = AsyncMock(return_value=meta or TokenMeta())
    provider.get_ohlcv = AsyncMock(return_value=[])
    return provider


async def insert_signal(db: DatabaseManager, signal: SignalDTO) -> SignalDTO:
    async with db.get_async_session() as session:
        return await SignalRepository(session).insert(signal)


class TestSchedule:
    @pytest.mark.parametrize(
        ("age", "interval"),
        [
            (timedelta(minutes=30), timedelta(minutes=1)),
            (timedelta(hours=5), timedelta(minutes=5)),
            (timedelta(days=2), timedelta(minutes=15)),
            (timedelta(days=10), timedelta(hours=1)),
            (timedelta(days=30), timedelta(hours=6)),
            (timedelta(days=100), timedelta(hours=24)),
        ],
    )
    def test_interval_grows_with_age(self, age: timedelta, interval: timedelta) -> None:
        assert sampling_interval_for(age) == interval

    def test_is_due(self, t0: datetime) -> None:
        now = t0 + timedelta(minutes=10)
        assert is_due_for_sampling(t0, None, now)
        assert not is_due_for_sampling(t0, now - timedelta(seconds=30), now)
        assert is_due_for_sampling(t0, now - timedelta(seconds=60), now)

    def test_market_cap_from(self) -> None:
        assert market_cap_from(0.5, TokenMeta(live_market_cap=10.0, market_cap=20.0)) == 10.0
        assert market_cap_from(0.5, TokenMeta(supply=100.0)) == 50.0
        assert market_cap_from(0.5, TokenMeta()) is None


class TestSamplingJob:
    @pytest.mark.asyncio
    async def test_first_sample_backfills_entry(
        self, db_manager: DatabaseManager, sample_mint: str, t0: datetime
    ) -> None:
        signal = await insert_signal(db_manager, SignalDTO(mint=sample_mint, detected_at=t0))
        observed = t0 + timedelta(minutes=1)
        provider = make_provider(
            0.002, observed, TokenMeta(supply=1e9, live_market_cap=2e6, volume_24h=5_000.0)
        )
        job = SamplingJob(db_manager, provider, MetricsEngine(provider))

        await job.sample_signal(signal)

        async with db_manager.get_async_session() as session:
            stored = await SignalRepository(session).get(signal.id)
            sample = await PriceSampleRepository(session).get_latest_sample(signal.id)
            metrics = await MetricsRepository(session).get(signal.id)

        assert stored.tracking_status == TrackingStatus.ACTIVE.value
        assert stored.entry_price == 0.002
        assert stored.entry_market_cap == 2e6
        assert stored.entry_price_at == observed
        assert sample.volume == 5_000.0
        assert metrics.current_price == 0.002
        assert metrics.ath_price == 0.002
        assert metrics.time_to_ath_seconds == 0

    @pytest.mark.asyncio
    async def test_crossing_recorded_from_live_sample(
        self, db_manager: DatabaseManager, sample_mint: str, t0: datetime
    ) -> None:
        signal = await insert_signal(
            db_manager,
            SignalDTO(
                mint=sample_mint,
                detected_at=t0,
                entry_price=0.002,
                entry_price_at=t0 + timedelta(minutes=1),
                entry_market_cap=2e6,
                tracking_status=TrackingStatus.ACTIVE.value,
            ),
        )
        provider = make_provider(0.0045, t0 + timedelta(minutes=2))
        engine = MetricsEngine(provider, recorder=ThresholdRecorder(multipliers=(2.0, 3.0)))

        await SamplingJob(db_manager, provider, engine).sample_signal(signal)

        async with db_manager.get_async_session() as session:
            events = await ThresholdEventRepository(session).list_for_signal(signal.id)
            metrics = await MetricsRepository(session).get(signal.id)

        assert sorted((e.basis, e.multiplier) for e in events) == [("market_cap", 2.0), ("price", 2.0)]
        price_event = next(e for e in events if e.basis == "price")
        assert price_event.time_to_hit_seconds == 120
        assert metrics.ath_price == 0.0045
        assert metrics.time_to_2x_seconds == 60

    @pytest.mark.asyncio
    async def test_sample_below_entry_keeps_ath_at_entry(
        self, db_manager: DatabaseManager, sample_mint: str, t0: datetime
    ) -> None:
        signal = await insert_signal(
            db_manager,
            SignalDTO(
                mint=sample_mint,
                detected_at=t0,
                entry_price=1.0,
                entry_supply=1_000.0,
                tracking_status=TrackingStatus.ACTIVE.value,
            ),
        )
        now = t0 + timedelta(hours=3)
        provider = make_provider(0.05, now)
        engine = MetricsEngine(provider)

        await SamplingJob(db_manager, provider, engine).sample_signal(signal)

        async with db_manager.get_async_session() as session:
            metrics = await MetricsRepository(session).get(signal.id)

        assert metrics.current_price == 0.05
        assert metrics.current_multiple == pytest.approx(0.05)
        assert metrics.ath_price == 1.0
        assert metrics.ath_multiple == 1.0
        assert metrics.ath_market_cap == 1_000.0
        assert metrics.ath_at == t0
        assert metrics.time_to_ath_seconds == 0

        decision = engine.evaluate_gate(
            metrics=metrics, current_multiple=0.05, latest_sample=None, now=now
        )
        assert decision.recompute is True
        assert decision.reason is GateReason.NO_METRICS

    @pytest.mark.asyncio
    async def test_no_baseline_skips_metrics(
        self, db_manager: DatabaseManager, sample_mint: str, t0: datetime
    ) -> None:
        signal = await insert_signal(
            db_manager,
            SignalDTO(mint=sample_mint, detected_at=t0, tracking_status=TrackingStatus.ACTIVE.value),
        )
        provider = make_provider(0.0, t0 + timedelta(minutes=1))

        await SamplingJob(db_manager, provider, MetricsEngine(provider)).sample_signal(signal)

        async with db_manager.get_async_session() as session:
            assert await PriceSampleRepository(session).get_latest_sample(signal.id) is not None
            assert await MetricsRepository(session).get(signal.id) is None

    @pytest.mark.asyncio
    async def test_unsaved_signal_rejected(self, db_manager: DatabaseManager, sample_mint: str, t0: datetime) -> None:
        provider = make_provider(1.0, t0)
        with pytest.raises(ValueError):
            await SamplingJob(db_manager, provider, MetricsEngine(provider)).sample_signal(
                SignalDTO(mint=sample_mint, detected_at=t0)
            )
        provider.get_quote.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_metadata_failure_still_samples(
        self, db_manager: DatabaseManager, sample_mint: str, t0: datetime
    ) -> None:
        signal = await insert_signal(db_manager, SignalDTO(mint=sample_mint, detected_at=t0))
        provider = make_provider(0.01, t0 + timedelta(minutes=1))
        provider.get_token_meta.side_effect = ProviderNotFoundError("no pairs")

        await SamplingJob(db_manager, provider, MetricsEngine(provider)).sample_signal(signal)

        async with db_manager.get_async_session() as session:
            sample = await PriceSampleRepository(session).get_latest_sample(signal.id)
            stored = await SignalRepository(session).get(signal.id)
        assert sample.market_cap is None
        assert stored.entry_price == 0.01

    @pytest.mark.asyncio
    async def test_run_cycle_only_samples_due_signals(
        self, db_manager: DatabaseManager, t0: datetime
    ) -> None:
        now = t0 + timedelta(minutes=10)
        due = await insert_signal(db_manager, SignalDTO(mint="DueMint", detected_at=t0))
        recent = await insert_signal(db_manager, SignalDTO(mint="RecentMint", detected_at=t0))
        archived = await insert_signal(
            db_manager,
            SignalDTO(mint="OldMint", detected_at=t0, tracking_status=TrackingStatus.ARCHIVED.value),
        )
        async with db_manager.get_async_session() as session:
            await PriceSampleRepository(session).add_sample(
                PriceSampleDTO(
                    signal_id=recent.id,
                    mint=recent.mint,
                    price=1.0,
                    provider="dexscreener",
                    sampled_at=now - timedelta(seconds=20),
                )
            )

        provider = make_provider(1.0, now)
        job = SamplingJob(db_manager, provider, MetricsEngine(provider))

        report = await job.run_cycle(now)

        assert report.succeeded == 1
        provider.get_quote.assert_awaited_once_with(due.mint)
        assert archived.id not in {s.id for s in await job.due_signals(now)}

    @pytest.mark.asyncio
    async def test_quote_failure_counts_as_failed(
        self, db_manager: DatabaseManager, sample_mint: str, t0: datetime
    ) -> None:
        await insert_signal(db_manager, SignalDTO(mint=sample_mint, detected_at=t0))
        provider = make_provider(1.0, t0)
        provider.get_quote.side_effect = ProviderNotFoundError("unknown token")

        report = await SamplingJob(db_manager, provider, MetricsEngine(provider)).run_cycle(t0)

        assert report.failed == 1
