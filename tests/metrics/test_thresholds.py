"""Tests for threshold crossing detection."""

import logging
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from token_signal_tracker.alerter.models import ThresholdCrossedNotification
from token_signal_tracker.metrics.models import Baseline, BaselineSource, PriceObservation
from token_signal_tracker.metrics.thresholds import ThresholdRecorder
from token_signal_tracker.storage.repos import (
    MetricsRepository,
    PriceSampleDTO,
    PriceSampleRepository,
    SignalDTO,
    SignalMetricsDTO,
    SignalRepository,
    ThresholdEventRepository,
)

MULTIPLIERS = (2.0, 3.0, 5.0, 10.0)


@pytest.fixture
async def signal(async_session: AsyncSession, sample_mint: str, t0: datetime) -> SignalDTO:
    return await SignalRepository(async_session).insert(
        SignalDTO(mint=sample_mint, detected_at=t0, entry_price=1.0, symbol="TOK")
    )


@pytest.fixture
def price_baseline(t0: datetime) -> Baseline:
    return Baseline(entry_at=t0, price=1.0, market_cap=None, supply=None, source=BaselineSource.SIGNAL)


def observe(t0: datetime, price: float, *, minutes: int = 30, market_cap: float | None = None) -> PriceObservation:
    return PriceObservation(
        price=price, observed_at=t0 + timedelta(minutes=minutes), provider="dexscreener", market_cap=market_cap
    )


class TestThresholdRecorder:
    @pytest.mark.asyncio
    async def test_records_crossing_once(
        self, async_session: AsyncSession, signal: SignalDTO, price_baseline: Baseline, t0: datetime
    ) -> None:
        recorder = ThresholdRecorder(multipliers=MULTIPLIERS)

        created = await recorder.record(
            async_session, signal=signal, baseline=price_baseline, observation=observe(t0, 2.05)
        )
        assert [(e.multiplier, e.basis) for e in created] == [(2.0, "price")]
        assert created[0].time_to_hit_seconds == 1800
        assert created[0].hit_price == 2.05

        again = await recorder.record(
            async_session, signal=signal, baseline=price_baseline, observation=observe(t0, 2.05, minutes=31)
        )
        assert again == []
        assert len(await ThresholdEventRepository(async_session).list_for_signal(signal.id)) == 1

    @pytest.mark.asyncio
    async def test_below_lowest_multiplier(
        self, async_session: AsyncSession, signal: SignalDTO, price_baseline: Baseline, t0: datetime
    ) -> None:
        recorder = ThresholdRecorder(multipliers=MULTIPLIERS)
        assert await recorder.record(
            async_session, signal=signal, baseline=price_baseline, observation=observe(t0, 1.9)
        ) == []

    @pytest.mark.asyncio
    async def test_uses_earliest_sample_that_reached_level(
        self, async_session: AsyncSession, signal: SignalDTO, price_baseline: Baseline, t0: datetime
    ) -> None:
        samples = PriceSampleRepository(async_session)
        for minutes, price in [(5, 1.4), (12, 2.3), (20, 3.4)]:
            await samples.add_sample(
                PriceSampleDTO(
                    signal_id=signal.id,
                    mint=signal.mint,
                    price=price,
                    provider="birdeye" if minutes == 12 else "dexscreener",
                    sampled_at=t0 + timedelta(minutes=minutes),
                )
            )

        created = await ThresholdRecorder(multipliers=MULTIPLIERS).record(
            async_session, signal=signal, baseline=price_baseline, observation=observe(t0, 3.5, minutes=25)
        )

        by_multiplier = {e.multiplier: e for e in created}
        assert set(by_multiplier) == {2.0, 3.0}
        assert by_multiplier[2.0].hit_price == 2.3
        assert by_multiplier[2.0].provider == "birdeye"
        assert by_multiplier[2.0].time_to_hit_seconds == 12 * 60
        assert by_multiplier[3.0].hit_at == t0 + timedelta(minutes=20)

    @pytest.mark.asyncio
    async def test_both_bases_tracked(self, async_session: AsyncSession, signal: SignalDTO, t0: datetime) -> None:
        baseline = Baseline(entry_at=t0, price=1.0, market_cap=1_000.0, supply=1_000.0, source=BaselineSource.SIGNAL)

        created = await ThresholdRecorder(multipliers=MULTIPLIERS).record(
            async_session, signal=signal, baseline=baseline, observation=observe(t0, 3.2, market_cap=2_100.0)
        )

        assert sorted((e.basis, e.multiplier) for e in created) == [
            ("market_cap", 2.0),
            ("price", 2.0),
            ("price", 3.0),
        ]

    @pytest.mark.asyncio
    async def test_sets_time_to_multiple_on_snapshot(
        self, async_session: AsyncSession, signal: SignalDTO, price_baseline: Baseline, t0: datetime
    ) -> None:
        await MetricsRepository(async_session).upsert_snapshot(SignalMetricsDTO(signal_id=signal.id))

        await ThresholdRecorder(multipliers=MULTIPLIERS).record(
            async_session, signal=signal, baseline=price_baseline, observation=observe(t0, 2.5, minutes=45)
        )

        stored = await MetricsRepository(async_session).get(signal.id)
        assert stored.time_to_2x_seconds == 45 * 60
        assert stored.time_to_3x_seconds is None

    @pytest.mark.asyncio
    async def test_notifies_created_events(
        self, async_session: AsyncSession, signal: SignalDTO, price_baseline: Baseline, t0: datetime
    ) -> None:
        notifier = AsyncMock()
        recorder = ThresholdRecorder(multipliers=MULTIPLIERS, notifier=notifier)

        await recorder.record(async_session, signal=signal, baseline=price_baseline, observation=observe(t0, 2.05))

        notifier.publish.assert_awaited_once()
        notification = notifier.publish.await_args.args[0]
        assert isinstance(notification, ThresholdCrossedNotification)
        assert notification.multiplier == 2.0
        assert notification.symbol == "TOK"

    @pytest.mark.asyncio
    async def test_notifier_failure_is_logged(
        self,
        async_session: AsyncSession,
        signal: SignalDTO,
        price_baseline: Baseline,
        t0: datetime,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        notifier = AsyncMock()
        notifier.publish.side_effect = RuntimeError("telegram down")
        recorder = ThresholdRecorder(multipliers=MULTIPLIERS, notifier=notifier)

        with caplog.at_level(logging.WARNING):
            created = await recorder.record(
                async_session, signal=signal, baseline=price_baseline, observation=observe(t0, 2.05)
            )

        assert len(created) == 1
        assert "Failed to publish threshold" in caplog.text

    @pytest.mark.asyncio
    async def test_uses_hit_cache(
        self, async_session: AsyncSession, signal: SignalDTO, price_baseline: Baseline, t0: datetime
    ) -> None:
        cache = AsyncMock()
        cache.get_recorded.return_value = {(2.0, "price")}
        recorder = ThresholdRecorder(multipliers=MULTIPLIERS, hit_cache=cache)

        created = await recorder.record(
            async_session, signal=signal, baseline=price_baseline, observation=observe(t0, 3.0)
        )

        assert [e.multiplier for e in created] == [3.0]
        cache.add.assert_awaited_once_with(signal.id, 3.0, "price")
        cache.warm.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_miss_warms_from_table(
        self, async_session: AsyncSession, signal: SignalDTO, price_baseline: Baseline, t0: datetime
    ) -> None:
        cache = AsyncMock()
        cache.get_recorded.return_value = None
        recorder = ThresholdRecorder(multipliers=MULTIPLIERS, hit_cache=cache)

        await recorder.record(async_session, signal=signal, baseline=price_baseline, observation=observe(t0, 2.05))

        cache.warm.assert_awaited_once_with(signal.id, set())
        cache.add.assert_awaited_once_with(signal.id, 2.0, "price")

    @pytest.mark.asyncio
    async def test_unsaved_signal_rejected(self, async_session: AsyncSession, price_baseline: Baseline, t0: datetime) -> None:
        with pytest.raises(ValueError):
            await ThresholdRecorder().record(
                async_session,
                signal=SignalDTO(mint="m", detected_at=t0),
                baseline=price_baseline,
                observation=observe(t0, 2.0),
            )
