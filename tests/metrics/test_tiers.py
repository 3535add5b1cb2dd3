"""Tests for candle tier planning."""

from datetime import UTC, datetime, timedelta

import pytest

from token_signal_tracker.metrics.tiers import candle_limit, day_boundary, hour_boundary, plan_tiers
from token_signal_tracker.providers.models import Resolution


class TestBoundaries:
    def test_hour_boundary_is_strictly_after(self) -> None:
        assert hour_boundary(datetime(2026, 1, 10, 12, 10, tzinfo=UTC)) == datetime(
            2026, 1, 10, 13, 0, tzinfo=UTC
        )
        assert hour_boundary(datetime(2026, 1, 10, 12, 0, tzinfo=UTC)) == datetime(
            2026, 1, 10, 13, 0, tzinfo=UTC
        )

    def test_day_boundary(self) -> None:
        assert day_boundary(datetime(2026, 1, 10, 13, 0, tzinfo=UTC)) == datetime(
            2026, 1, 11, tzinfo=UTC
        )


class TestPlanTiers:
    def test_three_tiers(self, t0: datetime) -> None:
        now = datetime(2026, 1, 13, 6, 0, tzinfo=UTC)
        minute, hour, day = plan_tiers(t0, now)

        assert minute.resolution is Resolution.MINUTE
        assert (minute.start, minute.end) == (t0, datetime(2026, 1, 10, 13, 0, tzinfo=UTC))
        assert minute.limit == 50 + 2

        assert hour.resolution is Resolution.HOUR
        assert hour.end == datetime(2026, 1, 11, tzinfo=UTC)
        assert hour.limit == 11 + 2

        assert day.resolution is Resolution.DAY
        assert (day.start, day.end) == (datetime(2026, 1, 11, tzinfo=UTC), now)
        assert day.limit == 3 + 2

    def test_recent_entry_only_needs_minutes(self, t0: datetime) -> None:
        windows = plan_tiers(t0, t0 + timedelta(minutes=3))
        assert [w.resolution for w in windows] == [Resolution.MINUTE]
        assert windows[0].end == t0 + timedelta(minutes=3)

    def test_limit_is_capped(self, t0: datetime) -> None:
        windows = plan_tiers(t0, t0 + timedelta(minutes=40), max_limit=10)
        assert windows[0].limit == 10

    def test_requires_aware_datetimes(self, t0: datetime) -> None:
        with pytest.raises(ValueError):
            plan_tiers(t0.replace(tzinfo=None), t0)

    def test_window_contains_candles_starting_inside(self, t0: datetime) -> None:
        hour = plan_tiers(t0, t0 + timedelta(hours=5))[1]
        assert hour.contains(datetime(2026, 1, 10, 13, 0, tzinfo=UTC))
        assert not hour.contains(datetime(2026, 1, 10, 12, 0, tzinfo=UTC))
        assert not hour.contains(hour.end)

        entry = t0 + timedelta(seconds=30)
        minute = plan_tiers(entry, entry + timedelta(minutes=5))[0]
        assert not minute.contains(t0)
        assert minute.contains(t0 + timedelta(minutes=1))


def test_candle_limit_minimum_one(t0: datetime) -> None:
    assert candle_limit(t0, t0 + timedelta(seconds=1), Resolution.DAY, 0) == 1
