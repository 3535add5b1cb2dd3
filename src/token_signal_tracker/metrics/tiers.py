"""Boundary-aligned candle tier planning.

Minute candles cover entry up to the first top of the hour, hour candles
cover that up to the first UTC midnight after it, and day candles cover
the rest. Each tier is fetched on its own.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta

from token_signal_tracker.metrics.models import TierWindow
from token_signal_tracker.providers.models import Resolution

DEFAULT_MAX_LIMIT = 1000
LIMIT_PADDING = 2


def hour_boundary(entry_at: datetime) -> datetime:
    """First top of the hour strictly after ``entry_at``."""
    t = entry_at.astimezone(UTC)
    return t.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)


def day_boundary(hour_start: datetime) -> datetime:
    """First UTC midnight strictly after ``hour_start``."""
    t = hour_start.astimezone(UTC)
    return t.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)


def candle_limit(start: datetime, end: datetime, resolution: Resolution, max_limit: int) -> int:
    """Candles needed to cover ``[start, end)`` plus padding, capped at ``max_limit``."""
    count = math.ceil((end - start) / resolution.step) + LIMIT_PADDING
    return max(1, min(count, max_limit))


def plan_tiers(
    entry_at: datetime, now: datetime, *, max_limit: int = DEFAULT_MAX_LIMIT
) -> list[TierWindow]:
    """Plan the minute/hour/day windows between entry and now.

    Empty windows are omitted.
    """
    if entry_at.tzinfo is None or now.tzinfo is None:
        raise ValueError("entry_at/now must be timezone-aware")

    hour_start = hour_boundary(entry_at)
    day_start = day_boundary(hour_start)

    spans = (
        (Resolution.MINUTE, entry_at, min(hour_start, now)),
        (Resolution.HOUR, hour_start, min(day_start, now)),
        (Resolution.DAY, day_start, now),
    )
    return [
        TierWindow(
            resolution=resolution,
            start=start,
            end=end,
            limit=candle_limit(start, end, resolution, max_limit),
        )
        for resolution, start, end in spans
        if start < end
    ]
