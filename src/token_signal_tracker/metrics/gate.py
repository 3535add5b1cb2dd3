"""Recompute gate: decides whether a candle-based refresh is worth its cost.

Candle fetches dominate provider usage, so signals whose metrics cannot
plausibly have changed since the last refresh are skipped.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from token_signal_tracker.metrics.models import GateDecision, GateReason

if TYPE_CHECKING:
    from token_signal_tracker.config import RecomputeSettings
    from token_signal_tracker.storage.repos import PriceSampleDTO, SignalMetricsDTO

DEFAULT_FRESHNESS = timedelta(minutes=10)
DEFAULT_VERY_STALE = timedelta(minutes=60)
DEFAULT_FORCE_AFTER = timedelta(minutes=60)
DEFAULT_DEAD_COLLAPSE_RATIO = 0.5
DEFAULT_DEAD_MULTIPLE = 0.5
DEFAULT_DEAD_ATH_FLOOR = 1.0
DEFAULT_DEEP_DOWN_MULTIPLE = 0.1
DEFAULT_NEVER_PUMPED_ATH = 1.5
DEFAULT_NEW_PEAK_RATIO = 1.05
DEFAULT_NEAR_PEAK_RATIO = 0.9


@dataclass(frozen=True)
class GateThresholds:
    """Tunable constants for the recompute gate."""

    freshness: timedelta = DEFAULT_FRESHNESS
    very_stale: timedelta = DEFAULT_VERY_STALE
    force_after: timedelta = DEFAULT_FORCE_AFTER
    dead_collapse_ratio: float = DEFAULT_DEAD_COLLAPSE_RATIO
    dead_multiple: float = DEFAULT_DEAD_MULTIPLE
    dead_ath_floor: float = DEFAULT_DEAD_ATH_FLOOR
    deep_down_multiple: float = DEFAULT_DEEP_DOWN_MULTIPLE
    never_pumped_ath: float = DEFAULT_NEVER_PUMPED_ATH
    new_peak_ratio: float = DEFAULT_NEW_PEAK_RATIO
    near_peak_ratio: float = DEFAULT_NEAR_PEAK_RATIO

    @classmethod
    def from_settings(cls, settings: RecomputeSettings) -> GateThresholds:
        return cls(
            freshness=timedelta(minutes=settings.freshness_minutes),
            very_stale=timedelta(minutes=settings.very_stale_minutes),
            force_after=timedelta(minutes=settings.force_after_minutes),
            dead_collapse_ratio=settings.dead_collapse_ratio,
            dead_multiple=settings.dead_multiple,
            dead_ath_floor=settings.dead_ath_floor,
            deep_down_multiple=settings.deep_down_multiple,
            never_pumped_ath=settings.never_pumped_ath,
            new_peak_ratio=settings.new_peak_ratio,
            near_peak_ratio=settings.near_peak_ratio,
        )


class RecomputeGate:
    """Pure skip/recompute decision over stored metrics and the latest activity.

    Rules, in order:
    1. ``force`` always recomputes.
    2. No stored metrics recomputes. A row written only by live sampling
       (no ``max_drawdown_at`` yet) counts as no metrics.
    3. Metrics younger than ``freshness`` are skipped.
    4. No activity since the last update (no newer sample, or zero volume)
       is skipped until the metrics are ``very_stale``.
    5. Collapsed tokens (far below their ATH and below ``dead_multiple``)
       are skipped.
    6. Tokens that never pumped and are now deeply down are skipped.
    7. A new or near peak, or metrics older than ``force_after``, recompute.
    8. Anything else is skipped.

    When the current multiple or the stored ATH multiple is unknown only
    the staleness rules apply.
    """

    def __init__(self, thresholds: GateThresholds | None = None) -> None:
        self.thresholds = thresholds or GateThresholds()

    def evaluate(
        self,
        *,
        metrics: SignalMetricsDTO | None,
        current_multiple: float | None,
        latest_sample: PriceSampleDTO | None,
        now: datetime,
        force: bool = False,
    ) -> GateDecision:
        """Decide whether to recompute.

        Args:
            metrics: Stored snapshot, if any.
            current_multiple: Live price multiple versus entry, if known.
            latest_sample: Most recent sample strictly after ``metrics.updated_at``.
            now: Evaluation time.
            force: Bypass every skip rule.
        """
        t = self.thresholds

        if force:
            return GateDecision(True, GateReason.FORCED)
        if metrics is None or metrics.updated_at is None or metrics.max_drawdown_at is None:
            return GateDecision(True, GateReason.NO_METRICS)

        age = now - metrics.updated_at
        stale = age >= t.force_after

        if age < t.freshness:
            return GateDecision(False, GateReason.FRESH)

        inactive = latest_sample is None or not latest_sample.volume
        if inactive and age < t.very_stale:
            return GateDecision(False, GateReason.INACTIVE)

        ath_multiple = metrics.ath_multiple
        if current_multiple is None or ath_multiple is None:
            if stale:
                return GateDecision(True, GateReason.STALE)
            return GateDecision(False, GateReason.NO_CHANGE)

        if (
            ath_multiple > t.dead_ath_floor
            and current_multiple < ath_multiple * t.dead_collapse_ratio
            and current_multiple < t.dead_multiple
        ):
            return GateDecision(False, GateReason.DEAD_COLLAPSED)

        if current_multiple < t.deep_down_multiple and ath_multiple < t.never_pumped_ath:
            return GateDecision(False, GateReason.DEAD_NEVER_PUMPED)

        if current_multiple > ath_multiple * t.new_peak_ratio:
            return GateDecision(True, GateReason.NEW_PEAK)
        if current_multiple >= ath_multiple * t.near_peak_ratio:
            return GateDecision(True, GateReason.NEAR_PEAK)
        if stale:
            return GateDecision(True, GateReason.STALE)
        return GateDecision(False, GateReason.NO_CHANGE)
