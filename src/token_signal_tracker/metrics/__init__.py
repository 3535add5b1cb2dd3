"""Metrics engine - baselines, ATH/drawdown, recompute gate and thresholds."""

from token_signal_tracker.metrics.aggregator import (
    AthDrawdownAggregator,
    compute_ath_drawdown,
    merge_tier_candles,
)
from token_signal_tracker.metrics.baseline import (
    MissingBaselineError,
    require_baseline,
    resolve_baseline,
)
from token_signal_tracker.metrics.engine import MetricsEngine
from token_signal_tracker.metrics.gate import GateThresholds, RecomputeGate
from token_signal_tracker.metrics.hit_cache import HitCacheConfig, ThresholdHitCache
from token_signal_tracker.metrics.models import (
    AthResult,
    Baseline,
    BaselineSource,
    GateDecision,
    GateReason,
    PriceObservation,
    TierWindow,
)
from token_signal_tracker.metrics.thresholds import ThresholdRecorder
from token_signal_tracker.metrics.tiers import plan_tiers

__all__ = [
    "AthDrawdownAggregator",
    "AthResult",
    "Baseline",
    "BaselineSource",
    "GateDecision",
    "GateReason",
    "GateThresholds",
    "HitCacheConfig",
    "MetricsEngine",
    "MissingBaselineError",
    "PriceObservation",
    "RecomputeGate",
    "ThresholdHitCache",
    "ThresholdRecorder",
    "TierWindow",
    "compute_ath_drawdown",
    "merge_tier_candles",
    "plan_tiers",
    "require_baseline",
    "resolve_baseline",
]
