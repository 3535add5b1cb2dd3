"""Periodic jobs - price sampling and ATH refresh."""

from token_signal_tracker.jobs.ath_refresh import AthCycleReport, AthRefreshJob, SignalState
from token_signal_tracker.jobs.batching import BatchReport, run_in_batches
from token_signal_tracker.jobs.sampling import (
    SamplingJob,
    is_due_for_sampling,
    market_cap_from,
    sampling_interval_for,
)

__all__ = [
    "AthCycleReport",
    "AthRefreshJob",
    "BatchReport",
    "SamplingJob",
    "SignalState",
    "is_due_for_sampling",
    "market_cap_from",
    "run_in_batches",
    "sampling_interval_for",
]
