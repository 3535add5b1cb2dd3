"""Storage layer - Database schemas and repositories."""

from token_signal_tracker.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from token_signal_tracker.storage.models import (
    Base,
    PriceSampleModel,
    SignalMetricModel,
    SignalModel,
    ThresholdBasis,
    ThresholdEventModel,
    TrackingStatus,
)
from token_signal_tracker.storage.repos import (
    MetricsRepository,
    PriceSampleDTO,
    PriceSampleRepository,
    SampleRange,
    SignalDTO,
    SignalMetricsDTO,
    SignalRepository,
    ThresholdEventDTO,
    ThresholdEventRepository,
)

__all__ = [
    "Base",
    "DatabaseManager",
    "MetricsRepository",
    "PriceSampleDTO",
    "PriceSampleModel",
    "PriceSampleRepository",
    "SampleRange",
    "SignalDTO",
    "SignalMetricModel",
    "SignalMetricsDTO",
    "SignalModel",
    "SignalRepository",
    "ThresholdBasis",
    "ThresholdEventDTO",
    "ThresholdEventModel",
    "ThresholdEventRepository",
    "TrackingStatus",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
