"""Notification payloads and formatted alert messages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from token_signal_tracker.storage.repos import SignalMetricsDTO


@dataclass(frozen=True)
class ThresholdCrossedNotification:
    """A signal's price or market-cap multiple crossed a configured threshold."""

    signal_id: int
    mint: str
    multiplier: float
    basis: str
    hit_price: float
    hit_at: datetime
    time_to_hit_seconds: int
    hit_market_cap: float | None = None
    symbol: str | None = None


@dataclass(frozen=True)
class MetricsUpdatedNotification:
    """A full metrics snapshot was recomputed and persisted."""

    signal_id: int
    mint: str
    metrics: SignalMetricsDTO
    symbol: str | None = None


Notification = ThresholdCrossedNotification | MetricsUpdatedNotification


@dataclass(frozen=True)
class FormattedAlert:
    """A notification rendered for each delivery channel."""

    title: str
    body: str
    telegram_markdown: str
    plain_text: str
    links: dict[str, str] = field(default_factory=dict)
