"""Alerter - Notification formatting and delivery."""

from token_signal_tracker.alerter.dispatcher import (
    AlertChannel,
    AlertDispatcher,
    NotificationError,
    Notifier,
)
from token_signal_tracker.alerter.formatter import AlertFormatter
from token_signal_tracker.alerter.models import (
    FormattedAlert,
    MetricsUpdatedNotification,
    Notification,
    ThresholdCrossedNotification,
)

__all__ = [
    "AlertChannel",
    "AlertDispatcher",
    "AlertFormatter",
    "FormattedAlert",
    "MetricsUpdatedNotification",
    "Notification",
    "NotificationError",
    "Notifier",
    "ThresholdCrossedNotification",
]
