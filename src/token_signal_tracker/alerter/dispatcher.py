"""Fan-out of notifications to delivery channels."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from token_signal_tracker.alerter.formatter import AlertFormatter
from token_signal_tracker.alerter.models import (
    FormattedAlert,
    MetricsUpdatedNotification,
    Notification,
)

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Raised by a channel when a message could not be delivered."""


@runtime_checkable
class Notifier(Protocol):
    """Consumer of engine notifications."""

    async def publish(self, notification: Notification) -> None: ...


@runtime_checkable
class AlertChannel(Protocol):
    """A single delivery target (chat, webhook, ...)."""

    name: str

    async def send(self, alert: FormattedAlert) -> None: ...


class AlertDispatcher:
    """Formats notifications and delivers them to every channel.

    Channel failures are logged and never raised. In dry-run mode alerts are
    only logged.
    """

    def __init__(
        self,
        channels: list[AlertChannel] | None = None,
        *,
        formatter: AlertFormatter | None = None,
        dry_run: bool = False,
        notify_metrics_updates: bool = False,
    ) -> None:
        self._channels = list(channels or [])
        self._formatter = formatter or AlertFormatter()
        self._dry_run = dry_run
        self._notify_metrics_updates = notify_metrics_updates
        self.sent_count = 0
        self.failed_count = 0

    @property
    def channels(self) -> list[AlertChannel]:
        return list(self._channels)

    async def publish(self, notification: Notification) -> None:
        if isinstance(notification, MetricsUpdatedNotification) and not self._notify_metrics_updates:
            return

        alert = self._formatter.format(notification)
        if self._dry_run or not self._channels:
            logger.info("[alert] %s\n%s", alert.title, alert.body)
            return

        for channel in self._channels:
            try:
                await channel.send(alert)
                self.sent_count += 1
            except Exception as e:
                self.failed_count += 1
                logger.warning("Channel %s failed to deliver '%s': %s", channel.name, alert.title, e)

    async def close(self) -> None:
        for channel in self._channels:
            close = getattr(channel, "close", None)
            if close is not None:
                await close()
