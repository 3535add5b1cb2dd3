"""Alert delivery channels."""

from token_signal_tracker.alerter.channels.telegram import TelegramChannel

__all__ = ["TelegramChannel"]
