"""Alert message formatter for Telegram and plain-text delivery.

This module turns threshold crossings and metrics snapshots into
human-readable messages.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Literal

from token_signal_tracker.alerter.models import (
    FormattedAlert,
    MetricsUpdatedNotification,
    Notification,
    ThresholdCrossedNotification,
)

DEXSCREENER_TOKEN_URL = "https://dexscreener.com/{chain}/{mint}"
SOLSCAN_TOKEN_URL = "https://solscan.io/token/{mint}"

# Backslash first so escapes added for later characters are left alone.
TELEGRAM_SPECIAL_CHARS = "\\_*[]()~`>#+-=|{}.!"


def truncate_mint(mint: str, chars: int = 4) -> str:
    """Truncate a token mint to ABCD...WXYZ format."""
    if len(mint) < chars * 2 + 3:
        return mint
    return f"{mint[:chars]}...{mint[-chars:]}"


def format_price(price: float | None) -> str:
    """Format a token price, keeping significant digits for tiny values."""
    if price is None:
        return "n/a"
    if price >= 1:
        return f"${price:,.4f}"
    return f"${price:.4g}" if price >= 1e-4 else f"${price:.3e}"


def format_usd(amount: float | None) -> str:
    """Format a USD amount like $1.2M / $350.0K."""
    if amount is None:
        return "n/a"
    for divisor, suffix in ((1e9, "B"), (1e6, "M"), (1e3, "K")):
        if abs(amount) >= divisor:
            return f"${amount / divisor:.1f}{suffix}"
    return f"${amount:,.0f}"


def format_duration(seconds: int | None) -> str:
    """Format seconds as e.g. 2d 3h, 4h 5m, 12m or 30s."""
    if seconds is None:
        return "n/a"
    delta = timedelta(seconds=seconds)
    days, rem = delta.days, delta.seconds
    hours, minutes = rem // 3600, (rem % 3600) // 60
    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m"
    return f"{seconds}s"


def format_multiple(multiple: float | None) -> str:
    if multiple is None:
        return "n/a"
    return f"{multiple:.2f}x"


def escape_telegram_markdown(text: str) -> str:
    """Escape special Telegram MarkdownV2 characters."""
    for char in TELEGRAM_SPECIAL_CHARS:
        text = text.replace(char, f"\\{char}")
    return text


class AlertFormatter:
    """Formats notifications into multi-channel alert messages.

    Supports two verbosity levels:
    - compact: one line per notification
    - detailed: every metric and links
    """

    def __init__(
        self,
        verbosity: Literal["compact", "detailed"] = "detailed",
        *,
        chain: str = "solana",
    ) -> None:
        self.verbosity = verbosity
        self.chain = chain

    def format(self, notification: Notification) -> FormattedAlert:
        """Format a notification into a multi-channel alert."""
        links = self._build_links(notification.mint)
        label = notification.symbol or truncate_mint(notification.mint)

        if isinstance(notification, ThresholdCrossedNotification):
            title = f"🚀 {label} hit {notification.multiplier:g}x ({notification.basis})"
            lines = self._threshold_lines(notification)
        else:
            title = f"📊 {label} metrics updated"
            lines = self._metrics_lines(notification)

        if self.verbosity == "compact":
            lines = lines[:2]

        body = "\n".join(f"{k}: {v}" for k, v in lines)
        return FormattedAlert(
            title=title,
            body=body,
            telegram_markdown=self._build_telegram_markdown(title, lines, links),
            plain_text=self._build_plain_text(title, lines, links),
            links=links,
        )

    def _build_links(self, mint: str) -> dict[str, str]:
        return {
            "chart": DEXSCREENER_TOKEN_URL.format(chain=self.chain, mint=mint),
            "token": SOLSCAN_TOKEN_URL.format(mint=mint),
        }

    def _threshold_lines(self, n: ThresholdCrossedNotification) -> list[tuple[str, str]]:
        return [
            ("Price", format_price(n.hit_price)),
            ("Time to hit", format_duration(n.time_to_hit_seconds)),
            ("Market cap", format_usd(n.hit_market_cap)),
            ("Hit at", n.hit_at.strftime("%Y-%m-%d %H:%M UTC")),
            ("Mint", n.mint),
        ]

    def _metrics_lines(self, n: MetricsUpdatedNotification) -> list[tuple[str, str]]:
        m = n.metrics
        drawdown = f"{m.max_drawdown:.1%}" if m.max_drawdown is not None else "n/a"
        return [
            ("Current", f"{format_multiple(m.current_multiple)} ({format_price(m.current_price)})"),
            ("ATH", f"{format_multiple(m.ath_multiple)} ({format_price(m.ath_price)})"),
            ("ATH market cap", format_usd(m.ath_market_cap)),
            ("Time to ATH", format_duration(m.time_to_ath_seconds)),
            ("Max drawdown", drawdown),
            ("Drawdown to ATH", format_duration(m.time_from_drawdown_to_ath_seconds)),
            ("Mint", n.mint),
        ]

    def _build_telegram_markdown(
        self, title: str, lines: list[tuple[str, str]], links: dict[str, str]
    ) -> str:
        out = [f"*{escape_telegram_markdown(title)}*", ""]
        for key, value in lines:
            out.append(f"*{escape_telegram_markdown(key)}:* {escape_telegram_markdown(value)}")
        if self.verbosity == "detailed":
            out.append("")
            out.append(f"[Chart]({links['chart']}) \\| [Token]({links['token']})")
        return "\n".join(out)

    def _build_plain_text(
        self, title: str, lines: list[tuple[str, str]], links: dict[str, str]
    ) -> str:
        out = [title, "=" * 30, ""]
        out.extend(f"{key}: {value}" for key, value in lines)
        if self.verbosity == "detailed":
            out.append("")
            out.extend(f"{name.title()}: {url}" for name, url in links.items())
        return "\n".join(out)
