"""Tests for the alert formatter."""

from datetime import UTC, datetime

import pytest

from token_signal_tracker.alerter.formatter import (
    AlertFormatter,
    escape_telegram_markdown,
    format_duration,
    format_price,
    format_usd,
    truncate_mint,
)
from token_signal_tracker.alerter.models import MetricsUpdatedNotification, ThresholdCrossedNotification
from token_signal_tracker.storage.repos import SignalMetricsDTO


@pytest.fixture
def crossing(sample_mint: str) -> ThresholdCrossedNotification:
    return ThresholdCrossedNotification(
        signal_id=1,
        mint=sample_mint,
        multiplier=5.0,
        basis="price",
        hit_price=0.00123,
        hit_at=datetime(2026, 1, 10, 14, 5, tzinfo=UTC),
        time_to_hit_seconds=3900,
        hit_market_cap=2_500_000.0,
        symbol="TOK",
    )


class TestHelpers:
    def test_truncate_mint(self, sample_mint: str) -> None:
        assert truncate_mint(sample_mint) == "7GCi...W2hr"
        assert truncate_mint("short") == "short"

    @pytest.mark.parametrize(
        ("price", "expected"),
        [(None, "n/a"), (12.5, "$12.5000"), (0.00123, "$0.00123"), (0.0000012, "$1.200e-06")],
    )
    def test_format_price(self, price: float | None, expected: str) -> None:
        assert format_price(price) == expected

    def test_format_usd(self) -> None:
        assert format_usd(2_500_000) == "$2.5M"
        assert format_usd(350_000) == "$350.0K"
        assert format_usd(999) == "$999"

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(45, "45s"), (720, "12m"), (3900, "1h 5m"), (93_600, "1d 2h"), (None, "n/a")],
    )
    def test_format_duration(self, seconds: int | None, expected: str) -> None:
        assert format_duration(seconds) == expected

    def test_escape_markdown(self) -> None:
        assert escape_telegram_markdown("5x (price).") == "5x \\(price\\)\\."
        assert escape_telegram_markdown("a\\b") == "a\\\\b"


class TestAlertFormatter:
    def test_threshold_detailed(self, crossing: ThresholdCrossedNotification, sample_mint: str) -> None:
        alert = AlertFormatter().format(crossing)

        assert alert.title == "🚀 TOK hit 5x (price)"
        assert "Time to hit: 1h 5m" in alert.body
        assert "Market cap: $2.5M" in alert.body
        assert alert.links["chart"] == f"https://dexscreener.com/solana/{sample_mint}"
        assert "[Chart](" in alert.telegram_markdown
        assert "\\(price\\)" in alert.telegram_markdown
        assert alert.plain_text.startswith(alert.title)

    def test_compact_keeps_two_lines(self, crossing: ThresholdCrossedNotification) -> None:
        alert = AlertFormatter("compact").format(crossing)
        assert alert.body.count("\n") == 1
        assert "[Chart]" not in alert.telegram_markdown

    def test_metrics_update(self, sample_mint: str) -> None:
        metrics = SignalMetricsDTO(
            signal_id=1,
            current_multiple=1.8,
            current_price=0.0018,
            ath_multiple=3.0,
            ath_price=0.003,
            max_drawdown=-0.25,
            time_to_ath_seconds=720,
        )
        alert = AlertFormatter().format(MetricsUpdatedNotification(signal_id=1, mint=sample_mint, metrics=metrics))

        assert alert.title == "📊 7GCi...W2hr metrics updated"
        assert "ATH: 3.00x ($0.003)" in alert.body
        assert "Max drawdown: -25.0%" in alert.body
        assert "Time to ATH: 12m" in alert.body
