"""Initial schema for signals, price samples, metrics and threshold events.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-16 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Signals table
    op.create_table(
        "signals",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("mint", sa.String(64), nullable=False),
        sa.Column("chain", sa.String(20), nullable=False),
        sa.Column("symbol", sa.String(32), nullable=True),
        sa.Column("name", sa.String(128), nullable=True),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("entry_price", sa.Float(), nullable=True),
        sa.Column("entry_price_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("entry_supply", sa.Float(), nullable=True),
        sa.Column("entry_market_cap", sa.Float(), nullable=True),
        sa.Column("entry_price_provider", sa.String(32), nullable=True),
        sa.Column("tracking_status", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_signals_mint", "signals", ["mint"])
    op.create_index("idx_signals_tracking_status", "signals", ["tracking_status"])
    op.create_index("idx_signals_detected_at", "signals", ["detected_at"])

    # Price samples table
    op.create_table(
        "price_samples",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("signal_id", sa.Integer(), nullable=False),
        sa.Column("mint", sa.String(64), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("market_cap", sa.Float(), nullable=True),
        sa.Column("volume", sa.Float(), nullable=True),
        sa.Column("liquidity", sa.Float(), nullable=True),
        sa.Column("provider", sa.String(32), nullable=False),
        sa.Column("sampled_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["signal_id"], ["signals.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_price_samples_signal_sampled", "price_samples", ["signal_id", "sampled_at"]
    )

    # Metrics snapshot table
    op.create_table(
        "signal_metrics",
        sa.Column("signal_id", sa.Integer(), nullable=False),
        sa.Column("current_price", sa.Float(), nullable=True),
        sa.Column("current_market_cap", sa.Float(), nullable=True),
        sa.Column("current_multiple", sa.Float(), nullable=True),
        sa.Column("ath_price", sa.Float(), nullable=True),
        sa.Column("ath_market_cap", sa.Float(), nullable=True),
        sa.Column("ath_multiple", sa.Float(), nullable=True),
        sa.Column("ath_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_drawdown", sa.Float(), nullable=True),
        sa.Column("max_drawdown_price", sa.Float(), nullable=True),
        sa.Column("max_drawdown_market_cap", sa.Float(), nullable=True),
        sa.Column("max_drawdown_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("time_to_ath_seconds", sa.Integer(), nullable=True),
        sa.Column("time_to_drawdown_seconds", sa.Integer(), nullable=True),
        sa.Column("time_from_drawdown_to_ath_seconds", sa.Integer(), nullable=True),
        sa.Column("time_to_2x_seconds", sa.Integer(), nullable=True),
        sa.Column("time_to_3x_seconds", sa.Integer(), nullable=True),
        sa.Column("time_to_5x_seconds", sa.Integer(), nullable=True),
        sa.Column("time_to_10x_seconds", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["signal_id"], ["signals.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("signal_id"),
    )

    # Threshold events table
    op.create_table(
        "threshold_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("signal_id", sa.Integer(), nullable=False),
        sa.Column("multiplier", sa.Float(), nullable=False),
        sa.Column("basis", sa.String(16), nullable=False),
        sa.Column("hit_price", sa.Float(), nullable=False),
        sa.Column("hit_market_cap", sa.Float(), nullable=True),
        sa.Column("hit_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("time_to_hit_seconds", sa.Integer(), nullable=False),
        sa.Column("provider", sa.String(32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["signal_id"], ["signals.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "signal_id", "multiplier", "basis", name="uq_threshold_events_signal_multiplier_basis"
        ),
    )
    op.create_index("idx_threshold_events_signal", "threshold_events", ["signal_id"])


def downgrade() -> None:
    op.drop_index("idx_threshold_events_signal", table_name="threshold_events")
    op.drop_table("threshold_events")
    op.drop_table("signal_metrics")
    op.drop_index("idx_price_samples_signal_sampled", table_name="price_samples")
    op.drop_table("price_samples")
    op.drop_index("idx_signals_detected_at", table_name="signals")
    op.drop_index("idx_signals_tracking_status", table_name="signals")
    op.drop_index("idx_signals_mint", table_name="signals")
    op.drop_table("signals")
