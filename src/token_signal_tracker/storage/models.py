"""SQLAlchemy models for persistent storage.

This module defines the database schema for tracked signals, their price
samples, the per-signal metrics snapshot and recorded threshold crossings.

Prices, market caps and supplies are stored as double precision: token
prices span many orders of magnitude (1e-9 .. 1e5 USD).
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class TrackingStatus(str, Enum):
    """Signal lifecycle. Only ACTIVE and ENTRY_PENDING signals are tracked."""

    ENTRY_PENDING = "ENTRY_PENDING"
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class ThresholdBasis(str, Enum):
    """Value a threshold multiple is measured on."""

    PRICE = "price"
    MARKET_CAP = "market_cap"


TRACKED_STATUSES = (TrackingStatus.ACTIVE.value, TrackingStatus.ENTRY_PENDING.value)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class SignalModel(Base):
    """A token mention being tracked, with its entry baseline."""

    __tablename__ = "signals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mint: Mapped[str] = mapped_column(String(64), nullable=False)
    chain: Mapped[str] = mapped_column(String(20), nullable=False, default="solana")
    symbol: Mapped[str | None] = mapped_column(String(32), nullable=True)
    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Entry baseline: written once at detection or by the first sample backfill.
    entry_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    entry_price_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    entry_supply: Mapped[float | None] = mapped_column(Float, nullable=True)
    entry_market_cap: Mapped[float | None] = mapped_column(Float, nullable=True)
    entry_price_provider: Mapped[str | None] = mapped_column(String(32), nullable=True)

    tracking_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TrackingStatus.ENTRY_PENDING.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_signals_mint", "mint"),
        Index("idx_signals_tracking_status", "tracking_status"),
        Index("idx_signals_detected_at", "detected_at"),
    )


class PriceSampleModel(Base):
    """Append-only price/volume observation for a signal."""

    __tablename__ = "price_samples"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    signal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("signals.id", ondelete="CASCADE"), nullable=False
    )
    mint: Mapped[str] = mapped_column(String(64), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    market_cap: Mapped[float | None] = mapped_column(Float, nullable=True)
    volume: Mapped[float | None] = mapped_column(Float, nullable=True)
    liquidity: Mapped[float | None] = mapped_column(Float, nullable=True)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    sampled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_price_samples_signal_sampled", "signal_id", "sampled_at"),)


class SignalMetricModel(Base):
    """Latest derived performance snapshot, one row per signal.

    ``max_drawdown`` is a fraction <= 0 (e.g. -0.2 for -20%).
    """

    __tablename__ = "signal_metrics"

    signal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("signals.id", ondelete="CASCADE"), primary_key=True
    )

    current_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_market_cap: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_multiple: Mapped[float | None] = mapped_column(Float, nullable=True)

    ath_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    ath_market_cap: Mapped[float | None] = mapped_column(Float, nullable=True)
    ath_multiple: Mapped[float | None] = mapped_column(Float, nullable=True)
    ath_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    max_drawdown: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_drawdown_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_drawdown_market_cap: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_drawdown_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    time_to_ath_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    time_to_drawdown_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    time_from_drawdown_to_ath_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    time_to_2x_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    time_to_3x_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    time_to_5x_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    time_to_10x_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )


class ThresholdEventModel(Base):
    """First crossing of a performance multiplier, recorded at most once."""

    __tablename__ = "threshold_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    signal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("signals.id", ondelete="CASCADE"), nullable=False
    )
    multiplier: Mapped[float] = mapped_column(Float, nullable=False)
    basis: Mapped[str] = mapped_column(String(16), nullable=False)  # price | market_cap
    hit_price: Mapped[float] = mapped_column(Float, nullable=False)
    hit_market_cap: Mapped[float | None] = mapped_column(Float, nullable=True)
    hit_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    time_to_hit_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    provider: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint(
            "signal_id", "multiplier", "basis", name="uq_threshold_events_signal_multiplier_basis"
        ),
        Index("idx_threshold_events_signal", "signal_id"),
    )
