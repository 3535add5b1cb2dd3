"""Repository pattern implementations for data access.

This module provides data access for signals, price samples, metrics
snapshots and threshold events. All repositories operate on an
``AsyncSession`` owned by the caller; they flush but never commit.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import asdict, dataclass, fields
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from token_signal_tracker.storage.models import (
    TRACKED_STATUSES,
    PriceSampleModel,
    SignalMetricModel,
    SignalModel,
    ThresholdEventModel,
    TrackingStatus,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Snapshot columns that carry the time a multiple was first reached.
TIME_TO_MULTIPLE_COLUMNS = {
    2: "time_to_2x_seconds",
    3: "time_to_3x_seconds",
    5: "time_to_5x_seconds",
    10: "time_to_10x_seconds",
}

# Columns that move together with ath_price and are only replaced by a higher ATH.
_ATH_COLUMNS = ("ath_price", "ath_market_cap", "ath_multiple", "ath_at", "time_to_ath_seconds")
_CURRENT_COLUMNS = ("current_price", "current_market_cap", "current_multiple")


def as_utc(dt: datetime | None) -> datetime | None:
    """Return ``dt`` as an aware UTC datetime (SQLite returns naive values)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _insert_for(session: AsyncSession) -> Any:
    """Dialect-specific INSERT supporting ON CONFLICT."""
    if session.get_bind().dialect.name == "postgresql":
        return pg_insert
    return sqlite_insert


# ============================================================================
# Signals
# ============================================================================


@dataclass
class SignalDTO:
    """Data transfer object for tracked signals."""

    mint: str
    detected_at: datetime
    id: int | None = None
    chain: str = "solana"
    symbol: str | None = None
    name: str | None = None
    entry_price: float | None = None
    entry_price_at: datetime | None = None
    entry_supply: float | None = None
    entry_market_cap: float | None = None
    entry_price_provider: str | None = None
    tracking_status: str = TrackingStatus.ENTRY_PENDING.value

    @property
    def entry_time(self) -> datetime:
        """Entry time: when the entry price was observed, else detection time."""
        return self.entry_price_at or self.detected_at

    @classmethod
    def from_model(cls, model: SignalModel) -> SignalDTO:
        return cls(
            id=model.id,
            mint=model.mint,
            chain=model.chain,
            symbol=model.symbol,
            name=model.name,
            detected_at=as_utc(model.detected_at),
            entry_price=model.entry_price,
            entry_price_at=as_utc(model.entry_price_at),
            entry_supply=model.entry_supply,
            entry_market_cap=model.entry_market_cap,
            entry_price_provider=model.entry_price_provider,
            tracking_status=model.tracking_status,
        )


class SignalRepository:
    """Repository for tracked signals."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, signal_id: int) -> SignalDTO | None:
        model = await self.session.get(SignalModel, signal_id, populate_existing=True)
        return SignalDTO.from_model(model) if model else None

    async def insert(self, dto: SignalDTO) -> SignalDTO:
        """Insert a new signal and return it with its assigned id."""
        if dto.detected_at.tzinfo is None:
            raise ValueError("detected_at must be timezone-aware")
        model = SignalModel(
            mint=dto.mint,
            chain=dto.chain,
            symbol=dto.symbol,
            name=dto.name,
            detected_at=dto.detected_at,
            entry_price=dto.entry_price,
            entry_price_at=dto.entry_price_at,
            entry_supply=dto.entry_supply,
            entry_market_cap=dto.entry_market_cap,
            entry_price_provider=dto.entry_price_provider,
            tracking_status=dto.tracking_status,
        )
        self.session.add(model)
        await self.session.flush()
        return SignalDTO.from_model(model)

    async def list_tracked(self, *, limit: int | None = None) -> list[SignalDTO]:
        """Signals eligible for sampling and metrics (ACTIVE or ENTRY_PENDING)."""
        stmt = (
            select(SignalModel)
            .where(SignalModel.tracking_status.in_(TRACKED_STATUSES))
            .order_by(SignalModel.detected_at.asc(), SignalModel.id.asc())
            .execution_options(populate_existing=True)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return [SignalDTO.from_model(m) for m in result.scalars().all()]

    async def backfill_entry(
        self,
        signal_id: int,
        *,
        price: float,
        price_at: datetime,
        provider: str,
        supply: float | None = None,
        market_cap: float | None = None,
    ) -> bool:
        """Fill missing entry fields from the first observation and activate the signal.

        Entry fields already set are kept. Only applies while the signal is
        ENTRY_PENDING or still lacks an entry market cap.

        Returns:
            True if the signal was updated.
        """
        stmt = (
            update(SignalModel)
            .where(
                and_(
                    SignalModel.id == signal_id,
                    or_(
                        SignalModel.tracking_status == TrackingStatus.ENTRY_PENDING.value,
                        SignalModel.entry_market_cap.is_(None),
                    ),
                )
            )
            .values(
                entry_price=func.coalesce(SignalModel.entry_price, price),
                entry_price_at=func.coalesce(SignalModel.entry_price_at, price_at),
                entry_supply=func.coalesce(SignalModel.entry_supply, supply),
                entry_market_cap=func.coalesce(SignalModel.entry_market_cap, market_cap),
                entry_price_provider=func.coalesce(SignalModel.entry_price_provider, provider),
                tracking_status=TrackingStatus.ACTIVE.value,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return bool(result.rowcount)

    async def set_status(self, signal_id: int, status: TrackingStatus) -> None:
        await self.session.execute(
            update(SignalModel)
            .where(SignalModel.id == signal_id)
            .values(tracking_status=status.value)
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()


# ============================================================================
# Price samples
# ============================================================================


@dataclass
class PriceSampleDTO:
    """Data transfer object for price samples."""

    signal_id: int
    mint: str
    price: float
    provider: str
    sampled_at: datetime
    market_cap: float | None = None
    volume: float | None = None
    liquidity: float | None = None
    id: int | None = None

    @classmethod
    def from_model(cls, model: PriceSampleModel) -> PriceSampleDTO:
        return cls(
            id=model.id,
            signal_id=model.signal_id,
            mint=model.mint,
            price=model.price,
            market_cap=model.market_cap,
            volume=model.volume,
            liquidity=model.liquidity,
            provider=model.provider,
            sampled_at=as_utc(model.sampled_at),
        )


@dataclass(frozen=True)
class SampleRange:
    """Min/max aggregate over a signal's samples."""

    count: int
    min_price: float | None
    max_price: float | None
    min_market_cap: float | None
    max_market_cap: float | None


class PriceSampleRepository:
    """Append-only store of price observations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add_sample(self, dto: PriceSampleDTO) -> PriceSampleDTO:
        if dto.sampled_at.tzinfo is None:
            raise ValueError("sampled_at must be timezone-aware")
        model = PriceSampleModel(
            signal_id=dto.signal_id,
            mint=dto.mint,
            price=dto.price,
            market_cap=dto.market_cap,
            volume=dto.volume,
            liquidity=dto.liquidity,
            provider=dto.provider,
            sampled_at=dto.sampled_at,
        )
        self.session.add(model)
        await self.session.flush()
        return PriceSampleDTO.from_model(model)

    async def get_first_sample(self, signal_id: int) -> PriceSampleDTO | None:
        result = await self.session.execute(
            select(PriceSampleModel)
            .where(PriceSampleModel.signal_id == signal_id)
            .order_by(PriceSampleModel.sampled_at.asc(), PriceSampleModel.id.asc())
            .limit(1)
        )
        model = result.scalar_one_or_none()
        return PriceSampleDTO.from_model(model) if model else None

    async def get_latest_sample(
        self, signal_id: int, *, after: datetime | None = None
    ) -> PriceSampleDTO | None:
        """Most recent sample, optionally restricted to samples strictly after ``after``."""
        stmt = select(PriceSampleModel).where(PriceSampleModel.signal_id == signal_id)
        if after is not None:
            stmt = stmt.where(PriceSampleModel.sampled_at > after)
        stmt = stmt.order_by(PriceSampleModel.sampled_at.desc(), PriceSampleModel.id.desc()).limit(1)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return PriceSampleDTO.from_model(model) if model else None

    async def list_samples_ascending(
        self,
        signal_id: int,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[PriceSampleDTO]:
        stmt = select(PriceSampleModel).where(PriceSampleModel.signal_id == signal_id)
        if since is not None:
            stmt = stmt.where(PriceSampleModel.sampled_at >= since)
        if until is not None:
            stmt = stmt.where(PriceSampleModel.sampled_at <= until)
        stmt = stmt.order_by(PriceSampleModel.sampled_at.asc(), PriceSampleModel.id.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return [PriceSampleDTO.from_model(m) for m in result.scalars().all()]

    async def aggregate_min_max(
        self,
        signal_id: int,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> SampleRange:
        stmt = select(
            func.count(PriceSampleModel.id),
            func.min(PriceSampleModel.price),
            func.max(PriceSampleModel.price),
            func.min(PriceSampleModel.market_cap),
            func.max(PriceSampleModel.market_cap),
        ).where(PriceSampleModel.signal_id == signal_id)
        if since is not None:
            stmt = stmt.where(PriceSampleModel.sampled_at >= since)
        if until is not None:
            stmt = stmt.where(PriceSampleModel.sampled_at <= until)
        row = (await self.session.execute(stmt)).one()
        return SampleRange(
            count=int(row[0] or 0),
            min_price=row[1],
            max_price=row[2],
            min_market_cap=row[3],
            max_market_cap=row[4],
        )

    async def first_sample_reaching(
        self,
        signal_id: int,
        *,
        price_at_least: float | None = None,
        market_cap_at_least: float | None = None,
    ) -> PriceSampleDTO | None:
        """Earliest sample whose price (or market cap) reached the given level."""
        if (price_at_least is None) == (market_cap_at_least is None):
            raise ValueError("Pass exactly one of price_at_least / market_cap_at_least")
        stmt = select(PriceSampleModel).where(PriceSampleModel.signal_id == signal_id)
        if price_at_least is not None:
            stmt = stmt.where(PriceSampleModel.price >= price_at_least)
        else:
            stmt = stmt.where(PriceSampleModel.market_cap >= market_cap_at_least)
        stmt = stmt.order_by(PriceSampleModel.sampled_at.asc(), PriceSampleModel.id.asc()).limit(1)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return PriceSampleDTO.from_model(model) if model else None

    async def get_last_sampled_at(self, signal_ids: Sequence[int]) -> dict[int, datetime]:
        """Latest ``sampled_at`` per signal (signals without samples are absent)."""
        if not signal_ids:
            return {}
        result = await self.session.execute(
            select(PriceSampleModel.signal_id, func.max(PriceSampleModel.sampled_at))
            .where(PriceSampleModel.signal_id.in_(list(signal_ids)))
            .group_by(PriceSampleModel.signal_id)
        )
        return {int(row[0]): as_utc(row[1]) for row in result.all() if row[1] is not None}


# ============================================================================
# Metrics snapshots
# ============================================================================


@dataclass
class SignalMetricsDTO:
    """Data transfer object for the per-signal metrics snapshot."""

    signal_id: int
    current_price: float | None = None
    current_market_cap: float | None = None
    current_multiple: float | None = None
    ath_price: float | None = None
    ath_market_cap: float | None = None
    ath_multiple: float | None = None
    ath_at: datetime | None = None
    max_drawdown: float | None = None
    max_drawdown_price: float | None = None
    max_drawdown_market_cap: float | None = None
    max_drawdown_at: datetime | None = None
    time_to_ath_seconds: int | None = None
    time_to_drawdown_seconds: int | None = None
    time_from_drawdown_to_ath_seconds: int | None = None
    time_to_2x_seconds: int | None = None
    time_to_3x_seconds: int | None = None
    time_to_5x_seconds: int | None = None
    time_to_10x_seconds: int | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, model: SignalMetricModel) -> SignalMetricsDTO:
        values = {f.name: getattr(model, f.name) for f in fields(cls)}
        for key in ("ath_at", "max_drawdown_at", "updated_at"):
            values[key] = as_utc(values[key])
        return cls(**values)


class MetricsRepository:
    """Repository for metrics snapshots.

    Every write is a single INSERT .. ON CONFLICT DO UPDATE. The ATH columns
    are guarded in SQL so a concurrent or stale writer can never lower them,
    and ``time_to_Nx`` columns keep the earliest known value.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, signal_id: int) -> SignalMetricsDTO | None:
        result = await self.session.execute(
            select(SignalMetricModel).where(SignalMetricModel.signal_id == signal_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return SignalMetricsDTO.from_model(model) if model else None

    async def get_many(self, signal_ids: Sequence[int]) -> dict[int, SignalMetricsDTO]:
        if not signal_ids:
            return {}
        result = await self.session.execute(
            select(SignalMetricModel).where(SignalMetricModel.signal_id.in_(list(signal_ids)))
            .execution_options(populate_existing=True)
        )
        return {m.signal_id: SignalMetricsDTO.from_model(m) for m in result.scalars().all()}

    async def upsert_snapshot(self, dto: SignalMetricsDTO) -> SignalMetricsDTO:
        """Write a full snapshot atomically and return the stored row.

        ``current_*`` values that are None keep their stored value.
        """
        values = asdict(dto)
        values["updated_at"] = dto.updated_at or datetime.now(UTC)
        await self._upsert(values)
        return await self._get_stored(dto.signal_id)

    async def record_live_price(
        self,
        signal_id: int,
        *,
        price: float,
        market_cap: float | None,
        multiple: float | None,
        observed_at: datetime,
        seconds_since_entry: int | None,
        entry_price: float | None = None,
        entry_market_cap: float | None = None,
        entry_at: datetime | None = None,
    ) -> SignalMetricsDTO:
        """Refresh the current values; raise the ATH to the live price if it exceeds it.

        A live price below ``entry_price`` proposes the entry value at
        ``entry_at`` as the ATH instead, so the stored ATH never sits
        below entry. ``updated_at`` is left alone on existing rows so the
        candle-based refresh still sees its own staleness.
        """
        values: dict[str, Any] = {
            "signal_id": signal_id,
            "current_price": price,
            "current_market_cap": market_cap,
            "current_multiple": multiple,
            "ath_price": price,
            "ath_market_cap": market_cap,
            "ath_multiple": multiple,
            "ath_at": observed_at,
            "time_to_ath_seconds": seconds_since_entry,
        }
        if entry_price is not None and price < entry_price:
            values.update(
                ath_price=entry_price,
                ath_market_cap=entry_market_cap,
                ath_multiple=1.0,
                ath_at=entry_at or observed_at,
                time_to_ath_seconds=0 if entry_at is not None else seconds_since_entry,
            )
        await self._upsert(values, touch_updated_at=False, insert_updated_at=observed_at)
        return await self._get_stored(signal_id)

    async def set_time_to_multiple(self, signal_id: int, multiple: int, seconds: int) -> bool:
        """Record time-to-Nx when unset or when ``seconds`` is earlier than the stored value."""
        column_name = TIME_TO_MULTIPLE_COLUMNS.get(multiple)
        if column_name is None:
            return False
        column = getattr(SignalMetricModel, column_name)
        result = await self.session.execute(
            update(SignalMetricModel)
            .where(
                and_(
                    SignalMetricModel.signal_id == signal_id,
                    or_(column.is_(None), column > seconds),
                )
            )
            .values({column_name: seconds})
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()
        return bool(result.rowcount)

    async def _get_stored(self, signal_id: int) -> SignalMetricsDTO:
        stored = await self.get(signal_id)
        if stored is None:
            raise RuntimeError(f"Metrics row for signal {signal_id} missing after upsert")
        return stored

    async def _upsert(
        self,
        values: dict[str, Any],
        *,
        touch_updated_at: bool = True,
        insert_updated_at: datetime | None = None,
    ) -> None:
        insert = _insert_for(self.session)
        row = dict(values)
        if "updated_at" not in row or row["updated_at"] is None:
            row["updated_at"] = insert_updated_at or datetime.now(UTC)

        stmt = insert(SignalMetricModel).values(**row)
        existing = SignalMetricModel.__table__.c
        excluded = stmt.excluded

        # A new ATH replaces the stored one only when strictly higher.
        higher_ath = or_(
            existing.ath_price.is_(None),
            and_(excluded.ath_price.is_not(None), excluded.ath_price > existing.ath_price),
        )

        set_: dict[str, Any] = {}
        for key in values:
            if key == "signal_id":
                continue
            if key in _ATH_COLUMNS:
                set_[key] = case((higher_ath, getattr(excluded, key)), else_=getattr(existing, key))
            elif key in TIME_TO_MULTIPLE_COLUMNS.values():
                new, old = getattr(excluded, key), getattr(existing, key)
                set_[key] = case(
                    (old.is_(None), new),
                    (and_(new.is_not(None), new < old), new),
                    else_=old,
                )
            elif key in _CURRENT_COLUMNS:
                set_[key] = func.coalesce(getattr(excluded, key), getattr(existing, key))
            elif key == "updated_at":
                if touch_updated_at:
                    set_[key] = excluded.updated_at
            else:
                set_[key] = getattr(excluded, key)

        stmt = stmt.on_conflict_do_update(index_elements=["signal_id"], set_=set_)
        await self.session.execute(stmt)
        await self.session.flush()


# ============================================================================
# Threshold events
# ============================================================================


@dataclass
class ThresholdEventDTO:
    """Data transfer object for threshold crossings."""

    signal_id: int
    multiplier: float
    basis: str
    hit_price: float
    hit_at: datetime
    time_to_hit_seconds: int
    hit_market_cap: float | None = None
    provider: str | None = None
    id: int | None = None

    @classmethod
    def from_model(cls, model: ThresholdEventModel) -> ThresholdEventDTO:
        return cls(
            id=model.id,
            signal_id=model.signal_id,
            multiplier=model.multiplier,
            basis=model.basis,
            hit_price=model.hit_price,
            hit_market_cap=model.hit_market_cap,
            hit_at=as_utc(model.hit_at),
            time_to_hit_seconds=model.time_to_hit_seconds,
            provider=model.provider,
        )


class ThresholdEventRepository:
    """Repository for threshold events. The unique key is the source of truth."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def exists(self, signal_id: int, multiplier: float, basis: str) -> bool:
        result = await self.session.execute(
            select(ThresholdEventModel.id).where(
                and_(
                    ThresholdEventModel.signal_id == signal_id,
                    ThresholdEventModel.multiplier == multiplier,
                    ThresholdEventModel.basis == basis,
                )
            )
        )
        return result.first() is not None

    async def list_for_signal(self, signal_id: int) -> list[ThresholdEventDTO]:
        result = await self.session.execute(
            select(ThresholdEventModel)
            .where(ThresholdEventModel.signal_id == signal_id)
            .order_by(ThresholdEventModel.hit_at.asc(), ThresholdEventModel.multiplier.asc())
        )
        return [ThresholdEventDTO.from_model(m) for m in result.scalars().all()]

    async def recorded_keys(self, signal_id: int) -> set[tuple[float, str]]:
        """(multiplier, basis) pairs already recorded for a signal."""
        result = await self.session.execute(
            select(ThresholdEventModel.multiplier, ThresholdEventModel.basis).where(
                ThresholdEventModel.signal_id == signal_id
            )
        )
        return {(float(row[0]), str(row[1])) for row in result.all()}

    async def insert_if_absent(self, dto: ThresholdEventDTO) -> bool:
        """Insert the event unless already recorded.

        Runs inside a SAVEPOINT so a unique-key violation from a concurrent
        writer leaves the caller's transaction usable.

        Returns:
            True if this call created the event.
        """
        if await self.exists(dto.signal_id, dto.multiplier, dto.basis):
            return False
        model = ThresholdEventModel(
            signal_id=dto.signal_id,
            multiplier=dto.multiplier,
            basis=dto.basis,
            hit_price=dto.hit_price,
            hit_market_cap=dto.hit_market_cap,
            hit_at=dto.hit_at,
            time_to_hit_seconds=dto.time_to_hit_seconds,
            provider=dto.provider,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(model)
                await self.session.flush()
        except IntegrityError:
            logger.debug(
                "Threshold %sx (%s) for signal %d already recorded",
                dto.multiplier,
                dto.basis,
                dto.signal_id,
            )
            return False
        return True
