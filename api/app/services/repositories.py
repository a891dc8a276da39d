"""SQLAlchemy implementations of the booking engine's stores.

Unlocked reads open a short-lived session of their own. Methods taking ``tx``
run on the AsyncSession yielded by SqlTransactionManager.begin() and take
row locks with SELECT ... FOR UPDATE.

Query construction lives in module-level functions so the exact SQL can be
inspected without a database.
"""

import logging
from collections.abc import Sequence
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Select, and_, func, or_, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models import BlockedTimeRange, BlockType, Booking, BookingStatus, Court, CourtAvailabilityRule, Facility
from app.models import BookingPolicy as PolicyRow
from app.services.errors import CourtNotFound, LockTimeout
from app.services.policy import BookingPolicy, SystemDefaults, resolve_policy

logger = logging.getLogger(__name__)

# lock_not_available (lock_timeout hit), deadlock_detected
LOCK_FAILURE_SQLSTATES = frozenset({"55P03", "40P01"})


def is_lock_failure(exc: DBAPIError) -> bool:
    for err in (exc.orig, getattr(exc.orig, "__cause__", None)):
        code = getattr(err, "sqlstate", None) or getattr(err, "pgcode", None)
        if code in LOCK_FAILURE_SQLSTATES:
            return True
    return False


# ---------------------------------------------------------------------------
# Query builders
# ---------------------------------------------------------------------------


def blocking_reservation_clause(now: datetime):
    """Confirmed, completed, or pending and not yet expired."""
    return or_(
        Booking.status.in_([BookingStatus.CONFIRMED, BookingStatus.COMPLETED]),
        and_(
            Booking.status == BookingStatus.PENDING,
            or_(Booking.expires_at.is_(None), Booking.expires_at > now),
        ),
    )


def blocking_reservations_query(court_id: int, booking_date: date, now: datetime) -> Select:
    return (
        select(Booking)
        .where(
            Booking.court_id == court_id,
            Booking.booking_date == booking_date,
            blocking_reservation_clause(now),
        )
        .order_by(Booking.start_minute)
    )


def overlapping_reservation_query(
    court_id: int, booking_date: date, start_minute: int, end_minute: int, now: datetime
) -> Select:
    return (
        blocking_reservations_query(court_id, booking_date, now)
        .where(Booking.start_minute < end_minute, Booking.end_minute > start_minute)
        .limit(1)
        .with_for_update()
    )


def applicable_blocked_ranges_query(court_id: int, facility_id: int, booking_date: date, day_of_week: int) -> Select:
    return (
        select(BlockedTimeRange)
        .where(
            or_(
                BlockedTimeRange.court_id == court_id,
                and_(BlockedTimeRange.court_id.is_(None), BlockedTimeRange.facility_id == facility_id),
            ),
            or_(
                and_(BlockedTimeRange.block_type == BlockType.ONE_TIME, BlockedTimeRange.start_date == booking_date),
                and_(BlockedTimeRange.block_type == BlockType.RECURRING, BlockedTimeRange.day_of_week == day_of_week),
                and_(
                    BlockedTimeRange.block_type == BlockType.DATE_RANGE,
                    BlockedTimeRange.start_date <= booking_date,
                    BlockedTimeRange.end_date >= booking_date,
                ),
            ),
            BlockedTimeRange.is_active.is_(True),
        )
        .order_by(BlockedTimeRange.start_minute.asc().nulls_last(), BlockedTimeRange.id)
    )


def intersecting_blocked_range_query(
    court_id: int,
    facility_id: int,
    booking_date: date,
    day_of_week: int,
    start_minute: int,
    end_minute: int,
) -> Select:
    return (
        applicable_blocked_ranges_query(court_id, facility_id, booking_date, day_of_week)
        .where(
            or_(
                # No window: the whole day
                BlockedTimeRange.start_minute.is_(None),
                BlockedTimeRange.end_minute.is_(None),
                and_(BlockedTimeRange.start_minute < end_minute, BlockedTimeRange.end_minute > start_minute),
            )
        )
        .limit(1)
        .with_for_update()
    )


def expired_pending_query(now: datetime, limit: int) -> Select:
    return (
        select(Booking)
        .where(
            Booking.status == BookingStatus.PENDING,
            Booking.expires_at.is_not(None),
            Booking.expires_at <= now,
        )
        .order_by(Booking.expires_at)
        .limit(limit)
        .with_for_update()
    )


def pending_for_facility_query(facility_id: int, now: datetime) -> Select:
    """Live pending bookings on any court of a facility, newest first."""
    return (
        select(Booking)
        .join(Court, Court.id == Booking.court_id)
        .where(
            Court.facility_id == facility_id,
            Booking.status == BookingStatus.PENDING,
            or_(Booking.expires_at.is_(None), Booking.expires_at > now),
        )
        .order_by(Booking.created_at.desc(), Booking.id.desc())
    )


def elapsed_confirmed_query(today: date, now_minute: int, limit: int) -> Select:
    return (
        select(Booking)
        .where(
            Booking.status == BookingStatus.CONFIRMED,
            or_(
                Booking.booking_date < today,
                and_(Booking.booking_date == today, Booking.end_minute <= now_minute),
            ),
        )
        .order_by(Booking.booking_date, Booking.end_minute)
        .limit(limit)
        .with_for_update()
    )


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class SqlTransactionManager:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def begin(self):
        try:
            async with self._session_factory() as session, session.begin():
                yield session
        except DBAPIError as exc:
            if is_lock_failure(exc):
                logger.warning("Lock wait failed, transaction rolled back: %s", exc.orig)
                raise LockTimeout("Court is busy with another booking, please retry") from exc
            raise


class SqlRuleStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_active_rules(self, court_id: int, day_of_week: int) -> Sequence[CourtAvailabilityRule]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(CourtAvailabilityRule)
                .where(
                    CourtAvailabilityRule.court_id == court_id,
                    CourtAvailabilityRule.day_of_week == day_of_week,
                    CourtAvailabilityRule.is_active.is_(True),
                )
                .order_by(CourtAvailabilityRule.start_minute)
            )
            return list(result.scalars().all())


class SqlPolicyStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], defaults: SystemDefaults):
        self._session_factory = session_factory
        self._defaults = defaults

    async def get_resolved_policy(self, court_id: int) -> BookingPolicy:
        async with self._session_factory() as db:
            facility_id = await db.scalar(select(Court.facility_id).where(Court.id == court_id))
            if facility_id is None:
                return resolve_policy(self._defaults)

            result = await db.execute(
                select(PolicyRow)
                .where(
                    PolicyRow.facility_id == facility_id,
                    PolicyRow.is_active.is_(True),
                    or_(PolicyRow.court_id == court_id, PolicyRow.court_id.is_(None)),
                )
                .order_by(PolicyRow.updated_at.desc())
            )
            rows = result.scalars().all()

        court_row = next((r for r in rows if r.court_id == court_id), None)
        facility_row = next((r for r in rows if r.court_id is None), None)
        return resolve_policy(self._defaults, facility_row, court_row)


class SqlCourtStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_court(self, court_id: int) -> Court | None:
        async with self._session_factory() as db:
            return await db.get(Court, court_id)

    async def get_hourly_price(self, court_id: int) -> Decimal:
        async with self._session_factory() as db:
            price = await db.scalar(select(Court.price_per_hour).where(Court.id == court_id))
        if price is None:
            raise CourtNotFound(f"Court {court_id} not found")
        return price

    async def get_facility_owner(self, facility_id: int) -> int | None:
        async with self._session_factory() as db:
            return await db.scalar(select(Facility.owner_id).where(Facility.id == facility_id))

    async def lock_court(self, tx: AsyncSession, court_id: int) -> Court | None:
        result = await tx.execute(select(Court).where(Court.id == court_id).with_for_update())
        return result.scalar_one_or_none()


class SqlReservationStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_blocking(self, court_id: int, booking_date: date, now: datetime) -> Sequence[Booking]:
        async with self._session_factory() as db:
            result = await db.execute(blocking_reservations_query(court_id, booking_date, now))
            return list(result.scalars().all())

    async def lock_overlapping(
        self, tx: AsyncSession, court_id: int, booking_date: date, start_minute: int, end_minute: int, now: datetime
    ) -> Booking | None:
        result = await tx.execute(overlapping_reservation_query(court_id, booking_date, start_minute, end_minute, now))
        return result.scalar_one_or_none()

    async def insert_pending(
        self,
        tx: AsyncSession,
        *,
        user_id: int,
        court_id: int,
        booking_date: date,
        start_minute: int,
        end_minute: int,
        final_price: Decimal,
        expires_at: datetime,
        payment_reference: str | None = None,
    ) -> Booking:
        booking = Booking(
            user_id=user_id,
            court_id=court_id,
            booking_date=booking_date,
            start_minute=start_minute,
            end_minute=end_minute,
            status=BookingStatus.PENDING,
            expires_at=expires_at,
            final_price=final_price,
            payment_reference=payment_reference,
        )
        tx.add(booking)
        await tx.flush()
        await tx.refresh(booking)
        return booking

    async def lock_by_id(self, tx: AsyncSession, booking_id: int) -> Booking | None:
        result = await tx.execute(select(Booking).where(Booking.id == booking_id).with_for_update())
        return result.scalar_one_or_none()

    async def update_status(self, tx: AsyncSession, booking: Booking, status: BookingStatus, **changes) -> Booking:
        booking.status = status
        for field, value in changes.items():
            setattr(booking, field, value)
        await tx.flush()
        await tx.refresh(booking)
        return booking

    async def lock_expired(self, tx: AsyncSession, now: datetime, limit: int) -> Sequence[Booking]:
        result = await tx.execute(expired_pending_query(now, limit))
        return list(result.scalars().all())

    async def mark_expired(self, tx: AsyncSession, ids: Sequence[int]) -> int:
        result = await tx.execute(
            update(Booking)
            .where(Booking.id.in_(ids), Booking.status == BookingStatus.PENDING)
            .values(status=BookingStatus.EXPIRED)
        )
        return result.rowcount

    async def lock_elapsed(self, tx: AsyncSession, today: date, now_minute: int, limit: int) -> Sequence[Booking]:
        result = await tx.execute(elapsed_confirmed_query(today, now_minute, limit))
        return list(result.scalars().all())

    async def mark_completed(self, tx: AsyncSession, ids: Sequence[int]) -> int:
        result = await tx.execute(
            update(Booking)
            .where(Booking.id.in_(ids), Booking.status == BookingStatus.CONFIRMED)
            .values(status=BookingStatus.COMPLETED)
        )
        return result.rowcount

    async def list_pending_for_facility(
        self, facility_id: int, now: datetime, limit: int, offset: int
    ) -> tuple[Sequence[Booking], int]:
        query = pending_for_facility_query(facility_id, now)
        async with self._session_factory() as db:
            total = await db.scalar(select(func.count()).select_from(query.order_by(None).subquery()))
            result = await db.execute(query.limit(limit).offset(offset))
            return list(result.scalars().all()), total or 0


class SqlBlockedRangeStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_applicable(
        self, court_id: int, facility_id: int, booking_date: date, day_of_week: int
    ) -> Sequence[BlockedTimeRange]:
        async with self._session_factory() as db:
            result = await db.execute(applicable_blocked_ranges_query(court_id, facility_id, booking_date, day_of_week))
            return list(result.scalars().all())

    async def lock_blocking(
        self,
        tx: AsyncSession,
        court_id: int,
        facility_id: int,
        booking_date: date,
        day_of_week: int,
        start_minute: int,
        end_minute: int,
    ) -> BlockedTimeRange | None:
        result = await tx.execute(
            intersecting_blocked_range_query(court_id, facility_id, booking_date, day_of_week, start_minute, end_minute)
        )
        return result.scalar_one_or_none()
