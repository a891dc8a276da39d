"""In-memory stand-ins for the booking engine's stores.

Rows are real ORM instances that are never attached to a session. Writes made
inside a transaction are staged and applied on commit, so a rollback leaves
nothing behind. Row locks are per-key asyncio.Locks held until the
transaction ends, which serialises concurrent bookings the way Postgres row
locks do.
"""

import asyncio
import itertools
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

from app.models import BlockedTimeRange, BlockType, Booking, BookingStatus, Court, CourtAvailabilityRule
from app.services.availability_filter import (
    blocked_range_applies,
    blocked_range_window,
    blocks_availability,
    do_overlap,
)
from app.services.booking_engine import BookingEngine
from app.services.errors import CourtNotFound, LockTimeout
from app.services.policy import SystemDefaults, resolve_policy

# Monday 2 March 2026, 08:00
NOW = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)
MONDAY = date(2026, 3, 9)


class FrozenClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeDatabase:
    def __init__(self):
        self.facilities: dict[int, SimpleNamespace] = {}
        self.courts: dict[int, Court] = {}
        self.rules: list[CourtAvailabilityRule] = []
        self.policy_rows: list[SimpleNamespace] = []
        self.bookings: dict[int, Booking] = {}
        self.blocked: list[BlockedTimeRange] = []
        self.locks: defaultdict[tuple, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.lock_timeout: float | None = None
        self.opened = 0
        self.committed = 0
        self.rolled_back = 0
        self._ids = itertools.count(1)

    def next_id(self) -> int:
        return next(self._ids)

    # --- seeding helpers ---

    def add_facility(self, owner_id: int = 900) -> int:
        facility_id = self.next_id()
        self.facilities[facility_id] = SimpleNamespace(id=facility_id, owner_id=owner_id)
        return facility_id

    def add_court(self, facility_id: int, price: str = "1000.00", is_active: bool = True) -> Court:
        court = Court(
            id=self.next_id(),
            facility_id=facility_id,
            name="Court",
            price_per_hour=Decimal(price),
            is_active=is_active,
        )
        self.courts[court.id] = court
        return court

    def add_rule(self, court_id: int, day_of_week: int, start: int, end: int, price=None, is_active=True):
        rule = CourtAvailabilityRule(
            id=self.next_id(),
            court_id=court_id,
            day_of_week=day_of_week,
            start_minute=start,
            end_minute=end,
            price_per_hour_override=Decimal(price) if price is not None else None,
            is_active=is_active,
        )
        self.rules.append(rule)
        return rule

    def add_policy(self, facility_id: int, court_id: int | None = None, **fields):
        columns = {
            "max_advance_booking_days": None,
            "min_booking_duration_minutes": None,
            "max_booking_duration_minutes": None,
            "booking_buffer_minutes": None,
            "min_advance_notice_minutes": None,
            "pending_booking_expiration_hours": None,
        }
        columns.update(fields)
        row = SimpleNamespace(facility_id=facility_id, court_id=court_id, is_active=True, **columns)
        self.policy_rows.append(row)
        return row

    def add_booking(
        self,
        court_id: int,
        booking_date: date,
        start: int,
        end: int,
        status: BookingStatus = BookingStatus.CONFIRMED,
        expires_at: datetime | None = None,
        user_id: int = 1,
    ) -> Booking:
        booking = Booking(
            id=self.next_id(),
            user_id=user_id,
            court_id=court_id,
            booking_date=booking_date,
            start_minute=start,
            end_minute=end,
            status=status,
            expires_at=expires_at,
            final_price=Decimal("0.00"),
            payment_reference=None,
            cancellation_reason=None,
            rejection_reason=None,
            cancelled_at=None,
        )
        self.bookings[booking.id] = booking
        return booking

    def add_block(
        self,
        facility_id: int,
        block_type: BlockType,
        court_id: int | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        start: int | None = None,
        end: int | None = None,
        day_of_week: int | None = None,
        reason: str | None = "Maintenance",
        is_active: bool = True,
    ) -> BlockedTimeRange:
        block = BlockedTimeRange(
            id=self.next_id(),
            facility_id=facility_id,
            court_id=court_id,
            block_type=block_type,
            start_date=start_date,
            end_date=end_date,
            start_minute=start,
            end_minute=end,
            day_of_week=day_of_week,
            reason=reason,
            is_active=is_active,
        )
        self.blocked.append(block)
        return block


class FakeTransaction:
    def __init__(self, db: FakeDatabase):
        self.db = db
        self.held: list[tuple] = []
        self.inserts: list[Booking] = []
        self.updates: list[tuple[Booking, BookingStatus, dict]] = []

    async def lock(self, key: tuple) -> None:
        if key in self.held:
            return
        lock = self.db.locks[key]
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.db.lock_timeout)
        except TimeoutError:
            raise LockTimeout(f"Lock wait on {key} timed out")
        self.held.append(key)

    def commit(self) -> None:
        for booking in self.inserts:
            self.db.bookings[booking.id] = booking
        for booking, status, changes in self.updates:
            booking.status = status
            for field, value in changes.items():
                setattr(booking, field, value)

    def release(self) -> None:
        for key in reversed(self.held):
            self.db.locks[key].release()
        self.held.clear()


class FakeTransactionManager:
    def __init__(self, db: FakeDatabase):
        self.db = db

    @asynccontextmanager
    async def begin(self):
        tx = FakeTransaction(self.db)
        self.db.opened += 1
        try:
            yield tx
        except BaseException:
            self.db.rolled_back += 1
            raise
        else:
            tx.commit()
            self.db.committed += 1
        finally:
            tx.release()


class FakeRuleStore:
    def __init__(self, db: FakeDatabase):
        self.db = db

    async def get_active_rules(self, court_id, day_of_week):
        await asyncio.sleep(0)
        return [r for r in self.db.rules if r.court_id == court_id and r.day_of_week == day_of_week and r.is_active]


class FakePolicyStore:
    def __init__(self, db: FakeDatabase, defaults: SystemDefaults):
        self.db = db
        self.defaults = defaults

    async def get_resolved_policy(self, court_id):
        court = self.db.courts.get(court_id)
        if court is None:
            return resolve_policy(self.defaults)
        rows = [r for r in self.db.policy_rows if r.facility_id == court.facility_id and r.is_active]
        court_row = next((r for r in rows if r.court_id == court_id), None)
        facility_row = next((r for r in rows if r.court_id is None), None)
        return resolve_policy(self.defaults, facility_row, court_row)


class FakeCourtStore:
    def __init__(self, db: FakeDatabase):
        self.db = db

    async def get_court(self, court_id):
        return self.db.courts.get(court_id)

    async def get_hourly_price(self, court_id):
        court = self.db.courts.get(court_id)
        if court is None:
            raise CourtNotFound(f"Court {court_id} not found")
        return court.price_per_hour

    async def get_facility_owner(self, facility_id):
        facility = self.db.facilities.get(facility_id)
        return facility.owner_id if facility else None

    async def lock_court(self, tx, court_id):
        await tx.lock(("court", court_id))
        await asyncio.sleep(0)
        return self.db.courts.get(court_id)


class FakeReservationStore:
    def __init__(self, db: FakeDatabase):
        self.db = db

    def _committed(self, court_id, booking_date):
        rows = [b for b in self.db.bookings.values() if b.court_id == court_id and b.booking_date == booking_date]
        return sorted(rows, key=lambda b: b.start_minute)

    async def list_blocking(self, court_id, booking_date, now):
        return [b for b in self._committed(court_id, booking_date) if blocks_availability(b, now)]

    async def lock_overlapping(self, tx, court_id, booking_date, start_minute, end_minute, now):
        await asyncio.sleep(0)
        for booking in self._committed(court_id, booking_date):
            if blocks_availability(booking, now) and do_overlap(
                booking.start_minute, booking.end_minute, start_minute, end_minute
            ):
                await tx.lock(("booking", booking.id))
                return booking
        return None

    async def insert_pending(self, tx, *, user_id, court_id, booking_date, start_minute, end_minute,
                             final_price, expires_at, payment_reference=None):
        await asyncio.sleep(0)
        booking = Booking(
            id=self.db.next_id(),
            user_id=user_id,
            court_id=court_id,
            booking_date=booking_date,
            start_minute=start_minute,
            end_minute=end_minute,
            status=BookingStatus.PENDING,
            expires_at=expires_at,
            final_price=final_price,
            payment_reference=payment_reference,
            cancellation_reason=None,
            rejection_reason=None,
            cancelled_at=None,
            created_at=NOW,
        )
        tx.inserts.append(booking)
        return booking

    async def lock_by_id(self, tx, booking_id):
        await tx.lock(("booking", booking_id))
        return self.db.bookings.get(booking_id)

    async def update_status(self, tx, booking, status, **changes):
        tx.updates.append((booking, status, changes))
        return booking

    async def lock_expired(self, tx, now, limit):
        rows = [
            b for b in self.db.bookings.values()
            if b.status == BookingStatus.PENDING and b.expires_at is not None and b.expires_at <= now
        ]
        rows.sort(key=lambda b: b.expires_at)
        rows = rows[:limit]
        for b in rows:
            await tx.lock(("booking", b.id))
        return rows

    async def mark_expired(self, tx, ids):
        count = 0
        for booking_id in ids:
            booking = self.db.bookings[booking_id]
            if booking.status == BookingStatus.PENDING:
                tx.updates.append((booking, BookingStatus.EXPIRED, {}))
                count += 1
        return count

    async def lock_elapsed(self, tx, today, now_minute, limit):
        rows = [
            b for b in self.db.bookings.values()
            if b.status == BookingStatus.CONFIRMED
            and (b.booking_date < today or (b.booking_date == today and b.end_minute <= now_minute))
        ]
        rows.sort(key=lambda b: (b.booking_date, b.end_minute))
        rows = rows[:limit]
        for b in rows:
            await tx.lock(("booking", b.id))
        return rows

    async def mark_completed(self, tx, ids):
        for booking_id in ids:
            tx.updates.append((self.db.bookings[booking_id], BookingStatus.COMPLETED, {}))
        return len(ids)

    async def list_pending_for_facility(self, facility_id, now, limit, offset):
        court_ids = {c.id for c in self.db.courts.values() if c.facility_id == facility_id}
        rows = [
            b for b in self.db.bookings.values()
            if b.court_id in court_ids and b.status == BookingStatus.PENDING and blocks_availability(b, now)
        ]
        # ids grow with insertion order
        rows.sort(key=lambda b: b.id, reverse=True)
        return rows[offset:offset + limit], len(rows)


class FakeBlockedRangeStore:
    def __init__(self, db: FakeDatabase):
        self.db = db

    def _in_scope(self, block, court_id, facility_id):
        return block.court_id == court_id or (block.court_id is None and block.facility_id == facility_id)

    async def list_applicable(self, court_id, facility_id, booking_date, day_of_week):
        return [
            b for b in self.db.blocked
            if self._in_scope(b, court_id, facility_id) and blocked_range_applies(b, booking_date, day_of_week)
        ]

    async def lock_blocking(self, tx, court_id, facility_id, booking_date, day_of_week, start_minute, end_minute):
        for block in await self.list_applicable(court_id, facility_id, booking_date, day_of_week):
            if do_overlap(*blocked_range_window(block), start_minute, end_minute):
                await tx.lock(("blocked", block.id))
                return block
        return None


def build_engine(db: FakeDatabase, clock: FrozenClock | None = None, defaults: SystemDefaults | None = None):
    defaults = defaults or SystemDefaults()
    return BookingEngine(
        courts=FakeCourtStore(db),
        rules=FakeRuleStore(db),
        policies=FakePolicyStore(db, defaults),
        reservations=FakeReservationStore(db),
        blocked_ranges=FakeBlockedRangeStore(db),
        transactions=FakeTransactionManager(db),
        defaults=defaults,
        clock=clock or FrozenClock(),
    )
