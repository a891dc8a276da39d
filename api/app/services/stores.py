"""Collaborator interfaces consumed by the booking engine.

The engine is built against these Protocols only. Production wiring uses the
SQLAlchemy implementations in app.services.repositories; tests pass in-memory
fakes. Methods taking ``tx`` run inside the transaction yielded by
TransactionManager.begin() and may take row locks.
"""

from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol

from app.models import BlockedTimeRange, Booking, BookingStatus, Court, CourtAvailabilityRule
from app.services.policy import BookingPolicy


class TransactionManager(Protocol):
    def begin(self) -> AbstractAsyncContextManager[Any]:
        """Open a transaction. Commits on clean exit, rolls back on error."""
        ...


class RuleStore(Protocol):
    async def get_active_rules(self, court_id: int, day_of_week: int) -> Sequence[CourtAvailabilityRule]: ...


class PolicyStore(Protocol):
    async def get_resolved_policy(self, court_id: int) -> BookingPolicy: ...


class CourtStore(Protocol):
    async def get_court(self, court_id: int) -> Court | None: ...

    async def get_hourly_price(self, court_id: int) -> Decimal: ...

    async def get_facility_owner(self, facility_id: int) -> int | None: ...

    async def lock_court(self, tx: Any, court_id: int) -> Court | None: ...


class ReservationStore(Protocol):
    async def list_blocking(self, court_id: int, booking_date: date, now: datetime) -> Sequence[Booking]:
        """Reservations that currently hold time on this court and date (no locks)."""
        ...

    async def lock_overlapping(
        self, tx: Any, court_id: int, booking_date: date, start_minute: int, end_minute: int, now: datetime
    ) -> Booking | None:
        """First blocking reservation intersecting [start, end), locked FOR UPDATE."""
        ...

    async def insert_pending(
        self,
        tx: Any,
        *,
        user_id: int,
        court_id: int,
        booking_date: date,
        start_minute: int,
        end_minute: int,
        final_price: Decimal,
        expires_at: datetime,
        payment_reference: str | None = None,
    ) -> Booking: ...

    async def lock_by_id(self, tx: Any, booking_id: int) -> Booking | None: ...

    async def update_status(self, tx: Any, booking: Booking, status: BookingStatus, **changes: Any) -> Booking: ...

    async def lock_expired(self, tx: Any, now: datetime, limit: int) -> Sequence[Booking]: ...

    async def mark_expired(self, tx: Any, ids: Sequence[int]) -> int: ...

    async def lock_elapsed(self, tx: Any, today: date, now_minute: int, limit: int) -> Sequence[Booking]: ...

    async def mark_completed(self, tx: Any, ids: Sequence[int]) -> int: ...

    async def list_pending_for_facility(
        self, facility_id: int, now: datetime, limit: int, offset: int
    ) -> tuple[Sequence[Booking], int]: ...


class BlockedRangeStore(Protocol):
    async def list_applicable(
        self, court_id: int, facility_id: int, booking_date: date, day_of_week: int
    ) -> Sequence[BlockedTimeRange]: ...

    async def lock_blocking(
        self,
        tx: Any,
        court_id: int,
        facility_id: int,
        booking_date: date,
        day_of_week: int,
        start_minute: int,
        end_minute: int,
    ) -> BlockedTimeRange | None: ...
