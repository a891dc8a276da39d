"""Availability and booking engine.

Read path (no locks): rules -> base blocks -> minus reservations and blocked
ranges -> composed booking options. These results may be momentarily stale.

Write path: create_booking re-validates everything inside one transaction
holding row locks, always acquired in the same order:

    court row -> overlapping reservation rows -> blocked range rows

Of two requests racing for the same court time exactly one commits, the
other sees the committed row and gets BookingConflict. Lock waits beyond the
database lock_timeout surface as LockTimeout, which is safe to retry.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import UTC, date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal

from app.models import Booking, BookingStatus
from app.services import expiration
from app.services.availability import BaseAvailability, blocks_from_rules, check_booking_window
from app.services.availability import generate_base_availability as _generate_base_availability
from app.services.availability_filter import blocks_availability, filter_availability
from app.services.errors import (
    BlockDetail,
    BookingConflict,
    BookingNotFound,
    ConflictDetail,
    CourtInactive,
    CourtNotFound,
    DurationOutOfRange,
    FacilityNotFound,
    Forbidden,
    InsufficientNotice,
    InvalidTimeRange,
    InvalidTransition,
    OutsideAvailability,
    PastDate,
    TimeBlocked,
)
from app.services.policy import BookingPolicy, SystemDefaults
from app.services.slot_composer import BookingOption, DurationOptions, compose_booking_options, compose_for_durations
from app.services.stores import (
    BlockedRangeStore,
    CourtStore,
    PolicyStore,
    ReservationStore,
    RuleStore,
    TransactionManager,
)
from app.services.time_model import (
    GRANULARITY_MINUTES,
    MINUTES_PER_DAY,
    TimeBlock,
    day_of_week,
    format_minutes,
    is_aligned,
    is_valid_end_minute,
    is_valid_minute,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


def compute_price(hourly_price: Decimal, duration_minutes: int) -> Decimal:
    """price/hour x hours, rounded half-up to 2 places."""
    raw = Decimal(hourly_price) * Decimal(duration_minutes) / Decimal(60)
    return raw.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def validate_time_range(start_minute, end_minute) -> None:
    """Structural checks done before any database work.

    start is in [0, 1440), end in (0, 1440] so the last block of the day is
    bookable. Both must sit on the 30-minute grid.
    """
    if not is_valid_minute(start_minute):
        raise InvalidTimeRange(f"Start minute must be an integer in [0, {MINUTES_PER_DAY}), got {start_minute!r}")
    if not is_valid_end_minute(end_minute):
        raise InvalidTimeRange(f"End minute must be an integer in (0, {MINUTES_PER_DAY}], got {end_minute!r}")
    if start_minute >= end_minute:
        raise InvalidTimeRange(
            f"Start {format_minutes(start_minute)} must be before end {format_minutes(end_minute)}"
        )
    if not is_aligned(start_minute) or not is_aligned(end_minute):
        raise InvalidTimeRange(f"Times must align to {GRANULARITY_MINUTES}-minute boundaries")


def starts_at(booking_date: date, minute: int, tz) -> datetime:
    return datetime.combine(booking_date, time.min, tzinfo=tz) + timedelta(minutes=minute)


def covered_blocks(rules: Iterable, start_minute: int, end_minute: int) -> list[TimeBlock] | None:
    """Rule blocks covering [start, end) on the grid, or None if any step is uncovered.

    Coverage may span several adjacent rules. Where rules overlap, the earliest
    emitted block wins (its price_override is the one charged).
    """
    by_start: dict[int, TimeBlock] = {}
    for block in blocks_from_rules(rules):
        by_start.setdefault(block.start_minute, block)
    steps = range(start_minute, end_minute, GRANULARITY_MINUTES)
    if not all(m in by_start for m in steps):
        return None
    return [by_start[m] for m in steps]


class BookingEngine:
    def __init__(
        self,
        *,
        courts: CourtStore,
        rules: RuleStore,
        policies: PolicyStore,
        reservations: ReservationStore,
        blocked_ranges: BlockedRangeStore,
        transactions: TransactionManager,
        defaults: SystemDefaults,
        clock: Clock = _utc_now,
    ):
        self.courts = courts
        self.rules = rules
        self.policies = policies
        self.reservations = reservations
        self.blocked_ranges = blocked_ranges
        self.transactions = transactions
        self.defaults = defaults
        self.clock = clock

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def generate_base_availability(self, court_id: int, query_date: date) -> BaseAvailability:
        return await _generate_base_availability(
            courts=self.courts,
            rules=self.rules,
            policies=self.policies,
            court_id=court_id,
            query_date=query_date,
            today=self.clock().date(),
        )

    def same_day_buffer(self, policy: BookingPolicy) -> int:
        return max(self.defaults.same_day_buffer_minutes, policy.min_advance_notice_minutes)

    async def _free_blocks(self, court_id: int, query_date: date) -> tuple[BaseAvailability, list[TimeBlock]]:
        now = self.clock()
        base = await self.generate_base_availability(court_id, query_date)
        court = await self.courts.get_court(court_id)
        reservations = await self.reservations.list_blocking(court_id, query_date, now)
        blocked = await self.blocked_ranges.list_applicable(court_id, court.facility_id, query_date, base.day_of_week)
        free = filter_availability(
            base.blocks,
            reservations,
            blocked,
            now,
            query_date=query_date,
            buffer_minutes=self.same_day_buffer(base.policy),
            booking_buffer_minutes=base.policy.buffer_minutes,
        )
        return base, free

    async def get_free_blocks(self, court_id: int, query_date: date) -> list[TimeBlock]:
        _, free = await self._free_blocks(court_id, query_date)
        return free

    async def _priced(self, court_id: int, options: list[BookingOption]) -> list[BookingOption]:
        if not options:
            return options
        court_price = await self.courts.get_hourly_price(court_id)
        return [
            replace(o, price=compute_price(o.price_override if o.price_override is not None else court_price, o.duration))
            for o in options
        ]

    async def get_availability(
        self, court_id: int, query_date: date, duration_minutes: int | None = None
    ) -> tuple[list[TimeBlock], list[BookingOption] | None]:
        """Free blocks plus, when a duration is given, the priced options for it."""
        base, free = await self._free_blocks(court_id, query_date)
        if duration_minutes is None:
            return free, None
        options = compose_booking_options(
            free,
            duration_minutes,
            min_duration=base.policy.min_duration_minutes,
            max_duration=base.policy.max_duration_minutes,
        )
        return free, await self._priced(court_id, options)

    async def get_booking_options(self, court_id: int, query_date: date, duration_minutes: int) -> list[BookingOption]:
        _, options = await self.get_availability(court_id, query_date, duration_minutes)
        return options

    async def get_options_for_durations(
        self, court_id: int, query_date: date, durations: Iterable[int]
    ) -> DurationOptions:
        base, free = await self._free_blocks(court_id, query_date)
        result = compose_for_durations(
            free,
            durations,
            min_duration=base.policy.min_duration_minutes,
            max_duration=base.policy.max_duration_minutes,
        )
        for duration, options in result.options.items():
            result.options[duration] = await self._priced(court_id, options)
        return result

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def _validate_against_policy(
        self, policy: BookingPolicy, booking_date: date, start_minute: int, end_minute: int, now: datetime
    ) -> None:
        duration = end_minute - start_minute
        if not policy.min_duration_minutes <= duration <= policy.max_duration_minutes:
            raise DurationOutOfRange(
                f"Duration must be between {policy.min_duration_minutes} and {policy.max_duration_minutes} minutes",
                min_minutes=policy.min_duration_minutes,
                max_minutes=policy.max_duration_minutes,
            )

        check_booking_window(booking_date, now.date(), policy)
        start_at = starts_at(booking_date, start_minute, now.tzinfo)
        if start_at <= now:
            raise PastDate(f"{booking_date.isoformat()} {format_minutes(start_minute)} has already started")
        notice = policy.min_advance_notice_minutes
        if notice and start_at < now + timedelta(minutes=notice):
            raise InsufficientNotice(
                f"Bookings must be made at least {notice} minutes in advance", min_notice_minutes=notice
            )

    async def create_booking(
        self,
        user_id: int,
        court_id: int,
        booking_date: date,
        start_minute: int,
        end_minute: int,
        *,
        payment_reference: str | None = None,
    ) -> Booking:
        validate_time_range(start_minute, end_minute)
        now = self.clock()
        policy = await self.policies.get_resolved_policy(court_id)
        self._validate_against_policy(policy, booking_date, start_minute, end_minute, now)
        dow = day_of_week(booking_date)

        async with self.transactions.begin() as tx:
            court = await self.courts.lock_court(tx, court_id)
            if court is None:
                raise CourtNotFound(f"Court {court_id} not found")
            if not court.is_active:
                raise CourtInactive(f"Court {court_id} is not accepting bookings")

            buffer = policy.buffer_minutes
            conflict = await self.reservations.lock_overlapping(
                tx,
                court_id,
                booking_date,
                max(0, start_minute - buffer),
                min(MINUTES_PER_DAY, end_minute + buffer),
                now,
            )
            if conflict is not None:
                logger.info(
                    "Booking conflict on court %d %s %s-%s with booking %d",
                    court_id,
                    booking_date,
                    format_minutes(start_minute),
                    format_minutes(end_minute),
                    conflict.id,
                )
                raise BookingConflict(
                    ConflictDetail(
                        booking_id=conflict.id,
                        booking_date=conflict.booking_date,
                        start_minute=conflict.start_minute,
                        end_minute=conflict.end_minute,
                        status=str(conflict.status),
                    )
                )

            rules = await self.rules.get_active_rules(court_id, dow)
            covering = covered_blocks(rules, start_minute, end_minute)
            if covering is None:
                raise OutsideAvailability(
                    f"Court {court_id} is not open {format_minutes(start_minute)}-{format_minutes(end_minute)} "
                    f"on {booking_date.isoformat()}"
                )

            block = await self.blocked_ranges.lock_blocking(
                tx, court_id, court.facility_id, booking_date, dow, start_minute, end_minute
            )
            if block is not None:
                logger.info("Court %d %s blocked by range %d (%s)", court_id, booking_date, block.id, block.reason)
                block_start = block.start_minute if block.start_minute is not None else 0
                block_end = block.end_minute if block.end_minute is not None else MINUTES_PER_DAY
                raise TimeBlocked(
                    BlockDetail(
                        block_id=block.id,
                        block_type=str(block.block_type),
                        reason=block.reason,
                        start_minute=block_start,
                        end_minute=block_end,
                    )
                )

            override = covering[0].price_override
            hourly = override if override is not None else court.price_per_hour
            price = compute_price(hourly, end_minute - start_minute)

            booking = await self.reservations.insert_pending(
                tx,
                user_id=user_id,
                court_id=court_id,
                booking_date=booking_date,
                start_minute=start_minute,
                end_minute=end_minute,
                final_price=price,
                expires_at=now + timedelta(hours=policy.pending_expiration_hours),
                payment_reference=payment_reference,
            )

        logger.info(
            "Booking %d created: court %d %s %s-%s user %d price %s",
            booking.id,
            court_id,
            booking_date,
            format_minutes(start_minute),
            format_minutes(end_minute),
            user_id,
            price,
        )
        return booking

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def _lock_booking(self, tx, booking_id: int) -> Booking:
        booking = await self.reservations.lock_by_id(tx, booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} not found")
        return booking

    async def _require_facility_owner(self, booking: Booking, actor_id: int) -> None:
        court = await self.courts.get_court(booking.court_id)
        owner_id = await self.courts.get_facility_owner(court.facility_id) if court else None
        if owner_id != actor_id:
            raise Forbidden("Only the facility owner can manage this booking")

    def _require_live_pending(self, booking: Booking, now: datetime, action: str) -> None:
        if booking.status != BookingStatus.PENDING:
            raise InvalidTransition(f"Cannot {action} a {booking.status} booking", current_status=str(booking.status))
        if not blocks_availability(booking, now):
            raise InvalidTransition(f"Cannot {action} an expired booking", current_status=str(BookingStatus.EXPIRED))

    async def accept_booking(self, booking_id: int, actor_id: int, payment_reference: str | None = None) -> Booking:
        now = self.clock()
        async with self.transactions.begin() as tx:
            booking = await self._lock_booking(tx, booking_id)
            await self._require_facility_owner(booking, actor_id)
            self._require_live_pending(booking, now, "accept")
            booking = await self.reservations.update_status(
                tx,
                booking,
                BookingStatus.CONFIRMED,
                payment_reference=payment_reference or booking.payment_reference,
            )
        logger.info("Booking %d confirmed by %d", booking_id, actor_id)
        return booking

    async def reject_booking(self, booking_id: int, actor_id: int, reason: str | None = None) -> Booking:
        now = self.clock()
        async with self.transactions.begin() as tx:
            booking = await self._lock_booking(tx, booking_id)
            await self._require_facility_owner(booking, actor_id)
            self._require_live_pending(booking, now, "reject")
            booking = await self.reservations.update_status(
                tx, booking, BookingStatus.REJECTED, rejection_reason=reason
            )
        logger.info("Booking %d rejected by %d", booking_id, actor_id)
        return booking

    async def cancel_booking(self, booking_id: int, user_id: int, reason: str | None = None) -> Booking:
        now = self.clock()
        async with self.transactions.begin() as tx:
            booking = await self._lock_booking(tx, booking_id)
            if booking.user_id != user_id:
                raise Forbidden("Only the booking owner can cancel this booking")
            if booking.status == BookingStatus.PENDING:
                self._require_live_pending(booking, now, "cancel")
            elif booking.status != BookingStatus.CONFIRMED:
                raise InvalidTransition(
                    f"Cannot cancel a {booking.status} booking", current_status=str(booking.status)
                )
            if starts_at(booking.booking_date, booking.start_minute, now.tzinfo) <= now:
                raise InvalidTransition("Cannot cancel a booking that has already started", str(booking.status))
            booking = await self.reservations.update_status(
                tx, booking, BookingStatus.CANCELLED, cancellation_reason=reason, cancelled_at=now
            )
        logger.info("Booking %d cancelled by user %d", booking_id, user_id)
        return booking

    async def list_pending_bookings(
        self, facility_id: int, actor_id: int, *, limit: int = 50, offset: int = 0
    ) -> tuple[list[Booking], int]:
        """Live pending bookings awaiting the facility owner, newest first, with the total count."""
        owner_id = await self.courts.get_facility_owner(facility_id)
        if owner_id is None:
            raise FacilityNotFound(f"Facility {facility_id} not found")
        if owner_id != actor_id:
            raise Forbidden("Only the facility owner can view its pending bookings")
        bookings, total = await self.reservations.list_pending_for_facility(facility_id, self.clock(), limit, offset)
        return list(bookings), total

    # ------------------------------------------------------------------
    # Expiration
    # ------------------------------------------------------------------

    async def expire_pending(self, batch_size: int = 100) -> list[int]:
        return await expiration.expire_pending(self.reservations, self.transactions, self.clock(), batch_size)

    async def complete_elapsed(self, batch_size: int = 100) -> list[int]:
        return await expiration.complete_elapsed(self.reservations, self.transactions, self.clock(), batch_size)
