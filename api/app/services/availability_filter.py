"""Availability filtering: base blocks minus reservations and blackouts.

Intervals are half-open [start, end). Two intervals overlap only when they
share at least one minute, so a booking ending at 10:00 never conflicts with
one starting at 10:00.
"""

from collections.abc import Iterable
from datetime import date, datetime

from app.models.availability import BlockType
from app.models.booking import BookingStatus
from app.services.time_model import MINUTES_PER_DAY, TimeBlock, day_of_week, is_full_block, minutes_since_midnight


def do_overlap(s1: int, e1: int, s2: int, e2: int) -> bool:
    return s1 < e2 and e1 > s2


def subtract_range(block: TimeBlock, start: int, end: int) -> list[TimeBlock]:
    """Remove [start, end) from block. Returns 0, 1 or 2 non-empty pieces."""
    if not do_overlap(block.start_minute, block.end_minute, start, end):
        return [block]

    pieces = []
    left_end = min(block.end_minute, start)
    if block.start_minute < left_end:
        pieces.append(block.with_range(block.start_minute, left_end))
    right_start = max(block.start_minute, end)
    if right_start < block.end_minute:
        pieces.append(block.with_range(right_start, block.end_minute))
    return pieces


def subtract_ranges(blocks: Iterable[TimeBlock], removals: Iterable[tuple[int, int]]) -> list[TimeBlock]:
    remaining = list(blocks)
    for start, end in sorted(removals):
        if not remaining:
            break
        remaining = [piece for block in remaining for piece in subtract_range(block, start, end)]
    return sorted(remaining, key=lambda b: (b.start_minute, b.end_minute))


def blocks_availability(reservation, now: datetime) -> bool:
    """Does this reservation currently hold its court time?

    Confirmed and completed always do. Pending only until expires_at passes,
    so an unswept expired booking frees its slot immediately.
    """
    status = reservation.status
    if status in (BookingStatus.CONFIRMED, BookingStatus.COMPLETED):
        return True
    if status == BookingStatus.PENDING:
        return reservation.expires_at is None or reservation.expires_at > now
    return False


def blocked_range_applies(block, query_date: date, day_of_week: int) -> bool:
    if not block.is_active:
        return False
    if block.block_type == BlockType.ONE_TIME:
        return block.start_date == query_date
    if block.block_type == BlockType.RECURRING:
        return block.day_of_week == day_of_week
    if block.block_type == BlockType.DATE_RANGE:
        return (
            block.start_date is not None
            and block.end_date is not None
            and block.start_date <= query_date <= block.end_date
        )
    return False


def blocked_range_window(block) -> tuple[int, int]:
    """Time window a blocked range covers; no window means the whole day."""
    if block.start_minute is None or block.end_minute is None:
        return 0, MINUTES_PER_DAY
    return block.start_minute, block.end_minute


def reservation_window(reservation, buffer_minutes: int = 0) -> tuple[int, int]:
    """Reservation range padded by the turnover buffer, clamped to the day."""
    return (
        max(0, reservation.start_minute - buffer_minutes),
        min(MINUTES_PER_DAY, reservation.end_minute + buffer_minutes),
    )


def trim_same_day(blocks: Iterable[TimeBlock], now: datetime, buffer_minutes: int) -> list[TimeBlock]:
    cutoff = minutes_since_midnight(now) + buffer_minutes
    return [b for b in blocks if b.start_minute >= cutoff]


def filter_availability(
    base_blocks: Iterable[TimeBlock],
    reservations: Iterable,
    blocked_ranges: Iterable,
    now: datetime,
    *,
    query_date: date,
    buffer_minutes: int = 60,
    booking_buffer_minutes: int = 0,
) -> list[TimeBlock]:
    """Free blocks for one court and date.

    reservations may include non-blocking rows (cancelled, expired, stale
    pending); they are skipped here. blocked_ranges are re-checked against
    the date, so callers can pass a broader set than strictly applies.
    Only whole 30-minute blocks are returned.
    """
    dow = day_of_week(query_date)
    removals = [
        reservation_window(r, booking_buffer_minutes)
        for r in reservations
        if r.booking_date == query_date and blocks_availability(r, now)
    ]
    removals.extend(blocked_range_window(b) for b in blocked_ranges if blocked_range_applies(b, query_date, dow))

    # Off-grid removals leave slivers that cannot be booked
    free = [b for b in subtract_ranges(base_blocks, removals) if is_full_block(b)]
    if query_date == now.date():
        free = trim_same_day(free, now, buffer_minutes)
    return free
