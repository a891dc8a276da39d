"""Booking policy resolution.

A policy is looked up per court: a court-level policy row wins over the
facility-level row, and any column left NULL on both falls back to the
system defaults. The engine only ever sees a fully resolved BookingPolicy.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class SystemDefaults:
    """System-wide fallbacks, built from settings and injected into the engine."""

    max_advance_booking_days: int = 30
    min_duration_minutes: int = 30
    max_duration_minutes: int = 480
    buffer_minutes: int = 0
    min_advance_notice_minutes: int = 0
    pending_expiration_hours: int = 24
    # Same-day lead time: today's slots must start at least this far from now
    same_day_buffer_minutes: int = 60


@dataclass(frozen=True)
class BookingPolicy:
    max_advance_booking_days: int
    min_duration_minutes: int
    max_duration_minutes: int
    buffer_minutes: int
    min_advance_notice_minutes: int
    pending_expiration_hours: int


# Policy row column -> BookingPolicy field
_COLUMNS = {
    "max_advance_booking_days": "max_advance_booking_days",
    "min_booking_duration_minutes": "min_duration_minutes",
    "max_booking_duration_minutes": "max_duration_minutes",
    "booking_buffer_minutes": "buffer_minutes",
    "min_advance_notice_minutes": "min_advance_notice_minutes",
    "pending_booking_expiration_hours": "pending_expiration_hours",
}


def default_policy(defaults: SystemDefaults) -> BookingPolicy:
    return BookingPolicy(
        max_advance_booking_days=defaults.max_advance_booking_days,
        min_duration_minutes=defaults.min_duration_minutes,
        max_duration_minutes=defaults.max_duration_minutes,
        buffer_minutes=defaults.buffer_minutes,
        min_advance_notice_minutes=defaults.min_advance_notice_minutes,
        pending_expiration_hours=defaults.pending_expiration_hours,
    )


def resolve_policy(defaults: SystemDefaults, facility_row: Any = None, court_row: Any = None) -> BookingPolicy:
    """Merge court -> facility -> defaults, column by column.

    Rows are anything with the policy table's column attributes (ORM rows or
    SimpleNamespace in tests). Missing rows are simply skipped.
    """
    resolved = {}
    fallback = default_policy(defaults)
    for column, field in _COLUMNS.items():
        value = None
        for row in (court_row, facility_row):
            if row is not None and getattr(row, column, None) is not None:
                value = getattr(row, column)
                break
        resolved[field] = value if value is not None else getattr(fallback, field)
    return BookingPolicy(**resolved)
