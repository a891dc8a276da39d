"""Booking engine errors.

Every failure the engine reports is a BookingError subclass carrying a
machine-readable ``rule`` code and a human message, plus a typed payload
where the client needs to explain why a slot disappeared. The API layer
turns these into ``{"detail": [{"rule": ..., "message": ...}]}`` responses.
"""

from dataclasses import asdict, dataclass
from datetime import date

from app.services.time_model import format_minutes


@dataclass(frozen=True)
class ConflictDetail:
    booking_id: int
    booking_date: date
    start_minute: int
    end_minute: int
    status: str


@dataclass(frozen=True)
class BlockDetail:
    block_id: int
    block_type: str
    reason: str | None
    start_minute: int
    end_minute: int


class BookingError(Exception):
    rule = "booking_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def payload(self) -> dict:
        return {}

    def to_dict(self) -> dict:
        return {"rule": self.rule, "message": self.message, **self.payload()}


# Date / policy validation


class PastDate(BookingError):
    rule = "past_date"


class AdvanceWindowExceeded(BookingError):
    rule = "advance_window"

    def __init__(self, message: str, max_days: int):
        self.max_days = max_days
        super().__init__(message)

    def payload(self) -> dict:
        return {"max_advance_booking_days": self.max_days}


class InsufficientNotice(BookingError):
    rule = "insufficient_notice"

    def __init__(self, message: str, min_notice_minutes: int):
        self.min_notice_minutes = min_notice_minutes
        super().__init__(message)

    def payload(self) -> dict:
        return {"min_advance_notice_minutes": self.min_notice_minutes}


# Duration / range validation


class InvalidDuration(BookingError):
    rule = "invalid_duration"


class DurationOutOfRange(BookingError):
    rule = "duration_out_of_range"

    def __init__(self, message: str, min_minutes: int, max_minutes: int):
        self.min_minutes = min_minutes
        self.max_minutes = max_minutes
        super().__init__(message)

    def payload(self) -> dict:
        return {"min_duration_minutes": self.min_minutes, "max_duration_minutes": self.max_minutes}


class InvalidTimeRange(BookingError):
    rule = "invalid_time_range"


# Availability


class BookingConflict(BookingError):
    rule = "court_conflict"
    status_code = 409

    def __init__(self, conflict: ConflictDetail):
        self.conflict = conflict
        super().__init__(
            f"Court already booked {format_minutes(conflict.start_minute)}-"
            f"{format_minutes(conflict.end_minute)} on {conflict.booking_date.isoformat()}"
        )

    def payload(self) -> dict:
        data = asdict(self.conflict)
        data["booking_date"] = self.conflict.booking_date.isoformat()
        return {"conflict": data}


class OutsideAvailability(BookingError):
    rule = "outside_availability"
    status_code = 409


class TimeBlocked(BookingError):
    rule = "time_blocked"
    status_code = 409

    def __init__(self, block: BlockDetail):
        self.block = block
        reason = f": {block.reason}" if block.reason else ""
        super().__init__(
            f"Court unavailable {format_minutes(block.start_minute)}-{format_minutes(block.end_minute)}{reason}"
        )

    def payload(self) -> dict:
        return {"block": asdict(self.block)}


# Referential


class CourtNotFound(BookingError):
    rule = "court_not_found"
    status_code = 404


class CourtInactive(BookingError):
    rule = "court_inactive"
    status_code = 409


class FacilityNotFound(BookingError):
    rule = "facility_not_found"
    status_code = 404


class BookingNotFound(BookingError):
    rule = "booking_not_found"
    status_code = 404


# Lifecycle


class Forbidden(BookingError):
    rule = "forbidden"
    status_code = 403


class InvalidTransition(BookingError):
    rule = "invalid_transition"
    status_code = 409

    def __init__(self, message: str, current_status: str):
        self.current_status = current_status
        super().__init__(message)

    def payload(self) -> dict:
        return {"status": self.current_status}


# Infrastructure


class LockTimeout(BookingError):
    """Lock wait exceeded or deadlock detected. Safe to retry."""

    rule = "lock_timeout"
    status_code = 503
    retryable = True

    def payload(self) -> dict:
        return {"retryable": True}
