"""Pydantic schemas for API serialisation."""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, computed_field

from app.services.time_model import format_minutes, parse_hhmm


def _minutes(value):
    """Accept minutes since midnight or an "HH:MM" string."""
    if isinstance(value, str) and ":" in value:
        return parse_hhmm(value)
    return value


Minute = Annotated[int, BeforeValidator(_minutes)]


# --- Availability ---


class BlockOut(BaseModel):
    start_minute: int
    end_minute: int
    price_override: Decimal | None = None

    @computed_field
    @property
    def start_time(self) -> str:
        return format_minutes(self.start_minute)

    @computed_field
    @property
    def end_time(self) -> str:
        return format_minutes(self.end_minute)


class OptionOut(BlockOut):
    duration_minutes: int
    price: Decimal | None = None


class AvailabilityOut(BaseModel):
    court_id: int
    date: date
    free_blocks: list[BlockOut]
    options: list[OptionOut] | None = None  # only when a duration is requested


class DurationErrorOut(BaseModel):
    rule: str
    message: str


class SlotsOut(BaseModel):
    court_id: int
    date: date
    slots_by_duration: dict[int, list[OptionOut]]
    errors: dict[int, DurationErrorOut] = {}


# --- Booking ---


class BookingCreate(BaseModel):
    court_id: int
    booking_date: date
    start_minute: Minute
    end_minute: Minute
    payment_reference: str | None = Field(default=None, max_length=100)


class BookingAccept(BaseModel):
    payment_reference: str | None = Field(default=None, max_length=100)


class BookingReject(BaseModel):
    reason: str | None = None


class BookingCancel(BaseModel):
    reason: str | None = None


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    court_id: int
    user_id: int
    booking_date: date
    start_minute: int
    end_minute: int
    status: str
    final_price: Decimal
    expires_at: datetime | None
    payment_reference: str | None
    cancellation_reason: str | None
    rejection_reason: str | None
    cancelled_at: datetime | None
    created_at: datetime | None = None

    @computed_field
    @property
    def start_time(self) -> str:
        return format_minutes(self.start_minute)

    @computed_field
    @property
    def end_time(self) -> str:
        return format_minutes(self.end_minute)


class PendingBookingsOut(BaseModel):
    facility_id: int
    total: int
    bookings: list[BookingOut]


# --- Admin ---


class SweepOut(BaseModel):
    expired_ids: list[int]
    completed_ids: list[int] = []
