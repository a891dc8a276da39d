"""Availability rules, booking policies and blocked time ranges.

All times are stored as integer minutes since midnight. Day of week is
0=Sunday..6=Saturday, matching the rule administration service.
"""

import enum
from datetime import date
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin


class CourtAvailabilityRule(TimestampMixin, Base):
    """Weekly opening window for a court. start_minute > end_minute crosses midnight."""

    __tablename__ = "court_availability_rules"

    id: Mapped[int] = mapped_column(primary_key=True)
    court_id: Mapped[int] = mapped_column(ForeignKey("courts.id", ondelete="CASCADE"), nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_minute: Mapped[int] = mapped_column(Integer, nullable=False)
    end_minute: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_hour_override: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_rules_day_of_week"),
        Index("ix_rules_court_day", "court_id", "day_of_week", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<CourtAvailabilityRule court={self.court_id} dow={self.day_of_week} {self.start_minute}-{self.end_minute}>"


class BookingPolicy(TimestampMixin, Base):
    """Booking limits for a facility (court_id NULL) or a single court.

    NULL columns fall through: court -> facility -> system defaults.
    """

    __tablename__ = "booking_policies"

    id: Mapped[int] = mapped_column(primary_key=True)
    facility_id: Mapped[int] = mapped_column(ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False)
    court_id: Mapped[int | None] = mapped_column(ForeignKey("courts.id", ondelete="CASCADE"))

    max_advance_booking_days: Mapped[int | None] = mapped_column(Integer)
    min_booking_duration_minutes: Mapped[int | None] = mapped_column(Integer)
    max_booking_duration_minutes: Mapped[int | None] = mapped_column(Integer)
    booking_buffer_minutes: Mapped[int | None] = mapped_column(Integer)
    min_advance_notice_minutes: Mapped[int | None] = mapped_column(Integer)
    pending_booking_expiration_hours: Mapped[int | None] = mapped_column(Integer)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_policies_facility_active", "facility_id", "is_active"),
        Index("ix_policies_court_active", "court_id", "is_active"),
    )


class BlockType(enum.StrEnum):
    ONE_TIME = "one_time"
    RECURRING = "recurring"
    DATE_RANGE = "date_range"


class BlockedTimeRange(TimestampMixin, Base):
    """Administrative blackout: maintenance, private events, holidays.

    court_id NULL blocks every court at the facility. A date_range block
    without a time window covers the whole day.
    """

    __tablename__ = "blocked_time_ranges"

    id: Mapped[int] = mapped_column(primary_key=True)
    facility_id: Mapped[int] = mapped_column(ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False)
    court_id: Mapped[int | None] = mapped_column(ForeignKey("courts.id", ondelete="CASCADE"))
    block_type: Mapped[BlockType] = mapped_column(
        Enum(BlockType, name="block_type", values_callable=lambda e: [x.value for x in e]),
        nullable=False,
    )

    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)
    start_minute: Mapped[int | None] = mapped_column(Integer)
    end_minute: Mapped[int | None] = mapped_column(Integer)
    day_of_week: Mapped[int | None] = mapped_column(Integer)

    reason: Mapped[str | None] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (
        Index("ix_blocked_court_dates", "court_id", "start_date", "end_date"),
        Index("ix_blocked_facility_active", "facility_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<BlockedTimeRange {self.block_type} court={self.court_id} facility={self.facility_id}>"
