"""Booking model.

A booking reserves a court for a user on a date between two minute offsets.
Rows are never deleted: every lifecycle change is a status transition.
"""

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.facility import Court


class BookingStatus(enum.StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    REJECTED = "rejected"
    EXPIRED = "expired"


# Statuses that can hold a court. Pending only while expires_at is in the future.
BLOCKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.COMPLETED)


class Booking(TimestampMixin, Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    court_id: Mapped[int] = mapped_column(ForeignKey("courts.id", ondelete="RESTRICT"), nullable=False)

    # When
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_minute: Mapped[int] = mapped_column(Integer, nullable=False)
    end_minute: Mapped[int] = mapped_column(Integer, nullable=False)

    # Status
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status", values_callable=lambda e: [x.value for x in e]),
        default=BookingStatus.PENDING,
        nullable=False,
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancellation_reason: Mapped[str | None] = mapped_column(Text)
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    # Payment
    final_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_reference: Mapped[str | None] = mapped_column(String(100))

    court: Mapped["Court"] = relationship(lazy="raise")

    __table_args__ = (
        CheckConstraint("start_minute >= 0 AND start_minute < 1440", name="ck_bookings_start"),
        CheckConstraint("end_minute > 0 AND end_minute <= 1440", name="ck_bookings_end"),
        CheckConstraint("start_minute < end_minute", name="ck_bookings_range"),
        # Overlap detection: court + date + range, only rows that can block
        Index(
            "ix_bookings_active",
            "court_id",
            "booking_date",
            "start_minute",
            "end_minute",
            postgresql_where="status IN ('pending', 'confirmed', 'completed')",
        ),
        # Expiration sweep
        Index("ix_bookings_pending_expiry", "expires_at", postgresql_where="status = 'pending'"),
        # My bookings
        Index("ix_bookings_user", "user_id", "booking_date"),
    )

    def __repr__(self) -> str:
        return f"<Booking {self.booking_date} {self.start_minute}-{self.end_minute} court={self.court_id} {self.status}>"
