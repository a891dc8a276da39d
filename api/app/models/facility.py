"""Facility and court models.

Facility = a venue listed on the marketplace (owned by one user).
Court = an individual bookable court at a facility.

Both are administered by the facility service; the booking engine only reads
them and locks the court row while it commits a booking.
"""

from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin


class Facility(TimestampMixin, Base):
    __tablename__ = "facilities"

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    courts: Mapped[list["Court"]] = relationship(back_populates="facility", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Facility {self.name}>"


class Court(TimestampMixin, Base):
    """A bookable court. price_per_hour is the default rate, rules may override it."""

    __tablename__ = "courts"

    id: Mapped[int] = mapped_column(primary_key=True)
    facility_id: Mapped[int] = mapped_column(ForeignKey("facilities.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    price_per_hour: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    facility: Mapped["Facility"] = relationship(back_populates="courts")

    __table_args__ = (Index("ix_courts_facility", "facility_id"),)

    def __repr__(self) -> str:
        return f"<Court {self.name} @ facility {self.facility_id}>"
