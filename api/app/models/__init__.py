"""All models imported here for Alembic autogenerate discovery."""

from app.models.availability import BlockedTimeRange, BlockType, BookingPolicy, CourtAvailabilityRule
from app.models.base import Base
from app.models.booking import BLOCKING_STATUSES, Booking, BookingStatus
from app.models.facility import Court, Facility

__all__ = [
    "Base",
    "Facility",
    "Court",
    "CourtAvailabilityRule",
    "BookingPolicy",
    "BlockedTimeRange",
    "BlockType",
    "Booking",
    "BookingStatus",
    "BLOCKING_STATUSES",
]
