"""Facility owner routes."""

from fastapi import APIRouter, Depends, Query

from app.core.dependencies import get_booking_engine, get_current_user_id
from app.schemas import BookingOut, PendingBookingsOut
from app.services.booking_engine import BookingEngine

router = APIRouter(prefix="/facilities", tags=["facilities"])


@router.get("/{facility_id}/bookings/pending", response_model=PendingBookingsOut)
async def list_pending_bookings(
    facility_id: int,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: int = Depends(get_current_user_id),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """Pending bookings the facility owner still has to accept or reject."""
    bookings, total = await engine.list_pending_bookings(facility_id, user_id, limit=limit, offset=offset)
    return PendingBookingsOut(
        facility_id=facility_id,
        total=total,
        bookings=[BookingOut.model_validate(b) for b in bookings],
    )
