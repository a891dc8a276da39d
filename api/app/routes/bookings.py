"""Booking routes: create, list, accept, reject, cancel.

All rule enforcement and locking happens in the booking engine; handlers only
translate HTTP to engine calls. Engine errors become JSON responses through
the BookingError handler registered in app.main.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_booking_engine, get_current_user_id
from app.models.booking import Booking
from app.schemas import BookingAccept, BookingCancel, BookingCreate, BookingOut, BookingReject
from app.services.booking_engine import BookingEngine

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def create_booking(
    body: BookingCreate,
    user_id: int = Depends(get_current_user_id),
    engine: BookingEngine = Depends(get_booking_engine),
):
    return await engine.create_booking(
        user_id,
        body.court_id,
        body.booking_date,
        body.start_minute,
        body.end_minute,
        payment_reference=body.payment_reference,
    )


@router.get("", response_model=list[BookingOut])
async def list_my_bookings(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Booking)
        .where(Booking.user_id == user_id)
        .order_by(Booking.booking_date.desc(), Booking.start_minute.desc())
        .limit(50)
    )
    return result.scalars().all()


@router.get("/{booking_id}", response_model=BookingOut)
async def get_booking(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Booking).where(Booking.id == booking_id, Booking.user_id == user_id))
    booking = result.scalar_one_or_none()
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return booking


@router.post("/{booking_id}/accept", response_model=BookingOut)
async def accept_booking(
    booking_id: int,
    body: BookingAccept | None = None,
    user_id: int = Depends(get_current_user_id),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """Facility owner confirms a pending booking."""
    payment_reference = body.payment_reference if body else None
    return await engine.accept_booking(booking_id, user_id, payment_reference=payment_reference)


@router.post("/{booking_id}/reject", response_model=BookingOut)
async def reject_booking(
    booking_id: int,
    body: BookingReject | None = None,
    user_id: int = Depends(get_current_user_id),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """Facility owner turns down a pending booking."""
    return await engine.reject_booking(booking_id, user_id, reason=body.reason if body else None)


@router.post("/{booking_id}/cancel", response_model=BookingOut)
async def cancel_booking(
    booking_id: int,
    body: BookingCancel | None = None,
    user_id: int = Depends(get_current_user_id),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """Booking owner cancels before the start time."""
    return await engine.cancel_booking(booking_id, user_id, reason=body.reason if body else None)
