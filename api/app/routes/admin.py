"""Platform admin routes."""

from fastapi import APIRouter, Depends, Query

from app.core.config import settings
from app.core.dependencies import get_booking_engine, require_admin
from app.schemas import SweepOut
from app.services.booking_engine import BookingEngine

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/bookings/expire", response_model=SweepOut)
async def run_expiration_sweep(
    batch_size: int = Query(settings.expiration_batch_size, ge=1, le=1000),
    _admin_id: int = Depends(require_admin),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """Run the expiry and completion sweeps now instead of waiting for the worker."""
    expired = await engine.expire_pending(batch_size)
    completed = await engine.complete_elapsed(batch_size)
    return SweepOut(expired_ids=expired, completed_ids=completed)
