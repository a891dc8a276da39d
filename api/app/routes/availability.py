"""Court availability routes (public, no auth required)."""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.dependencies import get_booking_engine
from app.schemas import AvailabilityOut, BlockOut, DurationErrorOut, OptionOut, SlotsOut
from app.services.booking_engine import BookingEngine

router = APIRouter(prefix="/courts", tags=["availability"])


def _option_out(option) -> OptionOut:
    return OptionOut(
        start_minute=option.start_minute,
        end_minute=option.end_minute,
        price_override=option.price_override,
        duration_minutes=option.duration,
        price=option.price,
    )


def _parse_durations(raw: str) -> list[int]:
    try:
        durations = [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="durations must be a comma-separated list of minutes, e.g. 60,90",
        )
    if not durations:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="No durations given")
    return list(dict.fromkeys(durations))


@router.get("/{court_id}/availability", response_model=AvailabilityOut)
async def get_court_availability(
    court_id: int,
    query_date: date = Query(..., alias="date", description="Date in YYYY-MM-DD format"),
    duration: int | None = Query(None, description="Booking length in minutes; adds composed options"),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """Free 30-minute blocks for a court on a date, and bookable ranges when a duration is given."""
    free, options = await engine.get_availability(court_id, query_date, duration)
    return AvailabilityOut(
        court_id=court_id,
        date=query_date,
        free_blocks=[
            BlockOut(start_minute=b.start_minute, end_minute=b.end_minute, price_override=b.price_override)
            for b in free
        ],
        options=[_option_out(o) for o in options] if options is not None else None,
    )


@router.get("/{court_id}/availability/slots", response_model=SlotsOut)
async def get_court_slots(
    court_id: int,
    query_date: date = Query(..., alias="date", description="Date in YYYY-MM-DD format"),
    durations: str = Query("60", description="Comma-separated durations in minutes"),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """Bookable ranges for several durations at once. Invalid durations are reported per duration."""
    result = await engine.get_options_for_durations(court_id, query_date, _parse_durations(durations))
    return SlotsOut(
        court_id=court_id,
        date=query_date,
        slots_by_duration={d: [_option_out(o) for o in opts] for d, opts in result.options.items()},
        errors={d: DurationErrorOut(rule=e.rule, message=e.message) for d, e in result.errors.items()},
    )
