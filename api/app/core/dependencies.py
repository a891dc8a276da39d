"""FastAPI dependencies for injection into route handlers."""

from datetime import datetime
from functools import lru_cache
from zoneinfo import ZoneInfo

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from app.core.auth import access_claims
from app.core.config import settings
from app.core.database import async_session_factory
from app.services.booking_engine import BookingEngine
from app.services.repositories import (
    SqlBlockedRangeStore,
    SqlCourtStore,
    SqlPolicyStore,
    SqlReservationStore,
    SqlRuleStore,
    SqlTransactionManager,
)

bearer_scheme = HTTPBearer(auto_error=False)


def facility_now() -> datetime:
    """Current time in the facilities' timezone: "today" and same-day trimming use local time."""
    return datetime.now(ZoneInfo(settings.timezone))


def build_booking_engine(session_factory=async_session_factory) -> BookingEngine:
    defaults = settings.system_defaults()
    return BookingEngine(
        courts=SqlCourtStore(session_factory),
        rules=SqlRuleStore(session_factory),
        policies=SqlPolicyStore(session_factory, defaults),
        reservations=SqlReservationStore(session_factory),
        blocked_ranges=SqlBlockedRangeStore(session_factory),
        transactions=SqlTransactionManager(session_factory),
        defaults=defaults,
        clock=facility_now,
    )


@lru_cache
def get_booking_engine() -> BookingEngine:
    """The engine holds no per-request state, so one instance serves every request."""
    return build_booking_engine()


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


async def get_token_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict:
    """Validate the JWT bearer token and return its claims."""
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        return access_claims(credentials.credentials)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


async def get_current_user_id(claims: dict = Depends(get_token_claims)) -> int:
    return claims["sub"]


async def require_admin(claims: dict = Depends(get_token_claims)) -> int:
    """Require a platform admin token (``role`` claim of admin or superadmin)."""
    if claims.get("role") not in ("admin", "superadmin"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return claims["sub"]
