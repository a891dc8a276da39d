"""JWT verification for tokens issued by the account service.

CourtHub does not handle passwords or sign-in. It only checks the bearer
token's signature and reads the user id from ``sub``.
"""

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from app.core.config import settings


def create_access_token(subject: str, extra: dict | None = None, expires_minutes: int = 30) -> str:
    """Mint an access token in the account service's format (used by tooling and tests)."""
    expire = datetime.now(UTC) + timedelta(minutes=expires_minutes)
    payload = {"sub": subject, "exp": expire, "type": "access"}
    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Raises JWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


def access_claims(token: str) -> dict:
    """Claims of a valid access token with ``sub`` coerced to int. Raises JWTError otherwise."""
    payload = decode_token(token)
    if payload.get("type") != "access":
        raise JWTError("Invalid token type")
    try:
        payload["sub"] = int(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise JWTError("Invalid subject") from exc
    return payload
