"""JWT utilities.

Tokens are issued by the identity service; the engine only verifies them and
reads the user id from ``sub``. ``create_access_token`` is kept for tooling
and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from rescue_engine.core.config import settings


def create_access_token(user_id: int, extra: dict[str, Any] | None = None) -> str:
    """Create a JWT access token for a user id."""
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=settings.jwt_expire_minutes)
    payload = {
        "sub": str(user_id),
        "exp": expire,
        "iat": now,
    }
    if extra:
        payload.update(extra)
    return jwt.encode(
        payload,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a JWT. Returns payload or None if invalid."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None


def user_id_from_token(token: str) -> int | None:
    """Return the authenticated user id carried by a token, or None."""
    payload = decode_access_token(token)
    if not payload or "sub" not in payload:
        return None
    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        return None
