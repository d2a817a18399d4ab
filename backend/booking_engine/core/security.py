"""JWT helpers for caller identity tokens."""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import jwt

from booking_engine.core.config import get_settings


def create_access_token(
    subject: str,
    role: str,
    expires_delta: timedelta | None = None,
    **extra: Any,
) -> str:
    """Create a signed token carrying the caller's subject and role."""
    settings = get_settings()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    expire = datetime.now(UTC) + expires_delta
    claims: dict[str, Any] = {"sub": subject, "role": role, "exp": expire}
    claims.update(extra)
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode a JWT token, raising JWTError on failure."""
    settings = get_settings()
    return jwt.decode(
        token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
    )
