"""Common API dependencies."""

from __future__ import annotations

import enum
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.config import get_settings
from booking_engine.core.security import decode_access_token
from booking_engine.db.session import get_session

settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)


class CallerRole(str, enum.Enum):
    CUSTOMER = "customer"
    DISPATCHER = "dispatcher"
    ADMIN = "admin"


STAFF_ROLES = {CallerRole.DISPATCHER, CallerRole.ADMIN}


@dataclass(frozen=True, slots=True)
class CallerIdentity:
    """Who is calling, decoded once from the bearer token."""

    subject: str
    role: CallerRole

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session."""
    async for session in get_session():
        yield session


async def get_caller(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> CallerIdentity:
    """Authenticate the request from its token claims alone."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception
    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError as exc:
        raise credentials_exception from exc

    subject = payload.get("sub")
    if not subject:
        raise credentials_exception
    try:
        role = CallerRole(payload.get("role"))
    except ValueError as exc:
        raise credentials_exception from exc
    return CallerIdentity(subject=str(subject), role=role)


def require_roles(caller: CallerIdentity, allowed: set[CallerRole]) -> None:
    """Raise HTTP 403 if the caller's role is not in the allowed set."""
    if caller.role not in allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )


def parse_rate(value: str, *, fallback: tuple[int, int]) -> tuple[int, int]:
    """Turn ``"20/minute"`` into ``(20, 60)``."""
    try:
        count_str, window_str = value.split("/", 1)
        count = int(count_str.strip())
    except ValueError:
        return fallback
    seconds_map = {
        "second": 1,
        "seconds": 1,
        "minute": 60,
        "minutes": 60,
        "hour": 3600,
        "hours": 3600,
        "day": 86400,
        "days": 86400,
    }
    return count, seconds_map.get(window_str.strip().lower(), fallback[1])


def rate_dependency(limit: tuple[int, int]):
    async def _dependency(request: Request, response: Response) -> None:
        if FastAPILimiter.redis is None:
            return None
        limiter = RateLimiter(times=limit[0], seconds=limit[1])
        await limiter(request, response)

    return Depends(_dependency)


DEFAULT_RATE_DEP = rate_dependency(parse_rate(settings.rate_limit_default, fallback=(100, 60)))
BOOKING_RATE_DEP = rate_dependency(parse_rate(settings.rate_limit_booking, fallback=(20, 60)))
