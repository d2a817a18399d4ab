"""Versioned API router."""

from fastapi import APIRouter

from . import availability, bookings, calendar, dispatch, health

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(bookings.router, tags=["bookings"])
router.include_router(availability.router, tags=["availability"])
router.include_router(calendar.router, tags=["calendar"])
router.include_router(dispatch.router, tags=["dispatch"])

__all__ = ["router"]
