"""Availability endpoints."""

from __future__ import annotations

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api import deps
from booking_engine.schemas.availability import AvailabilitySlotRead
from booking_engine.services import availability_service
from booking_engine.services.service_area_service import LocationQuery

router = APIRouter(prefix="/availability", dependencies=[deps.DEFAULT_RATE_DEP])


@router.get(
    "",
    response_model=list[AvailabilitySlotRead],
    summary="List bookable windows for a location",
)
async def list_availability(
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    start_date: date,
    end_date: date,
    postal_code: Annotated[str | None, Query(max_length=16)] = None,
    latitude: Annotated[float | None, Query(ge=-90, le=90)] = None,
    longitude: Annotated[float | None, Query(ge=-180, le=180)] = None,
    amount: Annotated[int | None, Query(gt=0)] = None,
) -> list[AvailabilitySlotRead]:
    slots = await availability_service.available(
        session,
        start_date=start_date,
        end_date=end_date,
        location=LocationQuery(
            postal_code=postal_code.strip().upper() if postal_code else None,
            latitude=latitude,
            longitude=longitude,
        ),
        amount=amount,
    )
    return [
        AvailabilitySlotRead(
            slot_date=slot.window.slot_date,
            window_start=slot.window.start,
            window_end=slot.window.end,
            capacity=slot.capacity,
            remaining=slot.remaining,
        )
        for slot in slots
    ]
