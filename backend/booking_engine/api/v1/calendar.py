"""Calendar administration: business hours, blackouts and overrides."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api import deps
from booking_engine.api.deps import CallerIdentity, CallerRole
from booking_engine.schemas.calendar import (
    BlackoutCreate,
    BlackoutRead,
    BusinessHourRead,
    BusinessHourWrite,
    OverrideCreate,
    OverrideRead,
)
from booking_engine.services import calendar_admin_service

router = APIRouter(prefix="/calendar", dependencies=[deps.DEFAULT_RATE_DEP])

_ADMIN = {CallerRole.ADMIN}


@router.get("/hours", response_model=list[BusinessHourRead], summary="List weekly hours")
async def list_hours(
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    caller: Annotated[CallerIdentity, Depends(deps.get_caller)],
) -> list[BusinessHourRead]:
    deps.require_roles(caller, deps.STAFF_ROLES)
    hours = await calendar_admin_service.list_hours(session)
    return [BusinessHourRead.model_validate(hour) for hour in hours]


@router.put("/hours", response_model=BusinessHourRead, summary="Upsert weekly hour")
async def upsert_hour(
    payload: BusinessHourWrite,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    caller: Annotated[CallerIdentity, Depends(deps.get_caller)],
) -> BusinessHourRead:
    deps.require_roles(caller, _ADMIN)
    hour = await calendar_admin_service.upsert_hour(session, payload=payload)
    return BusinessHourRead.model_validate(hour)


@router.get("/blackouts", response_model=list[BlackoutRead], summary="List blackouts")
async def list_blackouts(
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    caller: Annotated[CallerIdentity, Depends(deps.get_caller)],
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[BlackoutRead]:
    deps.require_roles(caller, deps.STAFF_ROLES)
    blackouts = await calendar_admin_service.list_blackouts(
        session, start_date=start_date, end_date=end_date
    )
    return [BlackoutRead.model_validate(item) for item in blackouts]


@router.post(
    "/blackouts",
    response_model=BlackoutRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create blackout",
)
async def create_blackout(
    payload: BlackoutCreate,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    caller: Annotated[CallerIdentity, Depends(deps.get_caller)],
) -> BlackoutRead:
    deps.require_roles(caller, _ADMIN)
    blackout = await calendar_admin_service.create_blackout(session, payload=payload)
    return BlackoutRead.model_validate(blackout)


@router.delete(
    "/blackouts/{blackout_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete blackout",
)
async def delete_blackout(
    blackout_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    caller: Annotated[CallerIdentity, Depends(deps.get_caller)],
) -> Response:
    deps.require_roles(caller, _ADMIN)
    blackout = await calendar_admin_service.get_blackout(session, blackout_id)
    if blackout is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Blackout not found"
        )
    await calendar_admin_service.delete_blackout(session, blackout=blackout)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/overrides", response_model=list[OverrideRead], summary="List overrides")
async def list_overrides(
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    caller: Annotated[CallerIdentity, Depends(deps.get_caller)],
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[OverrideRead]:
    deps.require_roles(caller, deps.STAFF_ROLES)
    overrides = await calendar_admin_service.list_overrides(
        session, start_date=start_date, end_date=end_date
    )
    return [OverrideRead.model_validate(item) for item in overrides]


@router.post(
    "/overrides",
    response_model=OverrideRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create availability override",
)
async def create_override(
    payload: OverrideCreate,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    caller: Annotated[CallerIdentity, Depends(deps.get_caller)],
) -> OverrideRead:
    deps.require_roles(caller, _ADMIN)
    override = await calendar_admin_service.create_override(
        session, payload=payload, created_by=caller.subject
    )
    return OverrideRead.model_validate(override)


@router.delete(
    "/overrides/{override_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete availability override",
)
async def delete_override(
    override_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    caller: Annotated[CallerIdentity, Depends(deps.get_caller)],
) -> Response:
    deps.require_roles(caller, _ADMIN)
    override = await calendar_admin_service.get_override(session, override_id)
    if override is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Override not found"
        )
    await calendar_admin_service.delete_override(session, override=override)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
