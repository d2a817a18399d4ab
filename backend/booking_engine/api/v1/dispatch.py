"""Dispatch endpoints: vehicle assignment runs."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api import deps
from booking_engine.api.deps import CallerIdentity
from booking_engine.schemas.dispatch import (
    AlertRead,
    AssignmentRead,
    DispatchPlanRead,
    DispatchRequest,
    SlotLoadRead,
    VehicleLoadRead,
)
from booking_engine.services import batching_service

router = APIRouter(prefix="/dispatch", dependencies=[deps.DEFAULT_RATE_DEP])


@router.post(
    "/assignments",
    response_model=DispatchPlanRead,
    summary="Assign confirmed bookings to vehicles",
)
async def run_assignments(
    payload: DispatchRequest,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    caller: Annotated[CallerIdentity, Depends(deps.get_caller)],
) -> DispatchPlanRead:
    deps.require_roles(caller, deps.STAFF_ROLES)
    plan = await batching_service.assign_vehicles(
        session,
        payload.service_date,
        reassign=payload.reassign,
        dry_run=payload.dry_run,
    )
    return DispatchPlanRead(
        service_date=plan.service_date,
        dry_run=plan.dry_run,
        assignments=[AssignmentRead.model_validate(item) for item in plan.assignments],
        loads=[
            VehicleLoadRead(
                vehicle_id=load.vehicle_id,
                vehicle_name=load.vehicle_name,
                zone=load.zone,
                zones=list(load.zones),
                capacity_units=load.capacity_units,
                slots=[
                    SlotLoadRead(window_start=window_start, units=units)
                    for window_start, units in sorted(load.slots.items())
                ],
            )
            for load in plan.loads
        ],
        unassigned=plan.unassigned,
        alerts=[AlertRead(**alert.as_detail()) for alert in plan.alerts],
    )
