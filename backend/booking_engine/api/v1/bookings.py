"""Booking endpoints."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api import deps
from booking_engine.api.deps import CallerIdentity
from booking_engine.models.booking import Booking
from booking_engine.schemas.booking import BookingCreate, BookingRead
from booking_engine.services import booking_service, notification_service

router = APIRouter(prefix="/bookings", dependencies=[deps.DEFAULT_RATE_DEP])


def _to_read(booking: Booking, *, created: bool = False) -> BookingRead:
    return BookingRead.model_validate(booking).model_copy(update={"created": created})


async def _load_booking(
    session: AsyncSession, caller: CallerIdentity, booking_id: uuid.UUID
) -> Booking:
    booking = await booking_service.get_booking(
        session,
        booking_id,
        customer_ref=None if caller.is_staff else caller.subject,
    )
    if booking is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )
    return booking


@router.post(
    "",
    response_model=BookingRead,
    status_code=status.HTTP_201_CREATED,
    summary="Request a booking",
    dependencies=[deps.BOOKING_RATE_DEP],
)
async def create_booking(
    payload: BookingCreate,
    response: Response,
    background_tasks: BackgroundTasks,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    caller: Annotated[CallerIdentity, Depends(deps.get_caller)],
) -> BookingRead:
    customer_ref = payload.customer_ref or caller.subject
    if not caller.is_staff and customer_ref != caller.subject:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Customers can only book for themselves",
        )
    request = booking_service.BookingRequest(
        idempotency_key=payload.idempotency_key,
        customer_ref=customer_ref,
        service_kind=payload.service_kind,
        window_start=payload.window_start,
        window_end=payload.window_end,
        amount=payload.amount,
        postal_code=payload.postal_code,
        latitude=payload.latitude,
        longitude=payload.longitude,
        quoted_price=payload.quoted_price,
        notes=payload.notes,
    )
    outcome = await booking_service.create_booking(session, request)
    if outcome.created:
        notification_service.notify_booking_confirmed(outcome.booking, background_tasks)
    else:
        response.status_code = status.HTTP_200_OK
    return _to_read(outcome.booking, created=outcome.created)


@router.get("/{booking_id}", response_model=BookingRead, summary="Get booking")
async def get_booking(
    booking_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    caller: Annotated[CallerIdentity, Depends(deps.get_caller)],
) -> BookingRead:
    booking = await _load_booking(session, caller, booking_id)
    return _to_read(booking)


@router.post(
    "/{booking_id}/cancel", response_model=BookingRead, summary="Cancel booking"
)
async def cancel_booking(
    booking_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    caller: Annotated[CallerIdentity, Depends(deps.get_caller)],
) -> BookingRead:
    booking = await _load_booking(session, caller, booking_id)
    booking = await booking_service.cancel_booking(session, booking=booking)
    return _to_read(booking)


@router.post(
    "/{booking_id}/complete", response_model=BookingRead, summary="Complete booking"
)
async def complete_booking(
    booking_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    caller: Annotated[CallerIdentity, Depends(deps.get_caller)],
) -> BookingRead:
    deps.require_roles(caller, deps.STAFF_ROLES)
    booking = await _load_booking(session, caller, booking_id)
    booking = await booking_service.complete_booking(session, booking=booking)
    return _to_read(booking)


@router.delete(
    "/{booking_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete booking",
)
async def delete_booking(
    booking_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    caller: Annotated[CallerIdentity, Depends(deps.get_caller)],
) -> Response:
    deps.require_roles(caller, deps.STAFF_ROLES)
    booking = await _load_booking(session, caller, booking_id)
    await booking_service.delete_booking(session, booking=booking)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
