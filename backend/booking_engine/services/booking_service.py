"""Booking creation, idempotent replay and lifecycle transitions."""
from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.config import Settings, get_settings
from booking_engine.core.errors import (
    EngineError,
    IdempotencyConflict,
    OutOfServiceArea,
    TransientStorageError,
    ValidationError,
)
from booking_engine.models.booking import (
    Booking,
    BookingStatus,
    IdempotencyRecord,
    ServiceKind,
)
from booking_engine.services import availability_service, capacity_ledger
from booking_engine.services.availability_service import SlotAvailability, coerce_utc
from booking_engine.services.service_area_service import (
    LocationQuery,
    ServiceAreaDecision,
    resolve_location,
)

logger = logging.getLogger(__name__)

_ALLOWED_STATUS_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.CANCELLED, BookingStatus.COMPLETED},
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
}

_CENTS = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class BookingRequest:
    """Everything a caller supplies to reserve a slot."""

    idempotency_key: str
    customer_ref: str
    window_start: datetime
    window_end: datetime
    amount: int
    service_kind: ServiceKind = ServiceKind.PICKUP
    postal_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    quoted_price: Decimal | None = None
    notes: str | None = None

    @property
    def location(self) -> LocationQuery:
        postal_code = self.postal_code.strip().upper() if self.postal_code else None
        return LocationQuery(
            postal_code=postal_code, latitude=self.latitude, longitude=self.longitude
        )

    def context(self) -> dict[str, object]:
        return {
            "window_start": self.window_start,
            "window_end": self.window_end,
            "location": self.location.describe(),
            "amount": self.amount,
        }


@dataclass(frozen=True, slots=True)
class BookingOutcome:
    booking: Booking
    created: bool


def request_fingerprint(request: BookingRequest) -> str:
    """SHA-256 of the canonical JSON of every field except the idempotency key."""
    location = request.location
    quoted_price = (
        str(Decimal(request.quoted_price).quantize(_CENTS))
        if request.quoted_price is not None
        else None
    )
    payload = {
        "customer_ref": request.customer_ref.strip(),
        "service_kind": ServiceKind(request.service_kind).value,
        "window_start": coerce_utc(request.window_start).isoformat(),
        "window_end": coerce_utc(request.window_end).isoformat(),
        "amount": request.amount,
        "postal_code": location.postal_code,
        "latitude": request.latitude,
        "longitude": request.longitude,
        "quoted_price": quoted_price,
        "notes": request.notes,
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _validate_request(request: BookingRequest) -> None:
    context = request.context()
    if not request.idempotency_key or not request.idempotency_key.strip():
        raise ValidationError("An idempotency key is required", **context)
    if not request.customer_ref or not request.customer_ref.strip():
        raise ValidationError("A customer reference is required", **context)
    if request.amount <= 0:
        raise ValidationError("Amount must be a positive number of units", **context)

    has_postal = bool(request.postal_code and request.postal_code.strip())
    has_latitude = request.latitude is not None
    has_longitude = request.longitude is not None
    if has_latitude != has_longitude:
        raise ValidationError("Latitude and longitude must be supplied together", **context)
    if has_postal == has_latitude:
        raise ValidationError(
            "Provide either a postal code or a coordinate pair", **context
        )

    if coerce_utc(request.window_end) <= coerce_utc(request.window_start):
        raise ValidationError("Window end must be after window start", **context)


def _validate_timing(request: BookingRequest, settings: Settings, now: datetime) -> None:
    """Checks that only apply to new bookings; replays skip them."""
    context = request.context()
    start = coerce_utc(request.window_start)
    if start <= now:
        raise ValidationError("Window must start in the future", **context)
    if (start.date() - now.date()).days > settings.max_advance_days:
        raise ValidationError(
            f"Bookings can be made at most {settings.max_advance_days} days ahead",
            **context,
        )


async def _load_replay(
    session: AsyncSession, request: BookingRequest, fingerprint: str
) -> BookingOutcome | None:
    idempotency_key = request.idempotency_key
    record = (
        await session.execute(
            select(IdempotencyRecord)
            .where(IdempotencyRecord.idempotency_key == idempotency_key)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if record is None:
        return None
    booking = await session.get(Booking, record.booking_id, populate_existing=True)
    if record.request_fingerprint != fingerprint:
        # Another customer's booking id is not disclosed.
        owned = (
            booking is not None
            and booking.customer_ref == request.customer_ref.strip()
        )
        raise IdempotencyConflict(
            "Idempotency key was already used with a different request",
            idempotency_key=idempotency_key,
            booking_id=record.booking_id if owned else None,
        )
    if booking is None:
        return None
    logger.info("Replaying booking %s for idempotency key", booking.id)
    return BookingOutcome(booking=booking, created=False)


async def _precheck(
    session: AsyncSession,
    request: BookingRequest,
    fingerprint: str,
    settings: Settings,
    now: datetime,
) -> BookingOutcome | tuple[ServiceAreaDecision, SlotAvailability]:
    replay = await _load_replay(session, request, fingerprint)
    if replay is not None:
        return replay
    _validate_timing(request, settings, now)

    decision = await resolve_location(session, request.location, settings=settings)
    if not decision.admit:
        raise OutOfServiceArea(
            "Location is outside the service area",
            distance_miles=round(decision.distance_miles, 2),
            radius_miles=decision.radius_miles,
            **request.context(),
        )

    slot = await availability_service.check_slot(
        session,
        window_start=request.window_start,
        window_end=request.window_end,
        decision=decision,
        settings=settings,
        now=now,
    )
    return decision, slot


async def _reserve_and_commit(
    session: AsyncSession,
    request: BookingRequest,
    fingerprint: str,
    decision: ServiceAreaDecision,
    slot: SlotAvailability,
) -> Booking:
    reservation = await capacity_ledger.try_reserve(
        session, slot.key, request.amount, capacity=slot.capacity
    )
    booking = Booking(
        customer_ref=request.customer_ref.strip(),
        service_kind=request.service_kind,
        status=BookingStatus.CONFIRMED,
        window_start=slot.window.start.astimezone(UTC),
        window_end=slot.window.end.astimezone(UTC),
        postal_code=request.location.postal_code,
        latitude=decision.latitude,
        longitude=decision.longitude,
        distance_miles=round(decision.distance_miles, 3),
        zone_tag=decision.zone,
        amount=request.amount,
        quoted_price=request.quoted_price,
        notes=request.notes,
        idempotency_key=request.idempotency_key,
        request_fingerprint=fingerprint,
        reservation_id=reservation.id,
    )
    session.add(booking)
    await session.flush()

    reservation.booking_id = booking.id
    session.add(
        IdempotencyRecord(
            idempotency_key=request.idempotency_key,
            booking_id=booking.id,
            request_fingerprint=fingerprint,
        )
    )
    await session.commit()
    return booking


async def create_booking(
    session: AsyncSession,
    request: BookingRequest,
    *,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> BookingOutcome:
    """Grant a slot or raise a typed rejection.

    Replays return the original booking with ``created=False``. The capacity
    reservation, booking row and idempotency record commit together or not at
    all.
    """
    settings = settings or get_settings()
    now = coerce_utc(now or datetime.now(UTC))
    _validate_request(request)
    fingerprint = request_fingerprint(request)

    try:
        checked = await asyncio.wait_for(
            _precheck(session, request, fingerprint, settings, now),
            timeout=settings.precheck_timeout_seconds,
        )
    except TimeoutError as exc:
        await session.rollback()
        raise TransientStorageError(
            "Timed out validating the booking request", **request.context()
        ) from exc
    except OperationalError as exc:
        await session.rollback()
        raise TransientStorageError(
            "Storage unavailable while validating the booking request",
            **request.context(),
        ) from exc
    if isinstance(checked, BookingOutcome):
        return checked
    decision, slot = checked

    try:
        booking = await asyncio.wait_for(
            _reserve_and_commit(session, request, fingerprint, decision, slot),
            timeout=settings.commit_timeout_seconds,
        )
    except EngineError as exc:
        await session.rollback()
        for key, value in request.context().items():
            exc.context.setdefault(key, value)
        raise
    except IntegrityError as exc:
        await session.rollback()
        replay = await _load_replay(session, request, fingerprint)
        if replay is not None:
            return replay
        raise TransientStorageError(
            "Booking could not be stored", **request.context()
        ) from exc
    except TimeoutError as exc:
        await session.rollback()
        raise TransientStorageError(
            "Timed out reserving capacity", **request.context()
        ) from exc
    except OperationalError as exc:
        await session.rollback()
        raise TransientStorageError(
            "Storage unavailable while reserving capacity", **request.context()
        ) from exc

    logger.info(
        "Booking %s confirmed for %s (%d units, zone %s)",
        booking.id,
        booking.customer_ref,
        booking.amount,
        booking.zone_tag,
    )
    return BookingOutcome(booking=booking, created=True)


async def get_booking(
    session: AsyncSession,
    booking_id: uuid.UUID,
    *,
    customer_ref: str | None = None,
) -> Booking | None:
    """Fetch a booking, optionally scoped to one customer."""
    stmt = select(Booking).where(Booking.id == booking_id)
    if customer_ref is not None:
        stmt = stmt.where(Booking.customer_ref == customer_ref)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


def _validate_status_transition(current: BookingStatus, target: BookingStatus) -> None:
    allowed = _ALLOWED_STATUS_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise ValidationError(
            f"Invalid status transition from {current.value} to {target.value}",
            current=current.value,
            target=target.value,
        )


async def cancel_booking(
    session: AsyncSession,
    *,
    booking: Booking,
    now: datetime | None = None,
) -> Booking:
    """Cancel a booking and release its capacity. Cancelling twice is a no-op."""
    if booking.status == BookingStatus.CANCELLED:
        return booking
    _validate_status_transition(booking.status, BookingStatus.CANCELLED)

    now = now or datetime.now(UTC)
    if booking.reservation_id is not None:
        released = await capacity_ledger.release(session, booking.reservation_id, now=now)
        if not released:
            logger.info("Reservation for booking %s was already released", booking.id)
    booking.status = BookingStatus.CANCELLED
    booking.cancelled_at = now
    booking.vehicle_id = None
    await session.commit()
    return booking


async def complete_booking(
    session: AsyncSession,
    *,
    booking: Booking,
    now: datetime | None = None,
) -> Booking:
    """Mark a booking completed; capacity stays consumed."""
    if booking.status == BookingStatus.COMPLETED:
        return booking
    _validate_status_transition(booking.status, BookingStatus.COMPLETED)
    booking.status = BookingStatus.COMPLETED
    booking.completed_at = now or datetime.now(UTC)
    await session.commit()
    return booking


async def delete_booking(session: AsyncSession, *, booking: Booking) -> None:
    """Delete a booking together with its idempotency record, releasing capacity first."""
    if booking.reservation_id is not None:
        await capacity_ledger.release(session, booking.reservation_id)
    await session.execute(
        delete(IdempotencyRecord).where(IdempotencyRecord.booking_id == booking.id)
    )
    await session.delete(booking)
    await session.commit()
