"""Availability calculation over the calendar and the capacity ledger."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.config import Settings, get_settings
from booking_engine.core.errors import Blackout, ValidationError
from booking_engine.services import calendar_service, capacity_ledger
from booking_engine.services.calendar_service import CalendarWindow
from booking_engine.services.capacity_ledger import SlotKey
from booking_engine.services.service_area_service import (
    LocationQuery,
    ServiceAreaDecision,
    resolve_location,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SlotAvailability:
    window: CalendarWindow
    capacity: int
    remaining: int

    @property
    def key(self) -> SlotKey:
        return SlotKey.for_window(self.window)


def coerce_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _validate_range(start_date: date, end_date: date, settings: Settings) -> None:
    if start_date > end_date:
        raise ValidationError(
            "start_date must be before or equal to end_date",
            start_date=start_date,
            end_date=end_date,
        )
    if (end_date - start_date).days > settings.max_advance_days:
        raise ValidationError(
            f"Date range cannot exceed {settings.max_advance_days} days",
            start_date=start_date,
            end_date=end_date,
        )


async def available(
    session: AsyncSession,
    *,
    start_date: date,
    end_date: date,
    location: LocationQuery,
    amount: int | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> list[SlotAvailability]:
    """Return bookable windows in chronological order.

    Out-of-area locations get an empty list rather than an error. Windows that
    already started, are closed, or are blocked for the location's zone are
    skipped, as are windows without enough remaining capacity.
    """
    settings = settings or get_settings()
    now = coerce_utc(now or datetime.now(UTC))
    _validate_range(start_date, end_date, settings)
    if amount is not None and amount <= 0:
        raise ValidationError("Amount must be positive", amount=amount)

    decision = await resolve_location(session, location, settings=settings)
    if not decision.admit:
        logger.info(
            "Availability requested outside service area (%s, %.1f mi)",
            location.describe(),
            decision.distance_miles,
        )
        return []

    snapshot = await calendar_service.load_calendar(
        session, start_date=start_date, end_date=end_date, settings=settings, now=now
    )
    fleet_capacity = await capacity_ledger.active_fleet_capacity(session)
    reserved = await capacity_ledger.reserved_by_slot(
        session, start_date=start_date, end_date=end_date
    )

    needed = amount or 1
    slots: list[SlotAvailability] = []
    for window in snapshot.open_windows(start_date, end_date):
        if window.start <= now or not window.is_open_for(decision.zone):
            continue
        capacity = capacity_ledger.slot_capacity(window, fleet_capacity)
        remaining = max(0, capacity - reserved.get(SlotKey.for_window(window), 0))
        if remaining >= needed:
            slots.append(
                SlotAvailability(window=window, capacity=capacity, remaining=remaining)
            )
    return slots


async def check_slot(
    session: AsyncSession,
    *,
    window_start: datetime,
    window_end: datetime,
    decision: ServiceAreaDecision,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> SlotAvailability:
    """Re-validate a single requested window for an admitted location.

    Raises ``ValidationError`` when the window does not match a slot and
    ``Blackout`` when the slot is closed or blocked for the zone. Remaining
    capacity is advisory; the ledger makes the final decision.
    """
    settings = settings or get_settings()
    window_start = coerce_utc(window_start)
    window_end = coerce_utc(window_end)
    slot_day = window_start.astimezone(ZoneInfo(settings.schedule_timezone)).date()

    snapshot = await calendar_service.load_calendar(
        session, start_date=slot_day, end_date=slot_day, settings=settings, now=now
    )
    window = snapshot.find_window(window_start, window_end)
    if window is None:
        raise ValidationError(
            "Requested window does not match a bookable slot",
            window_start=window_start,
            window_end=window_end,
            slot_length_minutes=settings.slot_length_minutes,
        )
    if not window.is_open_for(decision.zone):
        raise Blackout(
            "Requested window is unavailable",
            window_start=window_start,
            window_end=window_end,
            zone=decision.zone,
            reason=window.reason or "zone blackout",
        )

    capacity = await capacity_ledger.capacity_for_window(session, window)
    key = SlotKey.for_window(window)
    remaining = max(0, capacity - await capacity_ledger.reserved_units(session, key))
    return SlotAvailability(window=window, capacity=capacity, remaining=remaining)

