"""Greedy grouping of confirmed bookings onto vehicles for one service date.

Bookings are grouped by zone and placed in window order. A booking goes to the
first vehicle already serving its zone with room in that slot, then to any
vehicle opened for another zone with room in that slot, and only then opens the
next unused vehicle. Bookings that fit nowhere stay unassigned and raise an
operational alert; the booking itself is untouched.
"""
from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.config import Settings, get_settings
from booking_engine.core.errors import AssignmentExceededCapacity
from booking_engine.models.booking import Booking, BookingStatus
from booking_engine.models.vehicle import Vehicle
from booking_engine.services.availability_service import coerce_utc

logger = logging.getLogger(__name__)
ops_logger = logging.getLogger("booking_engine.ops")


@dataclass(frozen=True, slots=True)
class Assignment:
    booking_id: uuid.UUID
    vehicle_id: uuid.UUID
    vehicle_name: str
    zone: str
    window_start: datetime
    amount: int
    kept: bool


@dataclass(slots=True)
class VehicleLoad:
    """Units carried per slot by one vehicle; ``zone`` is the zone it opened for."""

    vehicle_id: uuid.UUID
    vehicle_name: str
    zone: str
    capacity_units: int
    zones: list[str] = field(default_factory=list)
    slots: dict[datetime, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.zones:
            self.zones = [self.zone]

    def room(self, window_start: datetime) -> int:
        return self.capacity_units - self.slots.get(window_start, 0)

    def add(self, window_start: datetime, amount: int, zone: str) -> None:
        self.slots[window_start] = self.slots.get(window_start, 0) + amount
        if zone not in self.zones:
            self.zones.append(zone)


@dataclass(slots=True)
class AssignmentPlan:
    service_date: date
    dry_run: bool
    assignments: list[Assignment] = field(default_factory=list)
    loads: list[VehicleLoad] = field(default_factory=list)
    unassigned: list[uuid.UUID] = field(default_factory=list)
    alerts: list[AssignmentExceededCapacity] = field(default_factory=list)


def _day_bounds(service_date: date, settings: Settings) -> tuple[datetime, datetime]:
    """Local day boundaries expressed in UTC, matching how windows are stored."""
    tz = ZoneInfo(settings.schedule_timezone)
    start = datetime.combine(service_date, time.min, tzinfo=tz)
    end = datetime.combine(service_date + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(UTC), end.astimezone(UTC)


async def _load_bookings(
    session: AsyncSession, service_date: date, settings: Settings
) -> list[Booking]:
    day_start, day_end = _day_bounds(service_date, settings)
    result = await session.execute(
        select(Booking).where(
            Booking.status == BookingStatus.CONFIRMED,
            Booking.window_start >= day_start,
            Booking.window_start < day_end,
        )
    )
    return list(result.scalars().all())


def _sort_key(booking: Booking) -> tuple[datetime, datetime]:
    return coerce_utc(booking.window_start), coerce_utc(booking.created_at)


async def assign_vehicles(
    session: AsyncSession,
    service_date: date,
    *,
    reassign: bool = False,
    dry_run: bool = False,
    settings: Settings | None = None,
) -> AssignmentPlan:
    """Plan (and unless ``dry_run``, persist) vehicle assignments for a date."""
    settings = settings or get_settings()
    bookings = await _load_bookings(session, service_date, settings)
    vehicles = list(
        (
            await session.execute(
                select(Vehicle).where(Vehicle.active.is_(True)).order_by(Vehicle.name)
            )
        )
        .scalars()
        .all()
    )
    fleet = {vehicle.id: vehicle for vehicle in vehicles}

    plan = AssignmentPlan(service_date=service_date, dry_run=dry_run)
    loads: dict[uuid.UUID, VehicleLoad] = {}
    zone_vehicles: dict[str, list[VehicleLoad]] = defaultdict(list)
    planned: dict[uuid.UUID, uuid.UUID | None] = {}

    def open_vehicle(vehicle: Vehicle, zone: str) -> VehicleLoad:
        load = VehicleLoad(
            vehicle_id=vehicle.id,
            vehicle_name=vehicle.name,
            zone=zone,
            capacity_units=vehicle.capacity_units,
        )
        loads[vehicle.id] = load
        zone_vehicles[zone].append(load)
        return load

    def place(load: VehicleLoad, booking: Booking, slot: datetime, *, kept: bool) -> None:
        if load not in zone_vehicles[booking.zone_tag]:
            zone_vehicles[booking.zone_tag].append(load)
        load.add(slot, booking.amount, booking.zone_tag)
        planned[booking.id] = load.vehicle_id
        plan.assignments.append(
            Assignment(
                booking_id=booking.id,
                vehicle_id=load.vehicle_id,
                vehicle_name=load.vehicle_name,
                zone=booking.zone_tag,
                window_start=slot,
                amount=booking.amount,
                kept=kept,
            )
        )

    pending: list[Booking] = []
    for booking in sorted(bookings, key=_sort_key):
        vehicle = fleet.get(booking.vehicle_id) if booking.vehicle_id else None
        if reassign or vehicle is None:
            pending.append(booking)
            continue
        slot = coerce_utc(booking.window_start)
        load = loads.get(vehicle.id) or open_vehicle(vehicle, booking.zone_tag)
        if load.room(slot) < booking.amount:
            ops_logger.warning(
                "Kept assignment of booking %s overloads %s at %s; re-planning",
                booking.id,
                vehicle.name,
                slot.isoformat(),
            )
            pending.append(booking)
            continue
        if booking.zone_tag not in load.zones:
            ops_logger.info(
                "Vehicle %s keeps booking %s from zone %s alongside zones %s",
                vehicle.name,
                booking.id,
                booking.zone_tag,
                ", ".join(load.zones),
            )
        place(load, booking, slot, kept=True)

    by_zone: dict[str, list[Booking]] = defaultdict(list)
    for booking in sorted(pending, key=_sort_key):
        by_zone[booking.zone_tag].append(booking)

    for zone in sorted(by_zone):
        for booking in by_zone[zone]:
            slot = coerce_utc(booking.window_start)
            load = next(
                (item for item in zone_vehicles[zone] if item.room(slot) >= booking.amount),
                None,
            )
            if load is None:
                load = next(
                    (
                        item
                        for item in sorted(loads.values(), key=lambda v: v.vehicle_name)
                        if item.room(slot) >= booking.amount
                    ),
                    None,
                )
            if load is None:
                unused = next(
                    (
                        vehicle
                        for vehicle in vehicles
                        if vehicle.id not in loads
                        and vehicle.capacity_units >= booking.amount
                    ),
                    None,
                )
                if unused is not None:
                    load = open_vehicle(unused, zone)
            if load is None:
                alert = AssignmentExceededCapacity(
                    "No vehicle has room for booking",
                    booking_id=booking.id,
                    zone=zone,
                    window_start=slot,
                    amount=booking.amount,
                )
                ops_logger.warning(
                    "Assignment exceeded capacity: booking %s zone %s slot %s (%d units)",
                    booking.id,
                    zone,
                    slot.isoformat(),
                    booking.amount,
                )
                plan.alerts.append(alert)
                plan.unassigned.append(booking.id)
                planned[booking.id] = None
                continue

            place(load, booking, slot, kept=False)

    plan.loads = sorted(loads.values(), key=lambda item: item.vehicle_name)
    logger.info(
        "Batching %s: %d assigned, %d unassigned across %d vehicles%s",
        service_date,
        len(plan.assignments),
        len(plan.unassigned),
        len(plan.loads),
        " (dry run)" if dry_run else "",
    )

    if not dry_run:
        for booking in bookings:
            target = planned.get(booking.id)
            if booking.vehicle_id != target:
                booking.vehicle_id = target
        await session.commit()
    return plan
