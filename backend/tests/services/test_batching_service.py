from __future__ import annotations

import logging
from datetime import UTC, date, datetime, timedelta

import pytest
from sqlalchemy import select, update

from booking_engine.core.config import get_settings
from booking_engine.db.session import get_sessionmaker
from booking_engine.models import Booking, BookingStatus, Vehicle
from booking_engine.services import batching_service, booking_service
from booking_engine.services.booking_service import BookingRequest

pytestmark = pytest.mark.asyncio


async def _add_vehicles(db_url: str) -> None:
    async with get_sessionmaker(db_url)() as session:
        session.add_all(
            [
                Vehicle(name="Truck 2", capacity_units=80),
                Vehicle(name="Van 1", capacity_units=30),
            ]
        )
        await session.commit()


async def _book(db_url: str, window, key: str, amount: int, postal_code: str):
    start, end = window
    async with get_sessionmaker(db_url)() as session:
        outcome = await booking_service.create_booking(
            session,
            BookingRequest(
                idempotency_key=key,
                customer_ref=f"customer-{key}",
                window_start=start,
                window_end=end,
                amount=amount,
                postal_code=postal_code,
            ),
        )
    return outcome.booking


async def _vehicle_by_booking(db_url: str) -> dict:
    async with get_sessionmaker(db_url)() as session:
        rows = await session.execute(select(Booking.id, Booking.vehicle_id))
        return dict(rows.all())


async def test_groups_bookings_by_zone(seeded, db_url, slot_window, caplog) -> None:
    await _add_vehicles(db_url)
    window = slot_window()
    east_a = await _book(db_url, window, "e-1", 60, "08540")
    east_b = await _book(db_url, window, "e-2", 30, "08540")
    south = await _book(db_url, window, "s-1", 50, "08608")
    north_east = await _book(db_url, window, "ne-1", 40, "08901")

    with caplog.at_level(logging.WARNING, logger="booking_engine.ops"):
        async with get_sessionmaker(db_url)() as session:
            plan = await batching_service.assign_vehicles(session, window[0].date())

    by_booking = {item.booking_id: item for item in plan.assignments}
    assert by_booking[east_a.id].vehicle_name == "Truck 1"
    assert by_booking[east_b.id].vehicle_name == "Truck 1"
    assert by_booking[south.id].vehicle_name == "Truck 2"
    assert plan.unassigned == [north_east.id]
    assert plan.alerts[0].code == "assignment_exceeded_capacity"
    assert plan.alerts[0].context["zone"] == "R1-NE"
    assert any("Assignment exceeded capacity" in record.message for record in caplog.records)

    loads = {load.vehicle_name: load for load in plan.loads}
    assert loads["Truck 1"].zone == "R0-E"
    assert loads["Truck 1"].slots == {window[0]: 90}
    assert "Van 1" not in loads

    stored = await _vehicle_by_booking(db_url)
    assert stored[east_a.id] == seeded["vehicle_id"]
    assert stored[north_east.id] is None


async def test_vehicle_load_is_tracked_per_slot(seeded, db_url, slot_window) -> None:
    morning = slot_window(hour=10)
    midday = slot_window(hour=12)
    await _book(db_url, morning, "m-1", 90, "08540")
    await _book(db_url, midday, "m-2", 100, "08540")

    async with get_sessionmaker(db_url)() as session:
        plan = await batching_service.assign_vehicles(session, morning[0].date())

    assert plan.unassigned == []
    assert [load.vehicle_name for load in plan.loads] == ["Truck 1"]
    assert plan.loads[0].slots == {morning[0]: 90, midday[0]: 100}


async def test_rerun_keeps_existing_assignments(seeded, db_url, slot_window) -> None:
    await _add_vehicles(db_url)
    window = slot_window()
    first = await _book(db_url, window, "k-1", 20, "08608")

    async with get_sessionmaker(db_url)() as session:
        await batching_service.assign_vehicles(session, window[0].date())

    second = await _book(db_url, window, "k-2", 20, "08608")
    async with get_sessionmaker(db_url)() as session:
        plan = await batching_service.assign_vehicles(session, window[0].date())

    kept = {item.booking_id: item.kept for item in plan.assignments}
    assert kept == {first.id: True, second.id: False}
    assert {item.vehicle_name for item in plan.assignments} == {"Truck 1"}

    async with get_sessionmaker(db_url)() as session:
        plan = await batching_service.assign_vehicles(
            session, window[0].date(), reassign=True
        )
    assert all(item.kept is False for item in plan.assignments)


async def test_dry_run_does_not_persist(seeded, db_url, slot_window) -> None:
    window = slot_window()
    booking = await _book(db_url, window, "d-1", 10, "08540")

    async with get_sessionmaker(db_url)() as session:
        plan = await batching_service.assign_vehicles(
            session, window[0].date(), dry_run=True
        )

    assert plan.dry_run is True
    assert plan.assignments[0].booking_id == booking.id
    stored = await _vehicle_by_booking(db_url)
    assert stored[booking.id] is None


async def test_cancelled_bookings_are_ignored(seeded, db_url, slot_window) -> None:
    window = slot_window()
    booking = await _book(db_url, window, "x-1", 10, "08540")
    async with get_sessionmaker(db_url)() as session:
        loaded = await booking_service.get_booking(session, booking.id)
        await booking_service.cancel_booking(session, booking=loaded)
        plan = await batching_service.assign_vehicles(session, window[0].date())

    assert plan.assignments == []
    assert plan.loads == []


async def test_one_vehicle_serves_two_zones(seeded, db_url, slot_window) -> None:
    morning = slot_window(hour=10)
    midday = slot_window(hour=12)
    east = await _book(db_url, morning, "z-1", 10, "08540")
    south = await _book(db_url, midday, "z-2", 10, "08608")

    async with get_sessionmaker(db_url)() as session:
        plan = await batching_service.assign_vehicles(session, morning[0].date())

    assert plan.unassigned == []
    assert plan.alerts == []
    by_booking = {item.booking_id: item for item in plan.assignments}
    assert by_booking[east.id].vehicle_name == "Truck 1"
    assert by_booking[south.id].vehicle_name == "Truck 1"
    assert by_booking[south.id].zone == "R0-S"
    assert len(plan.loads) == 1
    assert plan.loads[0].zone == "R0-E"
    assert plan.loads[0].zones == ["R0-E", "R0-S"]
    assert plan.loads[0].slots == {morning[0]: 10, midday[0]: 10}


async def test_shared_slot_is_filled_before_alerting(seeded, db_url, slot_window) -> None:
    window = slot_window()
    await _book(db_url, window, "f-1", 50, "08540")
    await _book(db_url, window, "f-2", 40, "08608")
    crowded = await _book(db_url, window, "f-3", 10, "08901")

    async with get_sessionmaker(db_url)() as session:
        plan = await batching_service.assign_vehicles(session, window[0].date())

    assert plan.unassigned == []
    assert plan.loads[0].slots == {window[0]: 100}
    assert {item.booking_id: item.zone for item in plan.assignments}[crowded.id] == "R1-NE"


async def test_kept_booking_from_another_zone_is_logged(
    seeded, db_url, slot_window, caplog
) -> None:
    window = slot_window()
    await _book(db_url, window, "m-1", 10, "08540")
    async with get_sessionmaker(db_url)() as session:
        await batching_service.assign_vehicles(session, window[0].date())

    south = await _book(db_url, window, "m-2", 10, "08608")
    async with get_sessionmaker(db_url)() as session:
        await batching_service.assign_vehicles(session, window[0].date())

    with caplog.at_level(logging.INFO, logger="booking_engine.ops"):
        async with get_sessionmaker(db_url)() as session:
            plan = await batching_service.assign_vehicles(session, window[0].date())

    assert all(item.kept for item in plan.assignments)
    assert plan.loads[0].zones == ["R0-E", "R0-S"]
    assert any(
        "keeps booking" in record.message and str(south.id) in record.message
        for record in caplog.records
    )


async def test_overloaded_kept_vehicle_is_replanned(
    seeded, db_url, slot_window, caplog
) -> None:
    await _add_vehicles(db_url)
    window = slot_window()
    first = await _book(db_url, window, "o-1", 60, "08540")
    second = await _book(db_url, window, "o-2", 30, "08540")

    async with get_sessionmaker(db_url)() as session:
        truck = (
            await session.execute(select(Vehicle).where(Vehicle.name == "Truck 2"))
        ).scalar_one()
        await session.execute(
            update(Booking)
            .where(Booking.id.in_([first.id, second.id]))
            .values(vehicle_id=truck.id)
        )
        await session.commit()

    with caplog.at_level(logging.WARNING, logger="booking_engine.ops"):
        async with get_sessionmaker(db_url)() as session:
            plan = await batching_service.assign_vehicles(session, window[0].date())

    by_booking = {item.booking_id: item for item in plan.assignments}
    assert by_booking[first.id].kept is True
    assert by_booking[first.id].vehicle_name == "Truck 2"
    assert by_booking[second.id].kept is False
    assert by_booking[second.id].vehicle_name == "Truck 1"
    assert plan.unassigned == []
    assert any("overloads Truck 2" in record.message for record in caplog.records)


async def test_day_bounds_are_utc() -> None:
    settings = get_settings().model_copy(update={"schedule_timezone": "America/New_York"})
    start, end = batching_service._day_bounds(date(2030, 6, 12), settings)
    assert start == datetime(2030, 6, 12, 4, tzinfo=UTC)
    assert end == datetime(2030, 6, 13, 4, tzinfo=UTC)
    assert start.tzinfo is UTC


async def test_service_date_follows_schedule_timezone(seeded, db_url) -> None:
    settings = get_settings().model_copy(update={"schedule_timezone": "America/New_York"})
    late_local = datetime(2030, 6, 13, 2, tzinfo=UTC)
    previous_day = datetime(2030, 6, 12, 2, tzinfo=UTC)

    async with get_sessionmaker(db_url)() as session:
        rows = []
        for key, start in (("tz-1", late_local), ("tz-2", previous_day)):
            booking = Booking(
                customer_ref=f"customer-{key}",
                status=BookingStatus.CONFIRMED,
                window_start=start,
                window_end=start + timedelta(hours=2),
                postal_code="08540",
                latitude=40.3573,
                longitude=-74.6672,
                distance_miles=1.0,
                zone_tag="R0-E",
                amount=10,
                idempotency_key=key,
                request_fingerprint=key,
            )
            session.add(booking)
            rows.append(booking)
        await session.commit()
        included, excluded = (row.id for row in rows)

        plan = await batching_service.assign_vehicles(
            session, date(2030, 6, 12), dry_run=True, settings=settings
        )

    planned = {item.booking_id for item in plan.assignments}
    assert included in planned
    assert excluded not in planned
