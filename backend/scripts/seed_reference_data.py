"""Seed vehicles, weekly hours, holiday blackouts and postal coordinates."""
from __future__ import annotations

import asyncio
from datetime import date, time

from sqlalchemy import select

from booking_engine.db.session import get_sessionmaker
from booking_engine.models import (
    BlackoutDate,
    BlackoutRecurrence,
    BusinessHour,
    PostalGeo,
    Vehicle,
)

# (postal_code, city, region, latitude, longitude)
POSTAL_CODES = [
    ("07001", "Avenel", "NJ", 40.5787, -74.2854),
    ("07002", "Bayonne", "NJ", 40.6687, -74.1143),
    ("07003", "Bloomfield", "NJ", 40.8068, -74.1854),
    ("07016", "Cranford", "NJ", 40.6584, -74.2993),
    ("07017", "East Orange", "NJ", 40.7673, -74.2049),
    ("07023", "Fanwood", "NJ", 40.6407, -74.3826),
    ("07030", "Hoboken", "NJ", 40.7439, -74.0324),
    ("07036", "Linden", "NJ", 40.6218, -74.2446),
    ("07039", "Livingston", "NJ", 40.7957, -74.3149),
    ("07041", "Millburn", "NJ", 40.7290, -74.3121),
    ("07501", "Paterson", "NJ", 40.9168, -74.1718),
    ("08540", "Princeton", "NJ", 40.3573, -74.6672),
    ("08608", "Trenton", "NJ", 40.2206, -74.7597),
    ("08701", "Lakewood", "NJ", 40.0979, -74.2177),
    ("08901", "New Brunswick", "NJ", 40.4862, -74.4518),
]

# (name, capacity_units, home_postal_code, latitude, longitude)
VEHICLES = [
    ("Truck 1", 2000, "07030", 40.7439, -74.0324),
    ("Truck 2", 1500, "08901", 40.4862, -74.4518),
    ("Truck 3", 2500, "08701", 40.0979, -74.2177),
    ("Van 1", 800, "07017", 40.7673, -74.2049),
]

# day_of_week -> (open, close); None means closed
WEEKLY_HOURS = {
    0: (time(8, 0), time(18, 0)),
    1: (time(8, 0), time(18, 0)),
    2: (time(8, 0), time(18, 0)),
    3: (time(8, 0), time(18, 0)),
    4: (time(8, 0), time(18, 0)),
    5: (time(9, 0), time(13, 0)),
    6: None,
}

YEARLY_HOLIDAYS = [
    (date(2025, 1, 1), "New Year's Day"),
    (date(2025, 7, 4), "Independence Day"),
    (date(2025, 11, 11), "Veterans Day"),
    (date(2025, 12, 25), "Christmas Day"),
]


async def seed_reference_data() -> None:
    sessionmaker = get_sessionmaker()
    async with sessionmaker() as session:
        created = 0

        known_codes = set((await session.execute(select(PostalGeo.postal_code))).scalars())
        for postal_code, city, region, latitude, longitude in POSTAL_CODES:
            if postal_code in known_codes:
                continue
            session.add(
                PostalGeo(
                    postal_code=postal_code,
                    city=city,
                    region=region,
                    latitude=latitude,
                    longitude=longitude,
                )
            )
            created += 1

        known_vehicles = set((await session.execute(select(Vehicle.name))).scalars())
        for name, capacity, home_postal_code, latitude, longitude in VEHICLES:
            if name in known_vehicles:
                continue
            session.add(
                Vehicle(
                    name=name,
                    capacity_units=capacity,
                    home_postal_code=home_postal_code,
                    depot_latitude=latitude,
                    depot_longitude=longitude,
                )
            )
            created += 1

        known_days = set((await session.execute(select(BusinessHour.day_of_week))).scalars())
        for day_of_week, hours in WEEKLY_HOURS.items():
            if day_of_week in known_days:
                continue
            session.add(
                BusinessHour(
                    day_of_week=day_of_week,
                    open_time=hours[0] if hours else None,
                    close_time=hours[1] if hours else None,
                    is_closed=hours is None,
                )
            )
            created += 1

        known_holidays = set(
            (
                await session.execute(
                    select(BlackoutDate.reason).where(
                        BlackoutDate.recurrence == BlackoutRecurrence.YEARLY
                    )
                )
            ).scalars()
        )
        for holiday, reason in YEARLY_HOLIDAYS:
            if reason in known_holidays:
                continue
            session.add(
                BlackoutDate(
                    blackout_date=holiday,
                    recurrence=BlackoutRecurrence.YEARLY,
                    reason=reason,
                )
            )
            created += 1

        if created:
            await session.commit()
        print(f"Seeded {created} reference row(s).")


def main() -> None:
    asyncio.run(seed_reference_data())


if __name__ == "__main__":
    main()
