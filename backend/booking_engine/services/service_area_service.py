"""Service-area resolution: distance from the depot, admission and zone tags."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.config import Settings, get_settings
from booking_engine.core.errors import UnknownLocation, ValidationError
from booking_engine.models.postal_geo import PostalGeo

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3958.7613
_OCTANTS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")
_CENTRE_MILES = 0.01


@dataclass(frozen=True, slots=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass(frozen=True, slots=True)
class LocationQuery:
    """A caller-supplied location: postal code or a coordinate pair."""

    postal_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    def describe(self) -> str:
        if self.postal_code:
            return f"postal:{self.postal_code}"
        return f"{self.latitude},{self.longitude}"


@dataclass(frozen=True, slots=True)
class ServiceAreaDecision:
    admit: bool
    distance_miles: float
    zone: str
    point: GeoPoint
    radius_miles: float

    @property
    def latitude(self) -> float:
        return self.point.latitude

    @property
    def longitude(self) -> float:
        return self.point.longitude


def haversine_miles(origin: GeoPoint, target: GeoPoint) -> float:
    """Great-circle distance between two points in miles."""
    lat1, lat2 = math.radians(origin.latitude), math.radians(target.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(target.longitude - origin.longitude)
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_MILES * math.asin(min(1.0, math.sqrt(a)))


def initial_bearing(origin: GeoPoint, target: GeoPoint) -> float:
    """Compass bearing in degrees [0, 360) from origin towards target."""
    lat1, lat2 = math.radians(origin.latitude), math.radians(target.latitude)
    dlon = math.radians(target.longitude - origin.longitude)
    x = math.sin(dlon) * math.cos(lat2)
    y = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    return (math.degrees(math.atan2(x, y)) + 360.0) % 360.0


def zone_tag(distance_miles: float, bearing: float, ring_miles: float) -> str:
    """Bucket a distance/bearing pair into a coarse ``R{ring}-{octant}`` cell."""
    ring = int(distance_miles // ring_miles) if ring_miles > 0 else 0
    if distance_miles < _CENTRE_MILES:
        return f"R{ring}-C"
    octant = _OCTANTS[int(((bearing + 22.5) % 360.0) // 45.0)]
    return f"R{ring}-{octant}"


def decide(
    point: GeoPoint,
    *,
    depot: GeoPoint,
    radius_miles: float,
    ring_miles: float,
) -> ServiceAreaDecision:
    """Pure admission decision for a resolved coordinate."""
    distance = haversine_miles(depot, point)
    bearing = initial_bearing(depot, point)
    return ServiceAreaDecision(
        admit=distance <= radius_miles,
        distance_miles=distance,
        zone=zone_tag(distance, bearing, ring_miles),
        point=point,
        radius_miles=radius_miles,
    )


def depot_from_settings(settings: Settings) -> GeoPoint:
    return GeoPoint(settings.depot_latitude, settings.depot_longitude)


def _validate_coordinates(latitude: float, longitude: float) -> None:
    if not -90.0 <= latitude <= 90.0 or not -180.0 <= longitude <= 180.0:
        raise ValidationError(
            "Coordinates are out of range",
            latitude=latitude,
            longitude=longitude,
        )


async def lookup_point(session: AsyncSession, location: LocationQuery) -> GeoPoint:
    """Turn a location query into coordinates, consulting the postal table."""
    if location.latitude is not None and location.longitude is not None:
        _validate_coordinates(location.latitude, location.longitude)
        return GeoPoint(location.latitude, location.longitude)
    if not location.postal_code:
        raise ValidationError("A postal code or a coordinate pair is required")

    postal_code = location.postal_code.strip().upper()
    result = await session.execute(
        select(PostalGeo).where(PostalGeo.postal_code == postal_code)
    )
    geo = result.scalar_one_or_none()
    if geo is None:
        logger.info("Postal code %s not found in lookup table", postal_code)
        raise UnknownLocation(
            f"Postal code {postal_code} could not be resolved",
            location=location.describe(),
        )
    return GeoPoint(geo.latitude, geo.longitude)


async def resolve_location(
    session: AsyncSession,
    location: LocationQuery,
    *,
    settings: Settings | None = None,
) -> ServiceAreaDecision:
    """Resolve a location and decide whether it lies inside the service radius."""
    settings = settings or get_settings()
    point = await lookup_point(session, location)
    return decide(
        point,
        depot=depot_from_settings(settings),
        radius_miles=settings.service_radius_miles,
        ring_miles=settings.zone_ring_miles,
    )
