"""ORM models package export."""

from booking_engine.models.booking import (
    Booking,
    BookingStatus,
    IdempotencyRecord,
    ServiceKind,
)
from booking_engine.models.calendar import (
    AvailabilityOverride,
    BlackoutDate,
    BlackoutRecurrence,
    BusinessHour,
)
from booking_engine.models.capacity import CapacityReservation, SlotCapacity
from booking_engine.models.postal_geo import PostalGeo
from booking_engine.models.vehicle import Vehicle

__all__ = [
    "AvailabilityOverride",
    "BlackoutDate",
    "BlackoutRecurrence",
    "Booking",
    "BookingStatus",
    "BusinessHour",
    "CapacityReservation",
    "IdempotencyRecord",
    "PostalGeo",
    "ServiceKind",
    "SlotCapacity",
    "Vehicle",
]
