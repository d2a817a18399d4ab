"""Schema exports."""

from booking_engine.schemas.availability import AvailabilitySlotRead
from booking_engine.schemas.booking import BookingCreate, BookingRead
from booking_engine.schemas.calendar import (
    BlackoutCreate,
    BlackoutRead,
    BusinessHourRead,
    BusinessHourWrite,
    OverrideCreate,
    OverrideRead,
)
from booking_engine.schemas.dispatch import (
    AlertRead,
    AssignmentRead,
    DispatchPlanRead,
    DispatchRequest,
    SlotLoadRead,
    VehicleLoadRead,
)

__all__ = [
    "AlertRead",
    "AssignmentRead",
    "AvailabilitySlotRead",
    "BlackoutCreate",
    "BlackoutRead",
    "BookingCreate",
    "BookingRead",
    "BusinessHourRead",
    "BusinessHourWrite",
    "DispatchPlanRead",
    "DispatchRequest",
    "OverrideCreate",
    "OverrideRead",
    "SlotLoadRead",
    "VehicleLoadRead",
]
