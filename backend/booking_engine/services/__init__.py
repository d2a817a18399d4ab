"""Service layer exports."""
from booking_engine.services import (
    availability_service,
    batching_service,
    booking_service,
    calendar_service,
    capacity_ledger,
    notification_service,
    service_area_service,
)

__all__ = [
    "availability_service",
    "batching_service",
    "booking_service",
    "calendar_service",
    "capacity_ledger",
    "notification_service",
    "service_area_service",
]
