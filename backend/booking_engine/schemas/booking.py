"""Pydantic schemas for bookings."""
from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from booking_engine.models.booking import BookingStatus, ServiceKind


class BookingCreate(BaseModel):
    """Payload for requesting a slot."""

    idempotency_key: str = Field(min_length=1, max_length=255)
    customer_ref: str | None = Field(default=None, max_length=120)
    service_kind: ServiceKind = ServiceKind.PICKUP
    window_start: datetime
    window_end: datetime
    amount: int = Field(gt=0)
    postal_code: str | None = Field(default=None, max_length=16)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    quoted_price: Decimal | None = Field(default=None, ge=Decimal("0"))
    notes: str | None = Field(default=None, max_length=1024)


class BookingRead(BaseModel):
    """Serialized booking representation."""

    id: uuid.UUID
    status: BookingStatus
    customer_ref: str
    service_kind: ServiceKind
    window_start: datetime
    window_end: datetime
    postal_code: str | None = None
    zone_tag: str
    distance_miles: float
    amount: int
    quoted_price: Decimal | None = None
    vehicle_id: uuid.UUID | None = None
    request_fingerprint: str
    cancelled_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    created: bool = False

    model_config = ConfigDict(from_attributes=True)

    @field_validator(
        "window_start", "window_end", "cancelled_at", "completed_at", "created_at"
    )
    @classmethod
    def _ensure_timezone(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
