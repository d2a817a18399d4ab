"""Schemas for availability queries."""
from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel


class AvailabilitySlotRead(BaseModel):
    slot_date: date
    window_start: datetime
    window_end: datetime
    capacity: int
    remaining: int
