"""Schemas for vehicle assignment runs."""
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DispatchRequest(BaseModel):
    service_date: date
    reassign: bool = False
    dry_run: bool = False


class AssignmentRead(BaseModel):
    booking_id: uuid.UUID
    vehicle_id: uuid.UUID
    vehicle_name: str
    zone: str
    window_start: datetime
    amount: int
    kept: bool

    model_config = ConfigDict(from_attributes=True)


class SlotLoadRead(BaseModel):
    window_start: datetime
    units: int


class VehicleLoadRead(BaseModel):
    vehicle_id: uuid.UUID
    vehicle_name: str
    zone: str
    zones: list[str] = Field(default_factory=list)
    capacity_units: int
    slots: list[SlotLoadRead] = Field(default_factory=list)


class AlertRead(BaseModel):
    code: str
    message: str
    context: dict[str, Any] = Field(default_factory=dict)


class DispatchPlanRead(BaseModel):
    service_date: date
    dry_run: bool
    assignments: list[AssignmentRead]
    loads: list[VehicleLoadRead]
    unassigned: list[uuid.UUID]
    alerts: list[AlertRead]
