"""Schemas for business hours, blackouts and availability overrides."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time

from pydantic import BaseModel, ConfigDict, Field, model_validator

from booking_engine.models.calendar import BlackoutRecurrence


def _check_span(start: time | None, end: time | None) -> None:
    if (start is None) != (end is None):
        raise ValueError("start_time and end_time must be provided together")
    if start is not None and end is not None and end <= start:
        raise ValueError("end_time must be after start_time")


class BusinessHourWrite(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    open_time: time | None = None
    close_time: time | None = None
    is_closed: bool = False

    @model_validator(mode="after")
    def _check_hours(self) -> "BusinessHourWrite":
        if self.is_closed:
            return self
        if self.open_time is None or self.close_time is None:
            raise ValueError("open_time and close_time are required for open days")
        _check_span(self.open_time, self.close_time)
        return self


class BusinessHourRead(BusinessHourWrite):
    id: uuid.UUID

    model_config = ConfigDict(from_attributes=True)


class BlackoutCreate(BaseModel):
    blackout_date: date
    recurrence: BlackoutRecurrence = BlackoutRecurrence.NONE
    start_time: time | None = None
    end_time: time | None = None
    zone_tag: str | None = Field(default=None, max_length=16)
    reason: str | None = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def _check_times(self) -> "BlackoutCreate":
        _check_span(self.start_time, self.end_time)
        return self


class BlackoutRead(BlackoutCreate):
    id: uuid.UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OverrideCreate(BaseModel):
    override_date: date
    start_time: time | None = None
    end_time: time | None = None
    capacity_delta: int = 0
    is_closed: bool = False
    reopens: bool = False
    reason: str | None = Field(default=None, max_length=255)
    expires_at: datetime | None = None

    @model_validator(mode="after")
    def _check_override(self) -> "OverrideCreate":
        _check_span(self.start_time, self.end_time)
        if self.is_closed and self.reopens:
            raise ValueError("An override cannot both close and reopen a window")
        return self


class OverrideRead(OverrideCreate):
    id: uuid.UUID
    created_by: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
