"""Availability schemas."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Annotated, Any
from uuid import UUID

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_serializer, model_validator

from app.modules.availability.slots import window_minutes


def _end_of_day(value: Any) -> Any:
    # A window closing at midnight is stored as 00:00.
    if isinstance(value, str) and value.strip() in ("24:00", "24:00:00"):
        return time(0)
    return value


WindowEnd = Annotated[time, BeforeValidator(_end_of_day)]


class AvailabilityRuleCreate(BaseModel):
    """Create weekly availability window.

    ``end_time`` accepts ``24:00`` for a window running to midnight.
    """

    day_of_week: int = Field(ge=0, le=6, description="0=Sunday .. 6=Saturday")
    start_time: time
    end_time: WindowEnd
    is_available: bool = True

    @model_validator(mode="after")
    def validate_order(self) -> "AvailabilityRuleCreate":
        start, end = window_minutes(self.start_time, self.end_time)
        if end <= start:
            raise ValueError("end_time must be later than start_time")
        return self


class AvailabilityRuleUpdate(BaseModel):
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    start_time: time | None = None
    end_time: WindowEnd | None = None
    is_available: bool | None = None


class AvailabilityRuleRead(BaseModel):
    """Availability rule response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tutor_id: UUID
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool
    created_at: datetime
    updated_at: datetime

    @field_serializer("end_time")
    def serialize_end_time(self, value: time) -> str:
        return "24:00:00" if value == time(0) else value.isoformat()


class BlockedIntervalCreate(BaseModel):
    """Create blocked interval request."""

    start_datetime: datetime
    end_datetime: datetime
    reason: str | None = Field(default=None, max_length=512)

    @model_validator(mode="after")
    def validate_order(self) -> "BlockedIntervalCreate":
        if self.end_datetime <= self.start_datetime:
            raise ValueError("end_datetime must be later than start_datetime")
        return self


class BlockedIntervalRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tutor_id: UUID
    start_datetime: datetime
    end_datetime: datetime
    reason: str | None
    created_at: datetime


class AvailableSlotsRead(BaseModel):
    """Free start times for one tutor and date."""

    tutor_id: UUID
    date: date
    duration_minutes: int
    step_minutes: int
    start_times: list[str]
