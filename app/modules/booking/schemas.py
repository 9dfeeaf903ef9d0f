"""Booking schemas."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import BookingPaymentStatusEnum, BookingStatusEnum


class BookingCreate(BaseModel):
    """Create booking request.

    Students book for themselves and pass ``tutor_id``. Tutors booking at the
    point of sale pass ``student_id``; the tutor is the caller.
    """

    tutor_id: UUID | None = None
    student_id: UUID | None = None
    lesson_date: date
    lesson_time: time
    duration_minutes: int | None = Field(default=None, ge=1, le=480)
    notes: str | None = Field(default=None, max_length=1024)


class BookingStatusUpdate(BaseModel):
    """Booking status transition request."""

    status: BookingStatusEnum
    reason: str | None = Field(default=None, max_length=512)


class BookingPartyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    full_name: str
    email: str


class BookingTutorRead(BookingPartyRead):
    hourly_rate: Decimal | None


class BookingRead(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    student_id: UUID
    tutor_id: UUID
    lesson_date: date
    lesson_time: time
    duration_minutes: int
    notes: str | None
    status: BookingStatusEnum
    payment_status: BookingPaymentStatusEnum
    confirmed_at: datetime | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    created_at: datetime
    updated_at: datetime


class BookingDetailRead(BookingRead):
    """Booking with both parties."""

    tutor: BookingTutorRead
    student: BookingPartyRead
