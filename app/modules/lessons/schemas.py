"""Lessons schemas."""

from __future__ import annotations

from datetime import date, datetime, time
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import LessonStatusEnum


class LessonCreate(BaseModel):
    """Create lesson request (tutor only)."""

    student_id: UUID
    booking_id: UUID | None = None
    lesson_date: date
    lesson_time: time
    duration_minutes: int = Field(default=60, ge=1, le=480)
    title: str = Field(min_length=1, max_length=255)
    covered_in_previous_lesson: str | None = None
    covered_in_current_lesson: str | None = None
    next_lesson_description: str | None = None


class LessonUpdate(BaseModel):
    """Update lesson request."""

    lesson_date: date | None = None
    lesson_time: time | None = None
    duration_minutes: int | None = Field(default=None, ge=1, le=480)
    title: str | None = Field(default=None, min_length=1, max_length=255)
    covered_in_previous_lesson: str | None = None
    covered_in_current_lesson: str | None = None
    next_lesson_description: str | None = None
    status: LessonStatusEnum | None = None


class LessonPartyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    full_name: str
    email: str


class LessonRead(BaseModel):
    """Lesson response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID | None
    student_id: UUID
    tutor_id: UUID
    lesson_date: date
    lesson_time: time
    duration_minutes: int
    title: str
    covered_in_previous_lesson: str | None
    covered_in_current_lesson: str | None
    next_lesson_description: str | None
    status: LessonStatusEnum
    created_at: datetime
    updated_at: datetime


class LessonDetailRead(LessonRead):
    student: LessonPartyRead
    tutor: LessonPartyRead


class LessonActivityCreate(BaseModel):
    """Attach an uploaded file to a lesson."""

    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    file_url: str = Field(min_length=1, max_length=1024)
    file_name: str = Field(min_length=1, max_length=255)
    file_size: int | None = Field(default=None, ge=0)


class LessonActivityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    lesson_id: UUID
    title: str
    description: str | None
    file_url: str
    file_name: str
    file_size: int | None
    uploaded_by: UUID | None
    created_at: datetime
