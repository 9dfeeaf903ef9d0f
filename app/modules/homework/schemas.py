"""Homework schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import HomeworkStatusEnum


class HomeworkSubmitRequest(BaseModel):
    """Student submits an uploaded file for a lesson."""

    lesson_id: UUID
    submission_file_url: str = Field(min_length=1, max_length=1024)
    submission_file_name: str = Field(min_length=1, max_length=255)
    submission_file_size: int | None = Field(default=None, ge=0)


class HomeworkMarkRequest(BaseModel):
    tutor_feedback: str = Field(min_length=1)


class HomeworkRead(BaseModel):
    """Homework submission response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    lesson_id: UUID
    student_id: UUID
    submission_file_url: str
    submission_file_name: str
    submission_file_size: int | None
    submitted_at: datetime
    status: HomeworkStatusEnum
    tutor_feedback: str | None
    marked_at: datetime | None
    marked_by: UUID | None
