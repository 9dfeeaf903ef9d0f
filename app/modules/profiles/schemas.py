"""Profiles schemas."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.core.enums import RoleEnum


class ProfileCreate(BaseModel):
    """Register profile for the authenticated account."""

    role: RoleEnum
    full_name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    phone_number: str | None = Field(default=None, max_length=64)
    address: str | None = None
    date_of_birth: date | None = None
    subjects: list[str] = Field(default_factory=list)
    timezone: str | None = Field(default=None, max_length=64)


class ProfileUpdate(BaseModel):
    """Self-service profile changes; allowed fields depend on role."""

    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    email: EmailStr | None = None
    phone_number: str | None = Field(default=None, max_length=64)
    address: str | None = None
    date_of_birth: date | None = None
    profile_picture_url: str | None = Field(default=None, max_length=1024)
    subjects: list[str] | None = None
    timezone: str | None = Field(default=None, max_length=64)


class StudentDetailsUpdate(BaseModel):
    """Tutor-side edit of a student's contact details."""

    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    email: EmailStr | None = None
    phone_number: str | None = Field(default=None, max_length=64)
    address: str | None = None
    date_of_birth: date | None = None


class HourlyRateUpdate(BaseModel):
    hourly_rate: Decimal = Field(gt=0, max_digits=10, decimal_places=2)


class ProfileRead(BaseModel):
    """Profile response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    role: RoleEnum
    full_name: str
    email: str
    phone_number: str | None
    address: str | None
    date_of_birth: date | None
    profile_picture_url: str | None
    subjects: list[str]
    hourly_rate: Decimal | None
    timezone: str | None
    created_at: datetime
    updated_at: datetime


class TutorPublicRead(BaseModel):
    """Tutor card shown to students."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    full_name: str
    profile_picture_url: str | None
    subjects: list[str]
    hourly_rate: Decimal | None
