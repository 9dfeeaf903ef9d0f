"""Video meeting schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import MeetingStatusEnum


class MeetingCreate(BaseModel):
    booking_id: UUID


class MeetingAccess(BaseModel):
    """Passcode proving the caller was given the room link."""

    passcode: str = Field(min_length=6, max_length=6, pattern=r"^\d{6}$")


class MeetingJoin(MeetingAccess):
    display_name: str | None = Field(default=None, min_length=1, max_length=255)


class MeetingMute(MeetingAccess):
    is_muted: bool
    camera_off: bool | None = None


class ParticipantRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    display_name: str
    session_id: str
    is_audio_on: bool
    is_video_on: bool
    joined_at: datetime


class MeetingRead(BaseModel):
    """Meeting credentials and state."""

    model_config = ConfigDict(from_attributes=True)

    meeting_id: str
    passcode: str
    booking_id: UUID
    host_id: UUID
    status: MeetingStatusEnum
    started_at: datetime | None
    ended_at: datetime | None
    created_at: datetime


class MeetingCreatedRead(MeetingRead):
    meeting_url: str


class MeetingDetailRead(MeetingRead):
    participants: list[ParticipantRead]


class JoinRead(BaseModel):
    session_id: str
    participants: list[ParticipantRead]
    ice_servers: list[dict[str, str]]


class ParticipantsRead(BaseModel):
    participants: list[ParticipantRead]
    count: int


class LeaveRead(BaseModel):
    remaining_participants: int


class MuteRead(BaseModel):
    message: str
    participant: ParticipantRead
