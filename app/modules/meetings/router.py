"""Video meetings API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from app.core.config import get_settings
from app.modules.meetings.credentials import meeting_url
from app.modules.meetings.schemas import (
    JoinRead,
    LeaveRead,
    MeetingAccess,
    MeetingCreate,
    MeetingCreatedRead,
    MeetingDetailRead,
    MeetingJoin,
    MeetingMute,
    MeetingRead,
    MuteRead,
    ParticipantRead,
    ParticipantsRead,
)
from app.modules.meetings.service import MeetingsService, get_meetings_service, ice_servers
from app.modules.profiles.service import get_current_user

router = APIRouter(prefix="/meetings", tags=["meetings"])
settings = get_settings()


@router.post("", response_model=MeetingCreatedRead, status_code=status.HTTP_201_CREATED)
async def create_meeting(
    payload: MeetingCreate,
    service: MeetingsService = Depends(get_meetings_service),
    current_user=Depends(get_current_user),
) -> MeetingCreatedRead:
    meeting = await service.create_meeting(payload.booking_id, current_user)
    return MeetingCreatedRead(
        **MeetingRead.model_validate(meeting).model_dump(),
        meeting_url=meeting_url(settings.meeting_base_url, meeting.meeting_id, meeting.passcode),
    )


@router.get("/{meeting_id}", response_model=MeetingDetailRead)
async def get_meeting(
    meeting_id: str,
    passcode: str = Query(...),
    service: MeetingsService = Depends(get_meetings_service),
    current_user=Depends(get_current_user),
) -> MeetingDetailRead:
    meeting, participants = await service.get_meeting(meeting_id, passcode, current_user)
    return MeetingDetailRead(
        **MeetingRead.model_validate(meeting).model_dump(),
        participants=[ParticipantRead.model_validate(item) for item in participants],
    )


@router.post("/{meeting_id}/join", response_model=JoinRead)
async def join_meeting(
    meeting_id: str,
    payload: MeetingJoin,
    service: MeetingsService = Depends(get_meetings_service),
    current_user=Depends(get_current_user),
) -> JoinRead:
    """Join the room; returns the other participants and ICE servers for peer setup."""
    participant, others = await service.join(
        meeting_id,
        payload.passcode,
        current_user,
        display_name=payload.display_name,
    )
    return JoinRead(
        session_id=participant.session_id,
        participants=[ParticipantRead.model_validate(item) for item in others],
        ice_servers=ice_servers(),
    )


@router.post("/{meeting_id}/leave", response_model=LeaveRead)
async def leave_meeting(
    meeting_id: str,
    payload: MeetingAccess,
    service: MeetingsService = Depends(get_meetings_service),
    current_user=Depends(get_current_user),
) -> LeaveRead:
    remaining = await service.leave(meeting_id, payload.passcode, current_user)
    return LeaveRead(remaining_participants=remaining)


@router.post("/{meeting_id}/mute", response_model=MuteRead)
async def set_media_state(
    meeting_id: str,
    payload: MeetingMute,
    service: MeetingsService = Depends(get_meetings_service),
    current_user=Depends(get_current_user),
) -> MuteRead:
    participant = await service.set_media_state(
        meeting_id,
        payload.passcode,
        current_user,
        is_muted=payload.is_muted,
        camera_off=payload.camera_off,
    )
    return MuteRead(
        message="Muted" if payload.is_muted else "Unmuted",
        participant=ParticipantRead.model_validate(participant),
    )


@router.get("/{meeting_id}/participants", response_model=ParticipantsRead)
async def list_participants(
    meeting_id: str,
    passcode: str = Query(...),
    service: MeetingsService = Depends(get_meetings_service),
    current_user=Depends(get_current_user),
) -> ParticipantsRead:
    participants = await service.list_participants(meeting_id, passcode, current_user)
    return ParticipantsRead(
        participants=[ParticipantRead.model_validate(item) for item in participants],
        count=len(participants),
    )


@router.post("/{meeting_id}/end", response_model=MeetingRead)
async def end_meeting(
    meeting_id: str,
    payload: MeetingAccess,
    service: MeetingsService = Depends(get_meetings_service),
    current_user=Depends(get_current_user),
) -> MeetingRead:
    meeting = await service.end_meeting(meeting_id, payload.passcode, current_user)
    return MeetingRead.model_validate(meeting)
