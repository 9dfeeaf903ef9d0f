"""Video meetings business logic layer."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import BookingStatusEnum, MeetingStatusEnum, RoleEnum
from app.modules.audit.repository import AuditRepository
from app.modules.booking.models import Booking
from app.modules.booking.repository import BookingRepository
from app.modules.meetings.credentials import (
    generate_meeting_id,
    generate_passcode,
    is_valid_meeting_id,
    passcode_matches,
    session_id,
)
from app.modules.meetings.models import VideoMeeting, VideoParticipant
from app.modules.meetings.repository import MeetingsRepository
from app.modules.profiles.models import Profile
from app.shared.exceptions import (
    BusinessRuleException,
    InvalidInputException,
    NotFoundException,
    UnauthorizedException,
)
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)
settings = get_settings()


def ice_servers() -> list[dict[str, str]]:
    return [{"urls": url} for url in settings.meeting_stun_servers]


class MeetingsService:
    """Meeting credentials and the participant registry; media never touches the server."""

    def __init__(
        self,
        repository: MeetingsRepository,
        booking_repository: BookingRepository,
        audit_repository: AuditRepository,
    ) -> None:
        self.repository = repository
        self.booking_repository = booking_repository
        self.audit_repository = audit_repository

    @staticmethod
    def _is_party(booking: Booking, actor: Profile) -> bool:
        return actor.id in (booking.student_id, booking.tutor_id)

    async def create_meeting(self, booking_id: UUID, actor: Profile) -> VideoMeeting:
        """Issue credentials for a booking, reusing an open meeting if there is one."""
        booking = await self.booking_repository.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        if not self._is_party(booking, actor):
            raise UnauthorizedException("You cannot start a meeting for this booking")
        if booking.status in (BookingStatusEnum.CANCELLED, BookingStatusEnum.COMPLETED):
            raise BusinessRuleException(f"Cannot start a meeting for a {booking.status.value} booking")

        existing = await self.repository.get_open_meeting_for_booking(booking.id)
        if existing is not None:
            return existing

        meeting = await self.repository.create_meeting(
            meeting_id=generate_meeting_id(),
            passcode=generate_passcode(),
            booking_id=booking.id,
            host_id=actor.id,
        )
        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="meeting.created",
            entity_type="video_meeting",
            entity_id=meeting.meeting_id,
            payload={"booking_id": str(booking.id)},
        )
        logger.info("Meeting %s created for booking %s", meeting.meeting_id, booking.id)
        return meeting

    async def _authorize(
        self,
        meeting_id: str,
        passcode: str | None,
        actor: Profile,
        *,
        for_update: bool = False,
    ) -> VideoMeeting:
        if not is_valid_meeting_id(meeting_id):
            raise InvalidInputException("Malformed meeting id")
        meeting = await self.repository.get_by_meeting_id(meeting_id, for_update=for_update)
        if meeting is None:
            raise NotFoundException("Meeting not found")
        if not passcode_matches(meeting.passcode, passcode):
            raise UnauthorizedException("Invalid meeting passcode")
        booking = await self.booking_repository.get_booking_by_id(meeting.booking_id)
        if booking is None or not self._is_party(booking, actor):
            raise UnauthorizedException("You are not a participant of this meeting")
        return meeting

    async def get_meeting(
        self,
        meeting_id: str,
        passcode: str | None,
        actor: Profile,
    ) -> tuple[VideoMeeting, list[VideoParticipant]]:
        meeting = await self._authorize(meeting_id, passcode, actor)
        return meeting, await self.repository.list_open_participants(meeting)

    async def join(
        self,
        meeting_id: str,
        passcode: str,
        actor: Profile,
        display_name: str | None = None,
    ) -> tuple[VideoParticipant, list[VideoParticipant]]:
        """Register a participant session; returns it with everyone else in the room."""
        meeting = await self._authorize(meeting_id, passcode, actor, for_update=True)
        if meeting.status == MeetingStatusEnum.ENDED:
            raise BusinessRuleException("Meeting has ended")

        now = utc_now()
        # A reconnect replaces the user's previous session.
        await self.repository.close_participants(meeting, now, user_id=actor.id)
        participant = await self.repository.add_participant(
            meeting,
            user_id=actor.id,
            display_name=display_name or actor.full_name,
            session_id=session_id(meeting.meeting_id, actor.id, now),
            is_audio_on=True,
            is_video_on=True,
            joined_at=now,
        )
        if meeting.status == MeetingStatusEnum.PENDING:
            meeting.status = MeetingStatusEnum.ACTIVE
            if meeting.started_at is None:
                meeting.started_at = now
            await self.repository.save(meeting)

        others = [
            item
            for item in await self.repository.list_open_participants(meeting)
            if item.user_id != actor.id
        ]
        return participant, others

    async def leave(self, meeting_id: str, passcode: str, actor: Profile) -> int:
        """Close caller's session; an emptied room goes back to pending."""
        meeting = await self._authorize(meeting_id, passcode, actor, for_update=True)
        closed = await self.repository.close_participants(meeting, utc_now(), user_id=actor.id)
        if closed == 0:
            raise NotFoundException("You are not in this meeting")

        remaining = await self.repository.list_open_participants(meeting)
        if not remaining and meeting.status == MeetingStatusEnum.ACTIVE:
            meeting.status = MeetingStatusEnum.PENDING
            await self.repository.save(meeting)
        return len(remaining)

    async def set_media_state(
        self,
        meeting_id: str,
        passcode: str,
        actor: Profile,
        *,
        is_muted: bool,
        camera_off: bool | None = None,
    ) -> VideoParticipant:
        meeting = await self._authorize(meeting_id, passcode, actor)
        participant = await self.repository.get_open_participant(meeting, actor.id)
        if participant is None:
            raise NotFoundException("You are not in this meeting")
        participant.is_audio_on = not is_muted
        if camera_off is not None:
            participant.is_video_on = not camera_off
        await self.repository.save(participant)
        return participant

    async def list_participants(
        self,
        meeting_id: str,
        passcode: str | None,
        actor: Profile,
    ) -> list[VideoParticipant]:
        meeting = await self._authorize(meeting_id, passcode, actor)
        return await self.repository.list_open_participants(meeting)

    async def end_meeting(self, meeting_id: str, passcode: str, actor: Profile) -> VideoMeeting:
        """Host or tutor ends the room and closes every open session."""
        meeting = await self._authorize(meeting_id, passcode, actor, for_update=True)
        if meeting.host_id != actor.id and actor.role != RoleEnum.TUTOR:
            raise UnauthorizedException("Only the host or the tutor can end the meeting")
        if meeting.status == MeetingStatusEnum.ENDED:
            return meeting

        now = utc_now()
        closed = await self.repository.close_participants(meeting, now)
        meeting.status = MeetingStatusEnum.ENDED
        meeting.ended_at = now
        await self.repository.save(meeting)
        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="meeting.ended",
            entity_type="video_meeting",
            entity_id=meeting.meeting_id,
            payload={"booking_id": str(meeting.booking_id), "closed_sessions": closed},
        )
        return meeting


async def get_meetings_service(session: AsyncSession = Depends(get_db_session)) -> MeetingsService:
    """Dependency provider for meetings service."""
    return MeetingsService(
        repository=MeetingsRepository(session),
        booking_repository=BookingRepository(session),
        audit_repository=AuditRepository(session),
    )
