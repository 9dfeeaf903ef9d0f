"""Video meetings repository layer."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import MeetingStatusEnum
from app.modules.meetings.models import VideoMeeting, VideoParticipant


class MeetingsRepository:
    """DB operations for meetings and their participant registry."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_meeting(
        self,
        meeting_id: str,
        passcode: str,
        booking_id: UUID,
        host_id: UUID,
    ) -> VideoMeeting:
        meeting = VideoMeeting(
            meeting_id=meeting_id,
            passcode=passcode,
            booking_id=booking_id,
            host_id=host_id,
            status=MeetingStatusEnum.PENDING,
        )
        self.session.add(meeting)
        await self.session.flush()
        return meeting

    async def get_by_meeting_id(self, meeting_id: str, *, for_update: bool = False) -> VideoMeeting | None:
        stmt = select(VideoMeeting).where(VideoMeeting.meeting_id == meeting_id)
        if for_update:
            stmt = stmt.with_for_update()
        return await self.session.scalar(stmt)

    async def get_open_meeting_for_booking(self, booking_id: UUID) -> VideoMeeting | None:
        stmt = (
            select(VideoMeeting)
            .where(
                VideoMeeting.booking_id == booking_id,
                VideoMeeting.status != MeetingStatusEnum.ENDED,
            )
            .order_by(VideoMeeting.created_at.desc())
            .limit(1)
        )
        return await self.session.scalar(stmt)

    async def add_participant(self, meeting: VideoMeeting, **fields) -> VideoParticipant:
        participant = VideoParticipant(meeting_pk=meeting.id, **fields)
        self.session.add(participant)
        await self.session.flush()
        return participant

    async def list_open_participants(self, meeting: VideoMeeting) -> list[VideoParticipant]:
        stmt = (
            select(VideoParticipant)
            .where(VideoParticipant.meeting_pk == meeting.id, VideoParticipant.left_at.is_(None))
            .order_by(VideoParticipant.joined_at.asc())
        )
        return (await self.session.scalars(stmt)).all()

    async def get_open_participant(self, meeting: VideoMeeting, user_id: UUID) -> VideoParticipant | None:
        stmt = (
            select(VideoParticipant)
            .where(
                VideoParticipant.meeting_pk == meeting.id,
                VideoParticipant.user_id == user_id,
                VideoParticipant.left_at.is_(None),
            )
            .order_by(VideoParticipant.joined_at.desc())
            .limit(1)
        )
        return await self.session.scalar(stmt)

    async def close_participants(
        self,
        meeting: VideoMeeting,
        left_at: datetime,
        user_id: UUID | None = None,
    ) -> int:
        stmt = update(VideoParticipant).where(
            VideoParticipant.meeting_pk == meeting.id,
            VideoParticipant.left_at.is_(None),
        )
        if user_id is not None:
            stmt = stmt.where(VideoParticipant.user_id == user_id)
        result = await self.session.execute(stmt.values(left_at=left_at))
        return int(result.rowcount or 0)

    async def save(self, entity: VideoMeeting | VideoParticipant) -> None:
        await self.session.flush()
