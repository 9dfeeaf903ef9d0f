"""Video meeting ORM models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, BaseModelMixin
from app.core.enums import MeetingStatusEnum
from app.shared.utils import utc_now


class VideoMeeting(BaseModelMixin, Base):
    """Ad-hoc video room for a booking; signalling happens in the browser."""

    __tablename__ = "video_meetings"

    meeting_id: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    passcode: Mapped[str] = mapped_column(String(6), nullable=False)
    booking_id: Mapped[UUID] = mapped_column(ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    host_id: Mapped[UUID] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[MeetingStatusEnum] = mapped_column(
        SAEnum(MeetingStatusEnum, name="meeting_status_enum", native_enum=False),
        default=MeetingStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    participants: Mapped[list["VideoParticipant"]] = relationship(
        back_populates="meeting",
        cascade="all, delete-orphan",
        lazy="raise",
    )


class VideoParticipant(BaseModelMixin, Base):
    """One participant session inside a meeting."""

    __tablename__ = "video_participants"

    meeting_pk: Mapped[UUID] = mapped_column(
        ForeignKey("video_meetings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    session_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    is_audio_on: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_video_on: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    left_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    meeting: Mapped[VideoMeeting] = relationship(back_populates="participants")
