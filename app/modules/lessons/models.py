"""Lessons ORM models."""

from __future__ import annotations

from datetime import date, time
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import BigInteger, Date, Enum as SAEnum, ForeignKey, Integer, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, BaseModelMixin
from app.core.enums import LessonStatusEnum

if TYPE_CHECKING:
    from app.modules.profiles.models import Profile


class Lesson(BaseModelMixin, Base):
    """Lesson record kept by the tutor, optionally tied to a booking."""

    __tablename__ = "lessons"

    booking_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("bookings.id", ondelete="SET NULL"),
        unique=True,
        nullable=True,
    )
    student_id: Mapped[UUID] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    tutor_id: Mapped[UUID] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    lesson_date: Mapped[date] = mapped_column(Date, nullable=False)
    lesson_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    covered_in_previous_lesson: Mapped[str | None] = mapped_column(Text, nullable=True)
    covered_in_current_lesson: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_lesson_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[LessonStatusEnum] = mapped_column(
        SAEnum(LessonStatusEnum, name="lesson_status_enum", native_enum=False),
        default=LessonStatusEnum.SCHEDULED,
        nullable=False,
        index=True,
    )

    student: Mapped["Profile"] = relationship(foreign_keys=[student_id], lazy="raise")
    tutor: Mapped["Profile"] = relationship(foreign_keys=[tutor_id], lazy="raise")


class LessonActivity(BaseModelMixin, Base):
    """File attachment metadata for a lesson; bytes live in object storage."""

    __tablename__ = "lesson_activities"

    lesson_id: Mapped[UUID] = mapped_column(ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    uploaded_by: Mapped[UUID | None] = mapped_column(ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
