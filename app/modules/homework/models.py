"""Homework ORM models."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, Enum as SAEnum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, BaseModelMixin
from app.core.enums import HomeworkStatusEnum
from app.shared.utils import utc_now

if TYPE_CHECKING:
    from app.modules.lessons.models import Lesson


class HomeworkSubmission(BaseModelMixin, Base):
    """Student homework file submitted against a lesson."""

    __tablename__ = "homework_submissions"

    lesson_id: Mapped[UUID] = mapped_column(ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id: Mapped[UUID] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    submission_file_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    submission_file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    submission_file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    status: Mapped[HomeworkStatusEnum] = mapped_column(
        SAEnum(HomeworkStatusEnum, name="homework_status_enum", native_enum=False),
        default=HomeworkStatusEnum.SUBMITTED,
        nullable=False,
        index=True,
    )
    tutor_feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    marked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    marked_by: Mapped[UUID | None] = mapped_column(ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)

    lesson: Mapped["Lesson"] = relationship(lazy="raise")
