"""Homework repository layer."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.enums import HomeworkStatusEnum
from app.modules.homework.models import HomeworkSubmission
from app.modules.lessons.models import Lesson


class HomeworkRepository:
    """DB operations for homework submissions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_submission(self, **fields) -> HomeworkSubmission:
        submission = HomeworkSubmission(**fields)
        self.session.add(submission)
        await self.session.flush()
        return submission

    async def get_submission_by_id(self, submission_id: UUID) -> HomeworkSubmission | None:
        stmt = (
            select(HomeworkSubmission)
            .options(selectinload(HomeworkSubmission.lesson))
            .where(HomeworkSubmission.id == submission_id)
        )
        return await self.session.scalar(stmt)

    async def list_for_student(
        self,
        student_id: UUID,
        limit: int,
        offset: int,
    ) -> tuple[list[HomeworkSubmission], int]:
        base_stmt: Select[tuple[HomeworkSubmission]] = select(HomeworkSubmission).where(
            HomeworkSubmission.student_id == student_id,
        )
        return await self._paginate(base_stmt, limit, offset)

    async def list_for_tutor(
        self,
        tutor_id: UUID,
        limit: int,
        offset: int,
        status: HomeworkStatusEnum | None = None,
    ) -> tuple[list[HomeworkSubmission], int]:
        base_stmt: Select[tuple[HomeworkSubmission]] = (
            select(HomeworkSubmission)
            .join(Lesson, Lesson.id == HomeworkSubmission.lesson_id)
            .where(Lesson.tutor_id == tutor_id)
        )
        if status is not None:
            base_stmt = base_stmt.where(HomeworkSubmission.status == status)
        return await self._paginate(base_stmt, limit, offset)

    async def list_for_lesson(self, lesson_id: UUID) -> list[HomeworkSubmission]:
        stmt = (
            select(HomeworkSubmission)
            .where(HomeworkSubmission.lesson_id == lesson_id)
            .order_by(HomeworkSubmission.submitted_at.desc())
        )
        return (await self.session.scalars(stmt)).all()

    async def save(self, submission: HomeworkSubmission) -> HomeworkSubmission:
        await self.session.flush()
        return submission

    async def _paginate(
        self,
        base_stmt: Select[tuple[HomeworkSubmission]],
        limit: int,
        offset: int,
    ) -> tuple[list[HomeworkSubmission], int]:
        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(HomeworkSubmission.submitted_at.desc()).limit(limit).offset(offset)
        items = (await self.session.scalars(stmt)).all()
        return items, total
