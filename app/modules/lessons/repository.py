"""Lessons repository layer."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Select, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.enums import LessonStatusEnum, RoleEnum
from app.modules.lessons.models import Lesson, LessonActivity


class LessonsRepository:
    """DB operations for lessons and their activities."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_lesson(self, **fields) -> Lesson:
        lesson = Lesson(**fields)
        self.session.add(lesson)
        await self.session.flush()
        return lesson

    async def get_lesson_by_id(self, lesson_id: UUID, *, with_parties: bool = False) -> Lesson | None:
        stmt = select(Lesson).where(Lesson.id == lesson_id)
        if with_parties:
            stmt = stmt.options(selectinload(Lesson.student), selectinload(Lesson.tutor))
        return await self.session.scalar(stmt)

    async def get_lesson_by_booking_id(self, booking_id: UUID) -> Lesson | None:
        stmt = select(Lesson).where(Lesson.booking_id == booking_id)
        return await self.session.scalar(stmt)

    async def list_lessons_for_user(
        self,
        user_id: UUID,
        role: RoleEnum,
        limit: int,
        offset: int,
        include_archived: bool = False,
        student_id: UUID | None = None,
    ) -> tuple[list[Lesson], int]:
        if role == RoleEnum.TUTOR:
            base_stmt: Select[tuple[Lesson]] = select(Lesson).where(Lesson.tutor_id == user_id)
            if student_id is not None:
                base_stmt = base_stmt.where(Lesson.student_id == student_id)
        else:
            base_stmt = select(Lesson).where(Lesson.student_id == user_id)
        if not include_archived:
            base_stmt = base_stmt.where(Lesson.status != LessonStatusEnum.ARCHIVED)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = (
            base_stmt.order_by(Lesson.lesson_date.desc(), Lesson.lesson_time.desc())
            .limit(limit)
            .offset(offset)
        )
        items = (await self.session.scalars(stmt)).all()
        return items, total

    async def update_lesson(self, lesson: Lesson, **changes) -> Lesson:
        for key, value in changes.items():
            setattr(lesson, key, value)
        await self.session.flush()
        return lesson

    async def delete_lesson(self, lesson: Lesson) -> None:
        await self.session.execute(delete(Lesson).where(Lesson.id == lesson.id))

    async def create_activity(self, **fields) -> LessonActivity:
        activity = LessonActivity(**fields)
        self.session.add(activity)
        await self.session.flush()
        return activity

    async def list_activities(self, lesson_id: UUID) -> list[LessonActivity]:
        stmt = (
            select(LessonActivity)
            .where(LessonActivity.lesson_id == lesson_id)
            .order_by(LessonActivity.created_at.asc())
        )
        return (await self.session.scalars(stmt)).all()

    async def get_activity_by_id(self, activity_id: UUID) -> LessonActivity | None:
        return await self.session.get(LessonActivity, activity_id)

    async def delete_activity(self, activity: LessonActivity) -> None:
        await self.session.execute(delete(LessonActivity).where(LessonActivity.id == activity.id))
