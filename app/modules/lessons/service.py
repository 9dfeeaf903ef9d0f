"""Lessons business logic layer."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.core.enums import LessonStatusEnum, RoleEnum
from app.modules.booking.repository import BookingRepository
from app.modules.lessons.models import Lesson, LessonActivity
from app.modules.lessons.repository import LessonsRepository
from app.modules.lessons.schemas import LessonActivityCreate, LessonCreate, LessonUpdate
from app.modules.profiles.models import Profile
from app.modules.profiles.repository import ProfilesRepository
from app.shared.exceptions import (
    BusinessRuleException,
    ConflictException,
    NotFoundException,
    UnauthorizedException,
)


class LessonsService:
    """Lessons domain service."""

    def __init__(
        self,
        repository: LessonsRepository,
        profiles_repository: ProfilesRepository,
        booking_repository: BookingRepository,
    ) -> None:
        self.repository = repository
        self.profiles_repository = profiles_repository
        self.booking_repository = booking_repository

    @staticmethod
    def _require_tutor(actor: Profile) -> None:
        if actor.role != RoleEnum.TUTOR:
            raise UnauthorizedException("Only tutors can manage lessons")

    @staticmethod
    def _ensure_participant(lesson: Lesson, actor: Profile) -> None:
        if actor.id not in (lesson.student_id, lesson.tutor_id):
            raise UnauthorizedException("You are not part of this lesson")

    async def get_lesson(self, lesson_id: UUID, actor: Profile, *, with_parties: bool = False) -> Lesson:
        lesson = await self.repository.get_lesson_by_id(lesson_id, with_parties=with_parties)
        if lesson is None:
            raise NotFoundException("Lesson not found")
        self._ensure_participant(lesson, actor)
        return lesson

    async def _get_own_lesson(self, lesson_id: UUID, actor: Profile) -> Lesson:
        self._require_tutor(actor)
        lesson = await self.get_lesson(lesson_id, actor)
        if lesson.tutor_id != actor.id:
            raise UnauthorizedException("Tutor can update only own lessons")
        return lesson

    async def create_lesson(self, payload: LessonCreate, actor: Profile) -> Lesson:
        """Create lesson record for one of tutor's students."""
        self._require_tutor(actor)
        student = await self.profiles_repository.get_profile_by_id(payload.student_id)
        if student is None or student.role != RoleEnum.STUDENT:
            raise NotFoundException("Student not found")

        if payload.booking_id is not None:
            booking = await self.booking_repository.get_booking_by_id(payload.booking_id)
            if booking is None:
                raise NotFoundException("Booking not found")
            if booking.tutor_id != actor.id or booking.student_id != student.id:
                raise BusinessRuleException("Booking does not belong to this tutor and student")
            if await self.repository.get_lesson_by_booking_id(booking.id) is not None:
                raise ConflictException("Lesson already exists for booking")

        return await self.repository.create_lesson(
            tutor_id=actor.id,
            status=LessonStatusEnum.SCHEDULED,
            **payload.model_dump(),
        )

    async def update_lesson(self, lesson_id: UUID, payload: LessonUpdate, actor: Profile) -> Lesson:
        lesson = await self._get_own_lesson(lesson_id, actor)
        return await self.repository.update_lesson(lesson, **payload.model_dump(exclude_unset=True, exclude_none=True))

    async def archive_lesson(self, lesson_id: UUID, actor: Profile) -> Lesson:
        lesson = await self._get_own_lesson(lesson_id, actor)
        return await self.repository.update_lesson(lesson, status=LessonStatusEnum.ARCHIVED)

    async def delete_lesson(self, lesson_id: UUID, actor: Profile) -> None:
        lesson = await self._get_own_lesson(lesson_id, actor)
        await self.repository.delete_lesson(lesson)

    async def list_lessons(
        self,
        actor: Profile,
        limit: int,
        offset: int,
        include_archived: bool = False,
        student_id: UUID | None = None,
    ) -> tuple[list[Lesson], int]:
        """List lessons according to actor role."""
        return await self.repository.list_lessons_for_user(
            actor.id,
            actor.role,
            limit,
            offset,
            include_archived=include_archived,
            student_id=student_id,
        )

    async def add_activity(
        self,
        lesson_id: UUID,
        payload: LessonActivityCreate,
        actor: Profile,
    ) -> LessonActivity:
        """Attach file metadata to lesson."""
        lesson = await self._get_own_lesson(lesson_id, actor)
        return await self.repository.create_activity(
            lesson_id=lesson.id,
            uploaded_by=actor.id,
            **payload.model_dump(),
        )

    async def list_activities(self, lesson_id: UUID, actor: Profile) -> list[LessonActivity]:
        lesson = await self.get_lesson(lesson_id, actor)
        return await self.repository.list_activities(lesson.id)

    async def delete_activity(self, activity_id: UUID, actor: Profile) -> None:
        activity = await self.repository.get_activity_by_id(activity_id)
        if activity is None:
            raise NotFoundException("Lesson activity not found")
        await self._get_own_lesson(activity.lesson_id, actor)
        await self.repository.delete_activity(activity)


async def get_lessons_service(session: AsyncSession = Depends(get_db_session)) -> LessonsService:
    """Dependency provider for lessons service."""
    return LessonsService(
        LessonsRepository(session),
        ProfilesRepository(session),
        BookingRepository(session),
    )
