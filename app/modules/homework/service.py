"""Homework business logic layer."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.core.enums import HomeworkStatusEnum, LessonStatusEnum, RoleEnum
from app.modules.audit.repository import AuditRepository
from app.modules.homework.models import HomeworkSubmission
from app.modules.homework.repository import HomeworkRepository
from app.modules.homework.schemas import HomeworkMarkRequest, HomeworkSubmitRequest
from app.modules.lessons.repository import LessonsRepository
from app.modules.profiles.models import Profile
from app.shared.exceptions import BusinessRuleException, NotFoundException, UnauthorizedException
from app.shared.utils import utc_now


class HomeworkService:
    """Homework submission and marking rules."""

    def __init__(
        self,
        repository: HomeworkRepository,
        lessons_repository: LessonsRepository,
        audit_repository: AuditRepository,
    ) -> None:
        self.repository = repository
        self.lessons_repository = lessons_repository
        self.audit_repository = audit_repository

    async def submit(self, payload: HomeworkSubmitRequest, actor: Profile) -> HomeworkSubmission:
        """Record a student's homework upload for their own lesson."""
        if actor.role != RoleEnum.STUDENT:
            raise UnauthorizedException("Only students can submit homework")

        lesson = await self.lessons_repository.get_lesson_by_id(payload.lesson_id)
        if lesson is None:
            raise NotFoundException("Lesson not found")
        if lesson.student_id != actor.id:
            raise UnauthorizedException("You can only submit homework for your own lessons")
        if lesson.status == LessonStatusEnum.ARCHIVED:
            raise BusinessRuleException("Lesson is archived")

        submission = await self.repository.create_submission(
            student_id=actor.id,
            submitted_at=utc_now(),
            status=HomeworkStatusEnum.SUBMITTED,
            **payload.model_dump(),
        )
        await self.audit_repository.create_outbox_event(
            aggregate_type="homework",
            aggregate_id=str(submission.id),
            event_type="homework.submitted",
            payload={
                "homework_id": str(submission.id),
                "lesson_id": str(lesson.id),
                "student_id": str(actor.id),
                "tutor_id": str(lesson.tutor_id),
            },
        )
        return submission

    async def mark(
        self,
        submission_id: UUID,
        payload: HomeworkMarkRequest,
        actor: Profile,
    ) -> HomeworkSubmission:
        """Tutor leaves feedback; submission becomes marked."""
        submission = await self.repository.get_submission_by_id(submission_id)
        if submission is None:
            raise NotFoundException("Homework submission not found")
        if actor.role != RoleEnum.TUTOR or submission.lesson.tutor_id != actor.id:
            raise UnauthorizedException("Only the lesson tutor can mark this homework")

        submission.tutor_feedback = payload.tutor_feedback
        submission.status = HomeworkStatusEnum.MARKED
        submission.marked_at = utc_now()
        submission.marked_by = actor.id
        await self.repository.save(submission)

        await self.audit_repository.create_outbox_event(
            aggregate_type="homework",
            aggregate_id=str(submission.id),
            event_type="homework.marked",
            payload={
                "homework_id": str(submission.id),
                "lesson_id": str(submission.lesson_id),
                "student_id": str(submission.student_id),
            },
        )
        return submission

    async def list_my_homework(
        self,
        actor: Profile,
        limit: int,
        offset: int,
        status: HomeworkStatusEnum | None = None,
    ) -> tuple[list[HomeworkSubmission], int]:
        if actor.role == RoleEnum.TUTOR:
            return await self.repository.list_for_tutor(actor.id, limit, offset, status=status)
        return await self.repository.list_for_student(actor.id, limit, offset)

    async def list_for_lesson(self, lesson_id: UUID, actor: Profile) -> list[HomeworkSubmission]:
        lesson = await self.lessons_repository.get_lesson_by_id(lesson_id)
        if lesson is None:
            raise NotFoundException("Lesson not found")
        if actor.id not in (lesson.student_id, lesson.tutor_id):
            raise UnauthorizedException("You are not part of this lesson")
        return await self.repository.list_for_lesson(lesson_id)


async def get_homework_service(session: AsyncSession = Depends(get_db_session)) -> HomeworkService:
    """Dependency provider for homework service."""
    return HomeworkService(
        HomeworkRepository(session),
        LessonsRepository(session),
        AuditRepository(session),
    )
