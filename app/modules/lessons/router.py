"""Lessons API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from app.core.enums import RoleEnum
from app.modules.lessons.schemas import (
    LessonActivityCreate,
    LessonActivityRead,
    LessonCreate,
    LessonDetailRead,
    LessonRead,
    LessonUpdate,
)
from app.modules.lessons.service import LessonsService, get_lessons_service
from app.modules.profiles.service import get_current_user, require_roles
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/lessons", tags=["lessons"])


@router.post("", response_model=LessonRead, status_code=status.HTTP_201_CREATED)
async def create_lesson(
    payload: LessonCreate,
    service: LessonsService = Depends(get_lessons_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> LessonRead:
    """Create lesson."""
    lesson = await service.create_lesson(payload, current_user)
    return LessonRead.model_validate(lesson)


@router.get("/my", response_model=Page[LessonRead])
async def list_my_lessons(
    include_archived: bool = Query(default=False),
    student_id: UUID | None = Query(default=None),
    pagination=Depends(get_pagination_params),
    service: LessonsService = Depends(get_lessons_service),
    current_user=Depends(get_current_user),
) -> Page[LessonRead]:
    """List lessons for current user."""
    items, total = await service.list_lessons(
        current_user,
        pagination.limit,
        pagination.offset,
        include_archived=include_archived,
        student_id=student_id,
    )
    serialized = [LessonRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/{lesson_id}", response_model=LessonDetailRead)
async def get_lesson(
    lesson_id: UUID,
    service: LessonsService = Depends(get_lessons_service),
    current_user=Depends(get_current_user),
) -> LessonDetailRead:
    lesson = await service.get_lesson(lesson_id, current_user, with_parties=True)
    return LessonDetailRead.model_validate(lesson)


@router.patch("/{lesson_id}", response_model=LessonRead)
async def update_lesson(
    lesson_id: UUID,
    payload: LessonUpdate,
    service: LessonsService = Depends(get_lessons_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> LessonRead:
    """Update lesson."""
    lesson = await service.update_lesson(lesson_id, payload, current_user)
    return LessonRead.model_validate(lesson)


@router.post("/{lesson_id}/archive", response_model=LessonRead)
async def archive_lesson(
    lesson_id: UUID,
    service: LessonsService = Depends(get_lessons_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> LessonRead:
    lesson = await service.archive_lesson(lesson_id, current_user)
    return LessonRead.model_validate(lesson)


@router.delete("/{lesson_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lesson(
    lesson_id: UUID,
    service: LessonsService = Depends(get_lessons_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> Response:
    await service.delete_lesson(lesson_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{lesson_id}/activities",
    response_model=LessonActivityRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_activity(
    lesson_id: UUID,
    payload: LessonActivityCreate,
    service: LessonsService = Depends(get_lessons_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> LessonActivityRead:
    """Attach uploaded file to lesson."""
    activity = await service.add_activity(lesson_id, payload, current_user)
    return LessonActivityRead.model_validate(activity)


@router.get("/{lesson_id}/activities", response_model=list[LessonActivityRead])
async def list_activities(
    lesson_id: UUID,
    service: LessonsService = Depends(get_lessons_service),
    current_user=Depends(get_current_user),
) -> list[LessonActivityRead]:
    activities = await service.list_activities(lesson_id, current_user)
    return [LessonActivityRead.model_validate(item) for item in activities]


@router.delete("/activities/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_activity(
    activity_id: UUID,
    service: LessonsService = Depends(get_lessons_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> Response:
    await service.delete_activity(activity_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
