"""Homework API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.core.enums import HomeworkStatusEnum, RoleEnum
from app.modules.homework.schemas import HomeworkMarkRequest, HomeworkRead, HomeworkSubmitRequest
from app.modules.homework.service import HomeworkService, get_homework_service
from app.modules.profiles.service import get_current_user, require_roles
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/homework", tags=["homework"])


@router.post("", response_model=HomeworkRead, status_code=status.HTTP_201_CREATED)
async def submit_homework(
    payload: HomeworkSubmitRequest,
    service: HomeworkService = Depends(get_homework_service),
    current_user=Depends(require_roles(RoleEnum.STUDENT)),
) -> HomeworkRead:
    """Submit homework for a lesson."""
    submission = await service.submit(payload, current_user)
    return HomeworkRead.model_validate(submission)


@router.post("/{submission_id}/mark", response_model=HomeworkRead)
async def mark_homework(
    submission_id: UUID,
    payload: HomeworkMarkRequest,
    service: HomeworkService = Depends(get_homework_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> HomeworkRead:
    """Mark homework with feedback."""
    submission = await service.mark(submission_id, payload, current_user)
    return HomeworkRead.model_validate(submission)


@router.get("/my", response_model=Page[HomeworkRead])
async def list_my_homework(
    status_filter: HomeworkStatusEnum | None = Query(default=None, alias="status"),
    pagination=Depends(get_pagination_params),
    service: HomeworkService = Depends(get_homework_service),
    current_user=Depends(get_current_user),
) -> Page[HomeworkRead]:
    items, total = await service.list_my_homework(
        current_user,
        pagination.limit,
        pagination.offset,
        status=status_filter,
    )
    serialized = [HomeworkRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/lessons/{lesson_id}", response_model=list[HomeworkRead])
async def list_lesson_homework(
    lesson_id: UUID,
    service: HomeworkService = Depends(get_homework_service),
    current_user=Depends(get_current_user),
) -> list[HomeworkRead]:
    submissions = await service.list_for_lesson(lesson_id, current_user)
    return [HomeworkRead.model_validate(item) for item in submissions]
