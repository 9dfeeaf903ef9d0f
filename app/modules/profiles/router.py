"""Profiles API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.core.enums import RoleEnum
from app.modules.profiles.schemas import (
    HourlyRateUpdate,
    ProfileCreate,
    ProfileRead,
    ProfileUpdate,
    StudentDetailsUpdate,
    TutorPublicRead,
)
from app.modules.profiles.service import (
    ProfilesService,
    get_current_user,
    get_profiles_service,
    get_token_subject,
    require_roles,
)
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.post("", response_model=ProfileRead, status_code=status.HTTP_201_CREATED)
async def register_profile(
    payload: ProfileCreate,
    subject: UUID = Depends(get_token_subject),
    service: ProfilesService = Depends(get_profiles_service),
) -> ProfileRead:
    """Create profile for authenticated account."""
    profile = await service.register_profile(subject, payload)
    return ProfileRead.model_validate(profile)


@router.get("/me", response_model=ProfileRead)
async def get_my_profile(current_user=Depends(get_current_user)) -> ProfileRead:
    return ProfileRead.model_validate(current_user)


@router.patch("/me", response_model=ProfileRead)
async def update_my_profile(
    payload: ProfileUpdate,
    service: ProfilesService = Depends(get_profiles_service),
    current_user=Depends(get_current_user),
) -> ProfileRead:
    """Update own profile."""
    profile = await service.update_own_profile(current_user, payload)
    return ProfileRead.model_validate(profile)


@router.put("/me/hourly-rate", response_model=ProfileRead)
async def update_hourly_rate(
    payload: HourlyRateUpdate,
    service: ProfilesService = Depends(get_profiles_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> ProfileRead:
    """Set tutor hourly rate."""
    profile = await service.update_hourly_rate(current_user, payload)
    return ProfileRead.model_validate(profile)


@router.get("/tutors", response_model=Page[TutorPublicRead])
async def list_tutors(
    subject: str | None = Query(default=None, max_length=128),
    pagination=Depends(get_pagination_params),
    service: ProfilesService = Depends(get_profiles_service),
    current_user=Depends(get_current_user),
) -> Page[TutorPublicRead]:
    """List active tutors."""
    items, total = await service.list_tutors(pagination.limit, pagination.offset, subject=subject)
    serialized = [TutorPublicRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/students", response_model=list[ProfileRead])
async def list_my_students(
    service: ProfilesService = Depends(get_profiles_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> list[ProfileRead]:
    """List students who have booked with current tutor."""
    students = await service.list_my_students(current_user)
    return [ProfileRead.model_validate(item) for item in students]


@router.patch("/students/{student_id}", response_model=ProfileRead)
async def update_student_details(
    student_id: UUID,
    payload: StudentDetailsUpdate,
    service: ProfilesService = Depends(get_profiles_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> ProfileRead:
    """Tutor edits student contact details."""
    profile = await service.update_student_details(current_user, student_id, payload)
    return ProfileRead.model_validate(profile)


@router.get("/{profile_id}", response_model=TutorPublicRead)
async def get_tutor_card(
    profile_id: UUID,
    service: ProfilesService = Depends(get_profiles_service),
    current_user=Depends(get_current_user),
) -> TutorPublicRead:
    """Return public tutor details."""
    tutor = await service.get_tutor(profile_id)
    return TutorPublicRead.model_validate(tutor)
