"""Profiles business logic and authentication dependencies."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.core.enums import RoleEnum
from app.core.security import bearer_scheme, decode_access_token, subject_from_claims
from app.modules.audit.repository import AuditRepository
from app.modules.profiles.models import Profile
from app.modules.profiles.repository import ProfilesRepository
from app.modules.profiles.schemas import (
    HourlyRateUpdate,
    ProfileCreate,
    ProfileUpdate,
    StudentDetailsUpdate,
)
from app.shared.exceptions import (
    AuthenticationException,
    ConflictException,
    NotFoundException,
    UnauthorizedException,
)

STUDENT_EDITABLE_FIELDS = frozenset({"email", "phone_number", "address", "profile_picture_url", "timezone"})
TUTOR_EDITABLE_FIELDS = STUDENT_EDITABLE_FIELDS | {"full_name", "date_of_birth", "subjects"}


class ProfilesService:
    """Profile registration, lookup and role-restricted edits."""

    def __init__(self, repository: ProfilesRepository, audit_repository: AuditRepository) -> None:
        self.repository = repository
        self.audit_repository = audit_repository

    async def register_profile(self, subject: UUID, payload: ProfileCreate) -> Profile:
        """Create the profile row for a freshly signed-up account."""
        if await self.repository.get_profile_by_id(subject) is not None:
            raise ConflictException("Profile already exists")
        if await self.repository.get_profile_by_email(payload.email) is not None:
            raise ConflictException("Email is already used by another profile")

        profile = await self.repository.create_profile(
            profile_id=subject,
            role=payload.role,
            full_name=payload.full_name,
            email=str(payload.email),
            phone_number=payload.phone_number,
            address=payload.address,
            date_of_birth=payload.date_of_birth,
            subjects=payload.subjects if payload.role == RoleEnum.TUTOR else [],
            timezone=payload.timezone,
        )
        await self.audit_repository.create_audit_log(
            actor_id=profile.id,
            action="profile.registered",
            entity_type="profile",
            entity_id=str(profile.id),
            payload={"role": str(profile.role)},
        )
        return profile

    async def get_profile(self, profile_id: UUID) -> Profile:
        profile = await self.repository.get_profile_by_id(profile_id)
        if profile is None:
            raise NotFoundException("Profile not found")
        return profile

    async def get_tutor(self, tutor_id: UUID) -> Profile:
        profile = await self.get_profile(tutor_id)
        if profile.role != RoleEnum.TUTOR:
            raise NotFoundException("Tutor not found")
        return profile

    async def resolve_actor(self, token: str) -> Profile:
        """Resolve profile from access token."""
        subject = subject_from_claims(decode_access_token(token))
        profile = await self.repository.get_profile_by_id(subject)
        if profile is None:
            raise AuthenticationException("Profile is not registered")
        if not profile.is_active:
            raise UnauthorizedException("Profile is inactive")
        return profile

    async def update_own_profile(self, actor: Profile, payload: ProfileUpdate) -> Profile:
        """Apply self-service edits; students may change contact details only."""
        changes = payload.model_dump(exclude_unset=True)
        allowed = TUTOR_EDITABLE_FIELDS if actor.role == RoleEnum.TUTOR else STUDENT_EDITABLE_FIELDS
        forbidden = sorted(set(changes) - allowed)
        if forbidden:
            raise UnauthorizedException(f"Fields not editable for your role: {', '.join(forbidden)}")

        await self._ensure_email_free(changes.get("email"), actor.id)
        if "email" in changes:
            changes["email"] = str(changes["email"])
        return await self.repository.update_profile(actor, **changes)

    async def update_hourly_rate(self, actor: Profile, payload: HourlyRateUpdate) -> Profile:
        if actor.role != RoleEnum.TUTOR:
            raise UnauthorizedException("Only tutors have an hourly rate")
        return await self.repository.update_profile(actor, hourly_rate=payload.hourly_rate)

    async def update_student_details(
        self,
        actor: Profile,
        student_id: UUID,
        payload: StudentDetailsUpdate,
    ) -> Profile:
        """Tutor edits contact details of one of their students."""
        if actor.role != RoleEnum.TUTOR:
            raise UnauthorizedException("Only tutors can edit student details")

        student = await self.get_profile(student_id)
        if student.role != RoleEnum.STUDENT:
            raise NotFoundException("Student not found")
        if not await self.repository.has_booking_between(actor.id, student.id):
            raise UnauthorizedException("Student has no bookings with you")

        changes = payload.model_dump(exclude_unset=True)
        await self._ensure_email_free(changes.get("email"), student.id)
        if "email" in changes:
            changes["email"] = str(changes["email"])
        updated = await self.repository.update_profile(student, **changes)
        await self.audit_repository.create_audit_log(
            actor_id=actor.id,
            action="profile.student.updated",
            entity_type="profile",
            entity_id=str(student.id),
            payload={"fields": sorted(changes)},
        )
        return updated

    async def list_tutors(
        self,
        limit: int,
        offset: int,
        subject: str | None = None,
    ) -> tuple[list[Profile], int]:
        return await self.repository.list_profiles(RoleEnum.TUTOR, limit, offset, subject=subject)

    async def list_my_students(self, actor: Profile) -> list[Profile]:
        if actor.role != RoleEnum.TUTOR:
            raise UnauthorizedException("Only tutors have students")
        return await self.repository.list_students_for_tutor(actor.id)

    async def _ensure_email_free(self, email: object, owner_id: UUID) -> None:
        if email is None:
            return
        existing = await self.repository.get_profile_by_email(str(email))
        if existing is not None and existing.id != owner_id:
            raise ConflictException("Email is already used by another profile")


async def get_profiles_service(session: AsyncSession = Depends(get_db_session)) -> ProfilesService:
    """Dependency provider for profiles service."""
    return ProfilesService(ProfilesRepository(session), AuditRepository(session))


def _bearer_token(credentials: HTTPAuthorizationCredentials | None) -> str:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise AuthenticationException("Missing bearer token")
    return credentials.credentials


async def get_token_subject(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> UUID:
    """Resolve auth user id without requiring a profile row."""
    return subject_from_claims(decode_access_token(_bearer_token(credentials)))


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    service: ProfilesService = Depends(get_profiles_service),
) -> Profile:
    """Resolve currently authenticated profile from bearer token."""
    return await service.resolve_actor(_bearer_token(credentials))


def require_roles(*roles: RoleEnum):
    """Dependency factory for role-based access."""

    async def _checker(current_user: Profile = Depends(get_current_user)) -> Profile:
        if current_user.role not in roles:
            raise UnauthorizedException("Operation not permitted for your role")
        return current_user

    return _checker
