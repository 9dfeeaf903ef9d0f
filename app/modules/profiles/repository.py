"""Profiles repository layer."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import RoleEnum
from app.modules.booking.models import Booking
from app.modules.profiles.models import Profile


class ProfilesRepository:
    """DB operations for profiles."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_profile(self, profile_id: UUID, role: RoleEnum, **fields) -> Profile:
        profile = Profile(id=profile_id, role=role, **fields)
        self.session.add(profile)
        await self.session.flush()
        return profile

    async def get_profile_by_id(self, profile_id: UUID) -> Profile | None:
        return await self.session.get(Profile, profile_id)

    async def get_profile_by_email(self, email: str) -> Profile | None:
        stmt = select(Profile).where(func.lower(Profile.email) == email.lower())
        return await self.session.scalar(stmt)

    async def list_profiles(
        self,
        role: RoleEnum,
        limit: int,
        offset: int,
        subject: str | None = None,
    ) -> tuple[list[Profile], int]:
        base_stmt: Select[tuple[Profile]] = select(Profile).where(
            Profile.role == role,
            Profile.is_active.is_(True),
        )
        if subject:
            base_stmt = base_stmt.where(Profile.subjects.contains([subject]))

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Profile.full_name.asc()).limit(limit).offset(offset)
        items = (await self.session.scalars(stmt)).all()
        return items, total

    async def list_students_for_tutor(self, tutor_id: UUID) -> list[Profile]:
        student_ids = select(Booking.student_id).where(Booking.tutor_id == tutor_id).distinct()
        stmt = select(Profile).where(Profile.id.in_(student_ids)).order_by(Profile.full_name.asc())
        return (await self.session.scalars(stmt)).all()

    async def has_booking_between(self, tutor_id: UUID, student_id: UUID) -> bool:
        stmt = select(func.count()).where(
            Booking.tutor_id == tutor_id,
            Booking.student_id == student_id,
        )
        return int((await self.session.scalar(stmt)) or 0) > 0

    async def update_profile(self, profile: Profile, **changes) -> Profile:
        for key, value in changes.items():
            setattr(profile, key, value)
        await self.session.flush()
        return profile
