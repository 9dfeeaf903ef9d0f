"""Availability business logic layer."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import RoleEnum
from app.modules.availability.models import AvailabilityRule, BlockedInterval
from app.modules.availability.repository import AvailabilityRepository
from app.modules.availability.schemas import (
    AvailabilityRuleCreate,
    AvailabilityRuleUpdate,
    AvailableSlotsRead,
    BlockedIntervalCreate,
)
from app.modules.availability.slots import compute_available_start_times, window_minutes
from app.modules.booking.repository import BookingRepository
from app.modules.profiles.models import Profile
from app.modules.profiles.repository import ProfilesRepository
from app.shared.exceptions import (
    BusinessRuleException,
    InvalidInputException,
    NotFoundException,
    UnauthorizedException,
)
from app.shared.utils import ensure_utc, resolve_timezone, utc_now

settings = get_settings()


def tutor_timezone(tutor: Profile) -> tzinfo:
    """Zone in which a tutor's weekly rules are expressed."""
    return resolve_timezone(tutor.timezone, settings.schedule_timezone)


def local_day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time(0), tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time(0), tzinfo=tz)
    return ensure_utc(start), ensure_utc(end)


def validate_duration(duration_minutes: int, step_minutes: int) -> None:
    if duration_minutes <= 0 or duration_minutes % step_minutes != 0:
        raise InvalidInputException(
            f"duration_minutes must be a positive multiple of {step_minutes}",
        )


class AvailabilityService:
    """Tutor availability management and free-slot lookup."""

    def __init__(
        self,
        repository: AvailabilityRepository,
        profiles_repository: ProfilesRepository,
        booking_repository: BookingRepository,
    ) -> None:
        self.repository = repository
        self.profiles_repository = profiles_repository
        self.booking_repository = booking_repository

    async def _get_tutor(self, tutor_id: UUID) -> Profile:
        tutor = await self.profiles_repository.get_profile_by_id(tutor_id)
        if tutor is None or tutor.role != RoleEnum.TUTOR:
            raise NotFoundException("Tutor not found")
        return tutor

    @staticmethod
    def _require_tutor(actor: Profile) -> None:
        if actor.role != RoleEnum.TUTOR:
            raise UnauthorizedException("Only tutors can manage availability")

    async def create_rule(self, payload: AvailabilityRuleCreate, actor: Profile) -> AvailabilityRule:
        self._require_tutor(actor)
        return await self.repository.create_rule(
            actor.id,
            day_of_week=payload.day_of_week,
            start_time=payload.start_time,
            end_time=payload.end_time,
            is_available=payload.is_available,
        )

    async def _get_own_rule(self, rule_id: UUID, actor: Profile) -> AvailabilityRule:
        self._require_tutor(actor)
        rule = await self.repository.get_rule_by_id(rule_id)
        if rule is None:
            raise NotFoundException("Availability rule not found")
        if rule.tutor_id != actor.id:
            raise UnauthorizedException("You cannot manage this availability rule")
        return rule

    async def update_rule(
        self,
        rule_id: UUID,
        payload: AvailabilityRuleUpdate,
        actor: Profile,
    ) -> AvailabilityRule:
        rule = await self._get_own_rule(rule_id, actor)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        start_time = changes.get("start_time", rule.start_time)
        end_time = changes.get("end_time", rule.end_time)
        start_minutes, end_minutes = window_minutes(start_time, end_time)
        if end_minutes <= start_minutes:
            raise BusinessRuleException("end_time must be later than start_time")
        return await self.repository.update_rule(rule, **changes)

    async def delete_rule(self, rule_id: UUID, actor: Profile) -> None:
        rule = await self._get_own_rule(rule_id, actor)
        await self.repository.delete_rule(rule)

    async def list_rules(self, tutor_id: UUID) -> list[AvailabilityRule]:
        await self._get_tutor(tutor_id)
        return await self.repository.list_rules(tutor_id)

    async def create_block(self, payload: BlockedIntervalCreate, actor: Profile) -> BlockedInterval:
        self._require_tutor(actor)
        tz = tutor_timezone(actor)
        start, end = payload.start_datetime, payload.end_datetime
        if start.tzinfo is None:
            start = start.replace(tzinfo=tz)
        if end.tzinfo is None:
            end = end.replace(tzinfo=tz)
        return await self.repository.create_block(
            actor.id,
            start_datetime=ensure_utc(start),
            end_datetime=ensure_utc(end),
            reason=payload.reason,
        )

    async def delete_block(self, block_id: UUID, actor: Profile) -> None:
        self._require_tutor(actor)
        block = await self.repository.get_block_by_id(block_id)
        if block is None:
            raise NotFoundException("Blocked interval not found")
        if block.tutor_id != actor.id:
            raise UnauthorizedException("You cannot manage this blocked interval")
        await self.repository.delete_block(block)

    async def list_blocks(
        self,
        tutor_id: UUID,
        window_start: datetime | None,
        window_end: datetime | None,
    ) -> list[BlockedInterval]:
        await self._get_tutor(tutor_id)
        start = ensure_utc(window_start) if window_start else utc_now()
        end = ensure_utc(window_end) if window_end else start + timedelta(days=90)
        if end <= start:
            raise InvalidInputException("end must be later than start")
        return await self.repository.list_blocks_overlapping(tutor_id, start, end)

    async def get_available_start_times(
        self,
        tutor_id: UUID,
        day: date,
        duration_minutes: int | None = None,
    ) -> AvailableSlotsRead:
        """Free lesson start times for a tutor on a calendar date."""
        step = settings.slot_step_minutes
        duration = duration_minutes or settings.default_lesson_duration_minutes
        validate_duration(duration, step)

        tutor = await self._get_tutor(tutor_id)
        tz = tutor_timezone(tutor)
        start_times: list[str] = []

        if day >= utc_now().astimezone(tz).date():
            window_start, window_end = local_day_bounds(day, tz)
            rules = await self.repository.list_rules(tutor_id)
            blocks = await self.repository.list_blocks_overlapping(tutor_id, window_start, window_end)
            bookings = await self.booking_repository.list_active_bookings_for_day(tutor_id, day)
            start_times = compute_available_start_times(
                rules,
                blocks,
                bookings,
                day,
                duration_minutes=duration,
                step_minutes=step,
                tz=tz,
            )

        return AvailableSlotsRead(
            tutor_id=tutor_id,
            date=day,
            duration_minutes=duration,
            step_minutes=step,
            start_times=start_times,
        )


async def get_availability_service(session: AsyncSession = Depends(get_db_session)) -> AvailabilityService:
    """Dependency provider for availability service."""
    return AvailabilityService(
        repository=AvailabilityRepository(session),
        profiles_repository=ProfilesRepository(session),
        booking_repository=BookingRepository(session),
    )
