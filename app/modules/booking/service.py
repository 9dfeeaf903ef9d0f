"""Booking business logic layer."""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from fastapi import Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import (
    BookingPaymentStatusEnum,
    BookingStatusEnum,
    LessonStatusEnum,
    RoleEnum,
)
from app.modules.audit.repository import AuditRepository
from app.modules.availability.repository import AvailabilityRepository
from app.modules.availability.service import local_day_bounds, tutor_timezone, validate_duration
from app.modules.availability.slots import is_slot_bookable
from app.modules.booking.models import Booking
from app.modules.booking.repository import BookingRepository
from app.modules.booking.schemas import BookingCreate, BookingStatusUpdate
from app.modules.lessons.repository import LessonsRepository
from app.modules.profiles.models import Profile
from app.modules.profiles.repository import ProfilesRepository
from app.shared.exceptions import (
    BusinessRuleException,
    ConflictException,
    InvalidInputException,
    NotFoundException,
    UnauthorizedException,
)
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)
settings = get_settings()

ALLOWED_TRANSITIONS: dict[BookingStatusEnum, frozenset[BookingStatusEnum]] = {
    BookingStatusEnum.PENDING: frozenset({BookingStatusEnum.CONFIRMED, BookingStatusEnum.CANCELLED}),
    BookingStatusEnum.CONFIRMED: frozenset({BookingStatusEnum.COMPLETED, BookingStatusEnum.CANCELLED}),
    BookingStatusEnum.COMPLETED: frozenset(),
    BookingStatusEnum.CANCELLED: frozenset(),
}


def booking_event_payload(booking: Booking, **extra) -> dict:
    payload = {
        "booking_id": str(booking.id),
        "student_id": str(booking.student_id),
        "tutor_id": str(booking.tutor_id),
        "lesson_date": booking.lesson_date.isoformat(),
        "lesson_time": booking.lesson_time.strftime("%H:%M"),
        "duration_minutes": booking.duration_minutes,
    }
    payload.update(extra)
    return payload


class BookingService:
    """Booking domain service: creation guard, transitions, paid flag."""

    def __init__(
        self,
        booking_repository: BookingRepository,
        availability_repository: AvailabilityRepository,
        profiles_repository: ProfilesRepository,
        lessons_repository: LessonsRepository,
        audit_repository: AuditRepository,
    ) -> None:
        self.booking_repository = booking_repository
        self.availability_repository = availability_repository
        self.profiles_repository = profiles_repository
        self.lessons_repository = lessons_repository
        self.audit_repository = audit_repository

    @staticmethod
    def _validate_actor_access(booking: Booking, actor: Profile) -> None:
        if actor.role == RoleEnum.STUDENT and booking.student_id == actor.id:
            return
        if actor.role == RoleEnum.TUTOR and booking.tutor_id == actor.id:
            return
        raise UnauthorizedException("You cannot manage this booking")

    async def _get_party(self, profile_id: UUID, role: RoleEnum) -> Profile:
        profile = await self.profiles_repository.get_profile_by_id(profile_id)
        if profile is None or profile.role != role:
            raise NotFoundException(f"{role.value.capitalize()} not found")
        return profile

    async def _resolve_parties(self, payload: BookingCreate, actor: Profile) -> tuple[Profile, Profile]:
        if actor.role == RoleEnum.STUDENT:
            if payload.tutor_id is None:
                raise InvalidInputException("tutor_id is required")
            if payload.student_id is not None and payload.student_id != actor.id:
                raise UnauthorizedException("Students can only book for themselves")
            return await self._get_party(payload.tutor_id, RoleEnum.TUTOR), actor

        if payload.student_id is None:
            raise InvalidInputException("student_id is required for point-of-sale bookings")
        if payload.tutor_id is not None and payload.tutor_id != actor.id:
            raise UnauthorizedException("Tutors can only book into their own calendar")
        return actor, await self._get_party(payload.student_id, RoleEnum.STUDENT)

    async def create_booking(self, payload: BookingCreate, actor: Profile) -> Booking:
        """Create pending booking after re-checking the slot inside the transaction."""
        tutor, student = await self._resolve_parties(payload, actor)
        duration = payload.duration_minutes or settings.default_lesson_duration_minutes
        validate_duration(duration, settings.slot_step_minutes)

        tz = tutor_timezone(tutor)
        lesson_start = datetime.combine(payload.lesson_date, payload.lesson_time, tzinfo=tz)
        if lesson_start <= utc_now():
            raise BusinessRuleException("Cannot book a lesson in the past")

        window_start, window_end = local_day_bounds(payload.lesson_date, tz)
        await self.booking_repository.lock_tutor_day(tutor.id, payload.lesson_date)
        existing = await self.booking_repository.list_active_bookings_for_day(
            tutor.id,
            payload.lesson_date,
            for_update=True,
        )
        rules = await self.availability_repository.list_rules(tutor.id)
        blocks = await self.availability_repository.list_blocks_overlapping(tutor.id, window_start, window_end)

        bookable = is_slot_bookable(
            rules,
            blocks,
            existing,
            payload.lesson_date,
            payload.lesson_time,
            duration,
            tz,
            require_availability=actor.role == RoleEnum.STUDENT,
        )
        if not bookable:
            raise ConflictException("Requested time slot is no longer available")

        try:
            booking = await self.booking_repository.create_booking(
                student_id=student.id,
                tutor_id=tutor.id,
                lesson_date=payload.lesson_date,
                lesson_time=payload.lesson_time,
                duration_minutes=duration,
                created_by_id=actor.id,
                notes=payload.notes,
            )
        except IntegrityError as exc:
            logger.info("Concurrent booking rejected for tutor %s at %s", tutor.id, lesson_start)
            raise ConflictException("Requested time slot is no longer available") from exc

        await self.audit_repository.create_outbox_event(
            aggregate_type="booking",
            aggregate_id=str(booking.id),
            event_type="booking.created",
            payload=booking_event_payload(
                booking,
                student_name=student.full_name,
                point_of_sale=actor.role == RoleEnum.TUTOR,
            ),
        )
        return booking

    async def get_booking(self, booking_id: UUID, actor: Profile) -> Booking:
        booking = await self.booking_repository.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        self._validate_actor_access(booking, actor)
        return booking

    async def change_status(
        self,
        booking_id: UUID,
        payload: BookingStatusUpdate,
        actor: Profile,
    ) -> Booking:
        """Apply one lifecycle transition."""
        booking = await self.booking_repository.get_booking_by_id(booking_id, for_update=True)
        if booking is None:
            raise NotFoundException("Booking not found")
        self._validate_actor_access(booking, actor)

        if actor.role == RoleEnum.STUDENT and payload.status != BookingStatusEnum.CANCELLED:
            raise UnauthorizedException("Students can only cancel bookings")
        if payload.status not in ALLOWED_TRANSITIONS[booking.status]:
            raise BusinessRuleException(
                f"Booking cannot move from {booking.status.value} to {payload.status.value}",
            )

        await self._transition(booking, payload.status, reason=payload.reason)
        return booking

    async def mark_paid(self, booking: Booking) -> Booking:
        """Flip paid flag; a pending booking also becomes confirmed."""
        booking.payment_status = BookingPaymentStatusEnum.PAID
        if booking.status == BookingStatusEnum.PENDING:
            await self._transition(booking, BookingStatusEnum.CONFIRMED, reason=None)
        else:
            await self.booking_repository.save(booking)
        return booking

    async def _transition(
        self,
        booking: Booking,
        new_status: BookingStatusEnum,
        reason: str | None,
    ) -> None:
        previous = booking.status
        booking.status = new_status
        if new_status == BookingStatusEnum.CONFIRMED:
            booking.confirmed_at = utc_now()
        elif new_status == BookingStatusEnum.CANCELLED:
            booking.cancelled_at = utc_now()
            booking.cancellation_reason = reason
        await self.booking_repository.save(booking)

        await self._sync_lesson(booking)
        await self.audit_repository.create_outbox_event(
            aggregate_type="booking",
            aggregate_id=str(booking.id),
            event_type="booking.status.changed",
            payload=booking_event_payload(
                booking,
                from_status=previous.value,
                to_status=new_status.value,
                reason=reason,
            ),
        )

    async def _sync_lesson(self, booking: Booking) -> None:
        """Keep the linked lesson record in step with the booking."""
        lesson = await self.lessons_repository.get_lesson_by_booking_id(booking.id)

        if booking.status == BookingStatusEnum.CONFIRMED and lesson is None:
            await self.lessons_repository.create_lesson(
                booking_id=booking.id,
                student_id=booking.student_id,
                tutor_id=booking.tutor_id,
                lesson_date=booking.lesson_date,
                lesson_time=booking.lesson_time,
                duration_minutes=booking.duration_minutes,
                title="Lesson",
                status=LessonStatusEnum.SCHEDULED,
            )
        elif lesson is None:
            return
        elif booking.status == BookingStatusEnum.COMPLETED:
            await self.lessons_repository.update_lesson(lesson, status=LessonStatusEnum.COMPLETED)
        elif booking.status == BookingStatusEnum.CANCELLED:
            await self.lessons_repository.update_lesson(lesson, status=LessonStatusEnum.ARCHIVED)

    async def list_bookings(
        self,
        actor: Profile,
        limit: int,
        offset: int,
        status: BookingStatusEnum | None = None,
    ) -> tuple[list[Booking], int]:
        """List bookings where actor is the student or the tutor."""
        return await self.booking_repository.list_bookings(actor.id, actor.role, limit, offset, status)


async def get_booking_service(session: AsyncSession = Depends(get_db_session)) -> BookingService:
    """Dependency provider for booking service."""
    return BookingService(
        booking_repository=BookingRepository(session),
        availability_repository=AvailabilityRepository(session),
        profiles_repository=ProfilesRepository(session),
        lessons_repository=LessonsRepository(session),
        audit_repository=AuditRepository(session),
    )
