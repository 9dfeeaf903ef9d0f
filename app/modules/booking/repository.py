"""Booking repository layer."""

from __future__ import annotations

from datetime import date, time
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.enums import BookingStatusEnum, RoleEnum
from app.modules.booking.models import Booking

ACTIVE_BOOKING_STATUSES = (BookingStatusEnum.PENDING, BookingStatusEnum.CONFIRMED)


class BookingRepository:
    """DB operations for booking domain."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_booking(
        self,
        student_id: UUID,
        tutor_id: UUID,
        lesson_date: date,
        lesson_time: time,
        duration_minutes: int,
        created_by_id: UUID | None,
        notes: str | None = None,
    ) -> Booking:
        booking = Booking(
            student_id=student_id,
            tutor_id=tutor_id,
            lesson_date=lesson_date,
            lesson_time=lesson_time,
            duration_minutes=duration_minutes,
            created_by_id=created_by_id,
            notes=notes,
            status=BookingStatusEnum.PENDING,
        )
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_booking_by_id(self, booking_id: UUID, *, for_update: bool = False) -> Booking | None:
        stmt = (
            select(Booking)
            .options(selectinload(Booking.tutor), selectinload(Booking.student))
            .where(Booking.id == booking_id)
        )
        if for_update:
            stmt = stmt.with_for_update(of=Booking)
        return await self.session.scalar(stmt)

    async def list_bookings(
        self,
        user_id: UUID,
        role: RoleEnum,
        limit: int,
        offset: int,
        status: BookingStatusEnum | None = None,
    ) -> tuple[list[Booking], int]:
        base_stmt: Select[tuple[Booking]] = select(Booking).options(
            selectinload(Booking.tutor),
            selectinload(Booking.student),
        )
        if role == RoleEnum.TUTOR:
            base_stmt = base_stmt.where(Booking.tutor_id == user_id)
        else:
            base_stmt = base_stmt.where(Booking.student_id == user_id)
        if status is not None:
            base_stmt = base_stmt.where(Booking.status == status)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = (
            base_stmt.order_by(Booking.lesson_date.desc(), Booking.lesson_time.desc())
            .limit(limit)
            .offset(offset)
        )
        items = (await self.session.scalars(stmt)).all()
        return items, total

    async def lock_tutor_day(self, tutor_id: UUID, lesson_date: date) -> None:
        """Transaction-scoped advisory lock serializing writes to one tutor day.

        Row locks alone miss the first booking of an empty day.
        """
        key = func.hashtext(f"booking:{tutor_id}:{lesson_date.isoformat()}")
        await self.session.execute(select(func.pg_advisory_xact_lock(key)))

    async def list_active_bookings_for_day(
        self,
        tutor_id: UUID,
        lesson_date: date,
        *,
        for_update: bool = False,
    ) -> list[Booking]:
        """Pending and confirmed bookings that occupy tutor time on a date."""
        stmt = select(Booking).where(
            Booking.tutor_id == tutor_id,
            Booking.lesson_date == lesson_date,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        if for_update:
            stmt = stmt.with_for_update()
        return (await self.session.scalars(stmt.order_by(Booking.lesson_time.asc()))).all()

    async def save(self, booking: Booking) -> Booking:
        await self.session.flush()
        return booking
