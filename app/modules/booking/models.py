"""Booking ORM models."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, DateTime, Enum as SAEnum, ForeignKey, Index, Integer, String, Time, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, BaseModelMixin
from app.core.enums import BookingPaymentStatusEnum, BookingStatusEnum

if TYPE_CHECKING:
    from app.modules.profiles.models import Profile


class Booking(BaseModelMixin, Base):
    """Lesson booking occupying one tutor slot."""

    __tablename__ = "bookings"
    __table_args__ = (
        Index(
            "uq_bookings_tutor_active_slot",
            "tutor_id",
            "lesson_date",
            "lesson_time",
            unique=True,
            postgresql_where=text("status IN ('pending', 'confirmed')"),
        ),
        Index("ix_bookings_tutor_date", "tutor_id", "lesson_date"),
    )

    student_id: Mapped[UUID] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    tutor_id: Mapped[UUID] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
    )

    lesson_date: Mapped[date] = mapped_column(Date, nullable=False)
    lesson_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    notes: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    status: Mapped[BookingStatusEnum] = mapped_column(
        SAEnum(BookingStatusEnum, name="booking_status_enum", native_enum=False),
        default=BookingStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    payment_status: Mapped[BookingPaymentStatusEnum] = mapped_column(
        SAEnum(BookingPaymentStatusEnum, name="booking_payment_status_enum", native_enum=False),
        default=BookingPaymentStatusEnum.UNPAID,
        nullable=False,
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)

    student: Mapped["Profile"] = relationship(foreign_keys=[student_id], lazy="raise")
    tutor: Mapped["Profile"] = relationship(foreign_keys=[tutor_id], lazy="raise")
