"""Core enums used across modules."""

from enum import StrEnum


class RoleEnum(StrEnum):
    """Profile roles."""

    STUDENT = "student"
    TUTOR = "tutor"


class BookingStatusEnum(StrEnum):
    """Booking lifecycle status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingPaymentStatusEnum(StrEnum):
    """Whether a booking has been paid for."""

    UNPAID = "unpaid"
    PAID = "paid"


class PaymentMethodEnum(StrEnum):
    """Payment provider used for a payment row."""

    STRIPE = "stripe"
    PAYPAL = "paypal"
    CASH = "cash"


class PaymentStatusEnum(StrEnum):
    """Payment processing status."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"


class LessonStatusEnum(StrEnum):
    """Lesson status."""

    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class HomeworkStatusEnum(StrEnum):
    """Homework submission status."""

    SUBMITTED = "submitted"
    MARKED = "marked"


class MeetingStatusEnum(StrEnum):
    """Video meeting status."""

    PENDING = "pending"
    ACTIVE = "active"
    ENDED = "ended"


class NotificationStatusEnum(StrEnum):
    """Notification delivery status."""

    PENDING = "pending"
    SENT = "sent"
    READ = "read"


class OutboxStatusEnum(StrEnum):
    """Outbox event status for integration publishing."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"
