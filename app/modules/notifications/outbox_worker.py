"""Outbox consumer that materializes domain events into notifications."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from app.core.enums import NotificationStatusEnum
from app.modules.audit.models import OutboxEvent
from app.modules.audit.repository import AuditRepository
from app.modules.notifications.repository import NotificationsRepository
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class NotificationMessage:
    user_id: UUID
    title: str
    body: str
    channel: str = "email"


def _lesson_slot(payload: dict) -> str:
    return f"{payload.get('lesson_date', '?')} at {payload.get('lesson_time', '?')}"


class NotificationsOutboxWorker:
    """Process outbox events and create user notifications."""

    def __init__(
        self,
        audit_repository: AuditRepository,
        notifications_repository: NotificationsRepository,
        *,
        batch_size: int = 100,
        max_retries: int = 5,
        base_backoff_seconds: int = 30,
        max_backoff_seconds: int = 300,
        now_provider: Callable[[], datetime] = utc_now,
    ) -> None:
        self.audit_repository = audit_repository
        self.notifications_repository = notifications_repository
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.now_provider = now_provider
        self._builders: dict[str, Callable[[dict], list[NotificationMessage]]] = {
            "booking.created": self._booking_created,
            "booking.status.changed": self._booking_status_changed,
            "payment.recorded": self._payment_recorded,
            "payment.refunded": self._payment_refunded,
            "homework.submitted": self._homework_submitted,
            "homework.marked": self._homework_marked,
        }

    async def run_once(self) -> dict[str, int]:
        """Run one processing cycle."""
        stats = {"requeued": 0, "processed": 0, "failed": 0, "dispatched": 0}
        stats["requeued"] = await self._requeue_retryable_failed_events()

        events = await self.audit_repository.list_pending_outbox(limit=self.batch_size)
        for event in events:
            try:
                messages = self._build_messages(event)
                for message in messages:
                    notification = await self.notifications_repository.create_notification(
                        user_id=message.user_id,
                        channel=message.channel,
                        title=message.title,
                        body=message.body,
                        event_id=event.id,
                    )
                    await self.notifications_repository.set_status(
                        notification,
                        NotificationStatusEnum.SENT,
                        self.now_provider(),
                    )
                    stats["dispatched"] += 1

                await self.audit_repository.mark_outbox_processed(event, self.now_provider())
                stats["processed"] += 1
            except Exception as exc:
                logger.warning("Outbox event %s (%s) failed: %s", event.id, event.event_type, exc)
                await self.audit_repository.mark_outbox_failed(event, str(exc))
                stats["failed"] += 1
        return stats

    async def _requeue_retryable_failed_events(self) -> int:
        now = self.now_provider()
        failed_events = await self.audit_repository.list_failed_outbox(
            limit=self.batch_size,
            max_retries=self.max_retries,
        )
        requeued = 0
        for event in failed_events:
            if self._is_backoff_elapsed(event, now):
                await self.audit_repository.mark_outbox_pending(event)
                requeued += 1
        return requeued

    def _is_backoff_elapsed(self, event: OutboxEvent, now: datetime) -> bool:
        retries = max(event.retries, 1)
        backoff_seconds = min(
            self.max_backoff_seconds,
            self.base_backoff_seconds * (2 ** (retries - 1)),
        )
        last_attempt_at = event.updated_at or event.occurred_at
        return now >= last_attempt_at + timedelta(seconds=backoff_seconds)

    def _build_messages(self, event: OutboxEvent) -> list[NotificationMessage]:
        builder = self._builders.get(event.event_type)
        if builder is None:
            return []
        return builder(event.payload or {})

    def _booking_created(self, payload: dict) -> list[NotificationMessage]:
        if payload.get("point_of_sale"):
            return [
                NotificationMessage(
                    user_id=self._required_uuid(payload, "student_id"),
                    title="Lesson booked for you",
                    body=f"Your tutor booked a lesson for {_lesson_slot(payload)}.",
                ),
            ]
        student_name = payload.get("student_name") or "A student"
        return [
            NotificationMessage(
                user_id=self._required_uuid(payload, "tutor_id"),
                title="New booking",
                body=f"{student_name} booked a lesson for {_lesson_slot(payload)}.",
            ),
        ]

    def _booking_status_changed(self, payload: dict) -> list[NotificationMessage]:
        to_status = payload.get("to_status", "updated")
        body = f"Your lesson on {_lesson_slot(payload)} is now {to_status}."
        if payload.get("reason"):
            body = f"{body} Reason: {payload['reason']}"
        return [
            NotificationMessage(
                user_id=self._required_uuid(payload, "student_id"),
                title=f"Booking {to_status}",
                body=body,
            ),
        ]

    def _payment_recorded(self, payload: dict) -> list[NotificationMessage]:
        return [
            NotificationMessage(
                user_id=self._required_uuid(payload, "student_id"),
                title="Payment received",
                body=(
                    f"We received {payload.get('amount', '?')} {payload.get('currency', '')} "
                    f"for booking {payload.get('booking_id', 'unknown')}."
                ),
            ),
        ]

    def _payment_refunded(self, payload: dict) -> list[NotificationMessage]:
        return [
            NotificationMessage(
                user_id=self._required_uuid(payload, "student_id"),
                title="Payment refunded",
                body=(
                    f"{payload.get('amount', '?')} {payload.get('currency', '')} was refunded "
                    f"for booking {payload.get('booking_id', 'unknown')}."
                ),
            ),
        ]

    def _homework_submitted(self, payload: dict) -> list[NotificationMessage]:
        return [
            NotificationMessage(
                user_id=self._required_uuid(payload, "tutor_id"),
                title="Homework submitted",
                body=f"New homework was submitted for lesson {payload.get('lesson_id', 'unknown')}.",
            ),
        ]

    def _homework_marked(self, payload: dict) -> list[NotificationMessage]:
        return [
            NotificationMessage(
                user_id=self._required_uuid(payload, "student_id"),
                title="Homework marked",
                body=f"Your homework for lesson {payload.get('lesson_id', 'unknown')} has feedback.",
            ),
        ]

    @staticmethod
    def _required_uuid(payload: dict, key: str) -> UUID:
        value = payload.get(key)
        if value is None:
            raise ValueError(f"Missing required key: {key}")
        return UUID(str(value))
