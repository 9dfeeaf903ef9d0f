from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from app.core.enums import NotificationStatusEnum, OutboxStatusEnum
from app.modules.notifications.outbox_worker import NotificationsOutboxWorker

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


@dataclass
class FakeOutboxEvent:
    id: UUID
    event_type: str
    payload: dict
    status: OutboxStatusEnum = OutboxStatusEnum.PENDING
    retries: int = 0
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    processed_at: datetime | None = None
    error_message: str | None = None


@dataclass
class FakeNotification:
    id: UUID
    user_id: UUID
    channel: str
    title: str
    body: str
    event_id: UUID | None = None
    status: NotificationStatusEnum = NotificationStatusEnum.PENDING
    sent_at: datetime | None = None


class FakeAuditRepository:
    def __init__(self, events: list[FakeOutboxEvent]) -> None:
        self.events = events

    async def list_pending_outbox(self, limit: int) -> list[FakeOutboxEvent]:
        return [event for event in self.events if event.status == OutboxStatusEnum.PENDING][:limit]

    async def list_failed_outbox(self, limit: int, max_retries: int) -> list[FakeOutboxEvent]:
        return [
            event
            for event in self.events
            if event.status == OutboxStatusEnum.FAILED and event.retries < max_retries
        ][:limit]

    async def mark_outbox_pending(self, event: FakeOutboxEvent) -> FakeOutboxEvent:
        event.status = OutboxStatusEnum.PENDING
        event.error_message = None
        event.updated_at = datetime.now(UTC)
        return event

    async def mark_outbox_processed(
        self,
        event: FakeOutboxEvent,
        processed_at: datetime,
    ) -> FakeOutboxEvent:
        event.status = OutboxStatusEnum.PROCESSED
        event.processed_at = processed_at
        event.error_message = None
        event.updated_at = processed_at
        return event

    async def mark_outbox_failed(
        self,
        event: FakeOutboxEvent,
        error_message: str,
    ) -> FakeOutboxEvent:
        event.status = OutboxStatusEnum.FAILED
        event.retries += 1
        event.error_message = error_message
        event.updated_at = datetime.now(UTC)
        return event


class FakeNotificationsRepository:
    def __init__(self) -> None:
        self.notifications: list[FakeNotification] = []

    async def create_notification(
        self,
        user_id: UUID,
        channel: str,
        title: str,
        body: str,
        event_id: UUID | None = None,
    ) -> FakeNotification:
        notification = FakeNotification(
            id=uuid4(),
            user_id=user_id,
            channel=channel,
            title=title,
            body=body,
            event_id=event_id,
        )
        self.notifications.append(notification)
        return notification

    async def set_status(
        self,
        notification: FakeNotification,
        status: NotificationStatusEnum,
        at: datetime,
    ) -> FakeNotification:
        notification.status = status
        if status == NotificationStatusEnum.SENT:
            notification.sent_at = at
        return notification


def make_worker(
    events: list[FakeOutboxEvent],
    *,
    now: datetime = NOW,
    base_backoff_seconds: int = 30,
) -> tuple[NotificationsOutboxWorker, FakeAuditRepository, FakeNotificationsRepository]:
    audit_repo = FakeAuditRepository(events)
    notifications_repo = FakeNotificationsRepository()
    worker = NotificationsOutboxWorker(
        audit_repository=audit_repo,  # type: ignore[arg-type]
        notifications_repository=notifications_repo,  # type: ignore[arg-type]
        now_provider=lambda: now,
        base_backoff_seconds=base_backoff_seconds,
    )
    return worker, audit_repo, notifications_repo


def _booking_payload(**extra) -> dict:
    payload = {
        "booking_id": str(uuid4()),
        "student_id": str(uuid4()),
        "tutor_id": str(uuid4()),
        "lesson_date": "2026-10-26",
        "lesson_time": "10:00",
    }
    payload.update(extra)
    return payload


@pytest.mark.asyncio
async def test_student_booking_notifies_tutor() -> None:
    payload = _booking_payload(student_name="Sam")
    event = FakeOutboxEvent(id=uuid4(), event_type="booking.created", payload=payload)
    worker, _, notifications_repo = make_worker([event])

    stats = await worker.run_once()

    assert stats == {"requeued": 0, "processed": 1, "failed": 0, "dispatched": 1}
    assert event.status == OutboxStatusEnum.PROCESSED
    notification = notifications_repo.notifications[0]
    assert notification.user_id == UUID(payload["tutor_id"])
    assert notification.title == "New booking"
    assert "Sam" in notification.body
    assert notification.event_id == event.id
    assert notification.status == NotificationStatusEnum.SENT
    assert notification.sent_at == NOW


@pytest.mark.asyncio
async def test_point_of_sale_booking_notifies_student() -> None:
    payload = _booking_payload(point_of_sale=True)
    event = FakeOutboxEvent(id=uuid4(), event_type="booking.created", payload=payload)
    worker, _, notifications_repo = make_worker([event])

    await worker.run_once()

    assert notifications_repo.notifications[0].user_id == UUID(payload["student_id"])
    assert notifications_repo.notifications[0].title == "Lesson booked for you"


@pytest.mark.asyncio
async def test_status_change_notifies_student_with_reason() -> None:
    payload = _booking_payload(to_status="cancelled", reason="Tutor unwell")
    event = FakeOutboxEvent(id=uuid4(), event_type="booking.status.changed", payload=payload)
    worker, _, notifications_repo = make_worker([event])

    await worker.run_once()

    notification = notifications_repo.notifications[0]
    assert notification.user_id == UUID(payload["student_id"])
    assert notification.title == "Booking cancelled"
    assert notification.body.endswith("Reason: Tutor unwell")


@pytest.mark.parametrize(
    ("event_type", "recipient_key", "title"),
    [
        ("payment.recorded", "student_id", "Payment received"),
        ("payment.refunded", "student_id", "Payment refunded"),
        ("homework.submitted", "tutor_id", "Homework submitted"),
        ("homework.marked", "student_id", "Homework marked"),
    ],
)
@pytest.mark.asyncio
async def test_payment_and_homework_events_reach_expected_party(
    event_type: str,
    recipient_key: str,
    title: str,
) -> None:
    payload = {
        "student_id": str(uuid4()),
        "tutor_id": str(uuid4()),
        "booking_id": str(uuid4()),
        "lesson_id": str(uuid4()),
        "amount": "17.00",
        "currency": "GBP",
    }
    event = FakeOutboxEvent(id=uuid4(), event_type=event_type, payload=payload)
    worker, _, notifications_repo = make_worker([event])

    stats = await worker.run_once()

    assert stats["dispatched"] == 1
    assert notifications_repo.notifications[0].user_id == UUID(payload[recipient_key])
    assert notifications_repo.notifications[0].title == title


@pytest.mark.asyncio
async def test_worker_processes_unknown_event_without_dispatch() -> None:
    event = FakeOutboxEvent(
        id=uuid4(),
        event_type="unknown.event",
        payload={},
    )
    worker, _, notifications_repo = make_worker([event])

    stats = await worker.run_once()

    assert stats == {"requeued": 0, "processed": 1, "failed": 0, "dispatched": 0}
    assert event.status == OutboxStatusEnum.PROCESSED
    assert notifications_repo.notifications == []


@pytest.mark.asyncio
async def test_worker_requeues_failed_event_after_backoff() -> None:
    event = FakeOutboxEvent(
        id=uuid4(),
        event_type="booking.status.changed",
        payload=_booking_payload(to_status="confirmed"),
        status=OutboxStatusEnum.FAILED,
        retries=1,
        occurred_at=NOW - timedelta(minutes=10),
        updated_at=NOW - timedelta(minutes=2),
    )
    worker, _, notifications_repo = make_worker([event], base_backoff_seconds=30)

    stats = await worker.run_once()

    assert stats["requeued"] == 1
    assert stats["processed"] == 1
    assert event.status == OutboxStatusEnum.PROCESSED
    assert len(notifications_repo.notifications) == 1


@pytest.mark.asyncio
async def test_worker_waits_for_backoff_before_requeue() -> None:
    event = FakeOutboxEvent(
        id=uuid4(),
        event_type="booking.status.changed",
        payload=_booking_payload(to_status="confirmed"),
        status=OutboxStatusEnum.FAILED,
        retries=3,
        occurred_at=NOW - timedelta(minutes=10),
        updated_at=NOW - timedelta(seconds=90),
    )
    worker, _, notifications_repo = make_worker([event], base_backoff_seconds=30)

    stats = await worker.run_once()

    assert stats == {"requeued": 0, "processed": 0, "failed": 0, "dispatched": 0}
    assert event.status == OutboxStatusEnum.FAILED
    assert notifications_repo.notifications == []


@pytest.mark.asyncio
async def test_worker_marks_event_failed_when_payload_invalid() -> None:
    event = FakeOutboxEvent(
        id=uuid4(),
        event_type="payment.recorded",
        payload={"amount": "17.00"},
    )
    worker, _, notifications_repo = make_worker([event])

    stats = await worker.run_once()

    assert stats["processed"] == 0
    assert stats["failed"] == 1
    assert event.status == OutboxStatusEnum.FAILED
    assert event.retries == 1
    assert "student_id" in event.error_message
    assert notifications_repo.notifications == []
