from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from types import SimpleNamespace
from uuid import UUID, uuid4

import pytest
from sqlalchemy.exc import IntegrityError

import app.modules.payments.service as payments_service_module
from app.core.enums import (
    BookingPaymentStatusEnum,
    BookingStatusEnum,
    PaymentMethodEnum,
    PaymentStatusEnum,
    RoleEnum,
)
from app.modules.payments.gateways import (
    CaptureResult,
    CheckoutSession,
    PaymentGatewayRegistry,
    RefundResult,
    WebhookEvent,
    WebhookOutcome,
)
from app.modules.payments.schemas import (
    CaptureCreate,
    CheckoutCreate,
    ManualPaymentCreate,
    RefundCreate,
)
from app.modules.payments.service import PaymentsService, lesson_price
from app.shared.exceptions import (
    AuthenticationException,
    BusinessRuleException,
    InvalidInputException,
    UnauthorizedException,
    UpstreamFailureException,
)

NOW = datetime(2030, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _frozen_clock(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(payments_service_module, "utc_now", lambda: NOW)


def _booking(hourly_rate: Decimal | None = Decimal("30.00"), duration: int = 60, **fields) -> SimpleNamespace:
    defaults = {
        "id": uuid4(),
        "student_id": uuid4(),
        "tutor_id": uuid4(),
        "duration_minutes": duration,
        "status": BookingStatusEnum.PENDING,
        "payment_status": BookingPaymentStatusEnum.UNPAID,
        "tutor": SimpleNamespace(hourly_rate=hourly_rate),
    }
    defaults.update(fields)
    return SimpleNamespace(**defaults)


def _actor(profile_id: UUID, role: RoleEnum = RoleEnum.STUDENT) -> SimpleNamespace:
    return SimpleNamespace(id=profile_id, role=role, email="learner@example.com")


def _capture(booking, *, transaction_id: str = "pi_1", amount: str = "30.00", succeeded: bool = True) -> CaptureResult:
    return CaptureResult(
        provider=PaymentMethodEnum.STRIPE,
        transaction_id=transaction_id,
        succeeded=succeeded,
        provider_status="succeeded" if succeeded else "requires_payment_method",
        amount=Decimal(amount),
        currency="GBP",
        booking_id=booking.id if booking is not None else None,
    )


@dataclass
class FakePayment:
    id: UUID
    booking_id: UUID
    student_id: UUID
    tutor_id: UUID
    amount: Decimal
    currency: str
    payment_method: PaymentMethodEnum
    provider_transaction_id: str | None
    status: PaymentStatusEnum
    payment_date: datetime
    notes: str | None = None
    refunded_amount: Decimal | None = None
    refund_reference: str | None = None


class FakePaymentsRepository:
    def __init__(self) -> None:
        self.payments: list[FakePayment] = []
        self.failed_lookups: list[tuple[PaymentMethodEnum, tuple[str, ...]]] = []

    async def create_payment(self, **fields) -> FakePayment:
        payment = FakePayment(id=uuid4(), **fields)
        self.payments.append(payment)
        return payment

    async def get_payment_by_id(self, payment_id: UUID) -> FakePayment | None:
        return next((item for item in self.payments if item.id == payment_id), None)

    async def get_by_provider_transaction(self, provider, transaction_id: str) -> FakePayment | None:
        return next(
            (
                item
                for item in self.payments
                if item.payment_method == provider and item.provider_transaction_id == transaction_id
            ),
            None,
        )

    async def mark_failed_by_transactions(self, provider, transaction_ids) -> int:
        self.failed_lookups.append((provider, tuple(transaction_ids)))
        updated = 0
        for payment in self.payments:
            if payment.payment_method == provider and payment.provider_transaction_id in transaction_ids:
                payment.status = PaymentStatusEnum.FAILED
                updated += 1
        return updated

    async def save(self, payment: FakePayment) -> FakePayment:
        return payment


class FakeBookingRepository:
    def __init__(self, bookings) -> None:
        self.bookings = {item.id: item for item in bookings}
        self.locked: list[UUID] = []

    async def get_booking_by_id(self, booking_id: UUID, *, for_update: bool = False):
        if for_update:
            self.locked.append(booking_id)
        return self.bookings.get(booking_id)


class FakeBookingService:
    def __init__(self, bookings) -> None:
        self.booking_repository = FakeBookingRepository(bookings)
        self.paid: list[UUID] = []

    async def mark_paid(self, booking):
        booking.payment_status = BookingPaymentStatusEnum.PAID
        if booking.status == BookingStatusEnum.PENDING:
            booking.status = BookingStatusEnum.CONFIRMED
        self.paid.append(booking.id)
        return booking


@dataclass
class FakeAuditRepository:
    events: list[dict] = field(default_factory=list)

    async def create_outbox_event(self, **fields) -> None:
        self.events.append(fields)


class FakeGateway:
    def __init__(self, provider: PaymentMethodEnum) -> None:
        self.provider = provider
        self.checkouts = []
        self.capture_result: CaptureResult | None = None
        self.webhook_event: WebhookEvent | None = None
        self.webhook_error: Exception | None = None
        self.refunds: list[tuple[str, Decimal | None, str]] = []

    async def create_intent(self, request) -> CheckoutSession:
        self.checkouts.append(request)
        return CheckoutSession(provider=self.provider, reference="pi_new", status="requires_payment_method")

    async def capture(self, reference: str) -> CaptureResult:
        return self.capture_result

    async def verify_webhook(self, body: bytes, headers) -> WebhookEvent:
        if self.webhook_error is not None:
            raise self.webhook_error
        return self.webhook_event

    async def refund(self, transaction_id: str, amount: Decimal | None, currency: str) -> RefundResult:
        self.refunds.append((transaction_id, amount, currency))
        return RefundResult(provider=self.provider, refund_id="re_1", status="succeeded", amount=amount)


def _service(*bookings):
    repository = FakePaymentsRepository()
    booking_service = FakeBookingService(bookings)
    audit = FakeAuditRepository()
    stripe_gateway = FakeGateway(PaymentMethodEnum.STRIPE)
    paypal_gateway = FakeGateway(PaymentMethodEnum.PAYPAL)
    registry = PaymentGatewayRegistry(
        {PaymentMethodEnum.STRIPE: stripe_gateway, PaymentMethodEnum.PAYPAL: paypal_gateway},
    )
    service = PaymentsService(
        repository=repository,
        booking_service=booking_service,
        audit_repository=audit,
        gateways=registry,
    )
    return service, repository, booking_service, audit, stripe_gateway


def test_lesson_price_prorates_hourly_rate() -> None:
    assert lesson_price(_booking(Decimal("30.00"), duration=90)) == Decimal("45.00")
    assert lesson_price(_booking(Decimal("25.00"), duration=45)) == Decimal("18.75")


def test_lesson_price_falls_back_to_default_without_rate() -> None:
    assert lesson_price(_booking(None)) == Decimal("17.00")
    assert lesson_price(_booking(Decimal("0"))) == Decimal("17.00")


@pytest.mark.asyncio
async def test_checkout_uses_booking_price_and_stable_idempotency_key() -> None:
    booking = _booking(Decimal("40.00"), duration=30)
    service, _, _, _, stripe_gateway = _service(booking)

    session, _, amount = await service.start_checkout(
        CheckoutCreate(booking_id=booking.id, provider=PaymentMethodEnum.STRIPE),
        _actor(booking.student_id),
    )

    request = stripe_gateway.checkouts[0]
    assert session.reference == "pi_new"
    assert amount == Decimal("20.00")
    assert request.amount == Decimal("20.00")
    assert request.currency == "GBP"
    assert request.idempotency_key == f"checkout-stripe-{booking.id}"
    assert request.receipt_email == "learner@example.com"


@pytest.mark.asyncio
async def test_checkout_rejects_other_students_booking() -> None:
    booking = _booking()
    service, *_ = _service(booking)

    with pytest.raises(UnauthorizedException):
        await service.start_checkout(
            CheckoutCreate(booking_id=booking.id, provider=PaymentMethodEnum.STRIPE),
            _actor(uuid4()),
        )


@pytest.mark.asyncio
async def test_checkout_rejects_paid_or_cancelled_booking() -> None:
    paid = _booking(payment_status=BookingPaymentStatusEnum.PAID)
    cancelled = _booking(status=BookingStatusEnum.CANCELLED)
    service, *_ = _service(paid, cancelled)

    for booking in (paid, cancelled):
        with pytest.raises(BusinessRuleException):
            await service.start_checkout(
                CheckoutCreate(booking_id=booking.id, provider=PaymentMethodEnum.PAYPAL),
                _actor(booking.student_id),
            )


@pytest.mark.asyncio
async def test_checkout_rejects_cash_provider() -> None:
    booking = _booking()
    service, *_ = _service(booking)

    with pytest.raises(InvalidInputException):
        await service.start_checkout(
            CheckoutCreate(booking_id=booking.id, provider=PaymentMethodEnum.CASH),
            _actor(booking.student_id),
        )


@pytest.mark.asyncio
async def test_reconcile_records_payment_once_and_marks_booking_paid() -> None:
    booking = _booking()
    service, repository, booking_service, audit, _ = _service(booking)

    payment, created = await service.reconcile_capture(_capture(booking))
    again, created_again = await service.reconcile_capture(_capture(booking))

    assert created is True
    assert created_again is False
    assert again is payment
    assert len(repository.payments) == 1
    assert payment.status == PaymentStatusEnum.COMPLETED
    assert payment.payment_date == NOW
    assert payment.amount == Decimal("30.00")
    assert booking_service.paid == [booking.id]
    assert booking.payment_status == BookingPaymentStatusEnum.PAID
    assert booking.status == BookingStatusEnum.CONFIRMED
    assert booking_service.booking_repository.locked == [booking.id, booking.id]
    assert [event["event_type"] for event in audit.events] == ["payment.recorded"]


@pytest.mark.asyncio
async def test_reconcile_keeps_captured_amount_when_it_differs_from_price() -> None:
    booking = _booking(Decimal("30.00"))
    service, repository, *_ = _service(booking)

    payment, _ = await service.reconcile_capture(_capture(booking, amount="29.00"))

    assert payment.amount == Decimal("29.00")


@pytest.mark.asyncio
async def test_reconcile_requires_booking_reference() -> None:
    service, *_ = _service()

    with pytest.raises(BusinessRuleException):
        await service.reconcile_capture(_capture(None))


@pytest.mark.asyncio
async def test_confirm_capture_rejects_incomplete_payment() -> None:
    booking = _booking()
    service, repository, _, _, stripe_gateway = _service(booking)
    stripe_gateway.capture_result = _capture(booking, succeeded=False)

    with pytest.raises(BusinessRuleException):
        await service.confirm_capture(
            CaptureCreate(provider=PaymentMethodEnum.STRIPE, reference="pi_1"),
            _actor(booking.student_id),
        )
    assert repository.payments == []


@pytest.mark.asyncio
async def test_confirm_capture_checks_booking_owner() -> None:
    booking = _booking()
    service, _, _, _, stripe_gateway = _service(booking)
    stripe_gateway.capture_result = _capture(booking)

    with pytest.raises(UnauthorizedException):
        await service.confirm_capture(
            CaptureCreate(provider=PaymentMethodEnum.STRIPE, reference="pi_1"),
            _actor(uuid4()),
        )

    payment = await service.confirm_capture(
        CaptureCreate(provider=PaymentMethodEnum.STRIPE, reference="pi_1"),
        _actor(booking.student_id),
    )
    assert payment.provider_transaction_id == "pi_1"


@pytest.mark.asyncio
async def test_webhook_replay_is_reported_as_duplicate() -> None:
    booking = _booking()
    service, repository, _, _, stripe_gateway = _service(booking)
    stripe_gateway.webhook_event = WebhookEvent(
        provider=PaymentMethodEnum.STRIPE,
        event_id="evt_1",
        event_type="payment_intent.succeeded",
        outcome=WebhookOutcome.CAPTURE_COMPLETED,
        capture=_capture(booking),
    )

    first = await service.handle_webhook(PaymentMethodEnum.STRIPE, b"{}", {})
    second = await service.handle_webhook(PaymentMethodEnum.STRIPE, b"{}", {})

    assert first == "processed"
    assert second == "duplicate"
    assert len(repository.payments) == 1


@pytest.mark.asyncio
async def test_failed_webhook_marks_matching_payments() -> None:
    booking = _booking()
    service, repository, _, _, stripe_gateway = _service(booking)
    await service.reconcile_capture(_capture(booking, transaction_id="pi_7"))
    stripe_gateway.webhook_event = WebhookEvent(
        provider=PaymentMethodEnum.STRIPE,
        event_id="evt_2",
        event_type="payment_intent.payment_failed",
        outcome=WebhookOutcome.CAPTURE_FAILED,
        transaction_ids=("pi_7",),
    )

    outcome = await service.handle_webhook(PaymentMethodEnum.STRIPE, b"{}", {})

    assert outcome == "failed_marked"
    assert repository.payments[0].status == PaymentStatusEnum.FAILED


@pytest.mark.asyncio
async def test_failed_webhook_without_local_payment_is_ignored() -> None:
    service, _, _, _, stripe_gateway = _service()
    stripe_gateway.webhook_event = WebhookEvent(
        provider=PaymentMethodEnum.STRIPE,
        event_id="evt_3",
        event_type="payment_intent.payment_failed",
        outcome=WebhookOutcome.CAPTURE_FAILED,
        transaction_ids=("pi_unknown",),
    )

    assert await service.handle_webhook(PaymentMethodEnum.STRIPE, b"{}", {}) == "ignored"


@pytest.mark.asyncio
async def test_unrelated_webhook_event_is_ignored() -> None:
    service, _, _, _, stripe_gateway = _service()
    stripe_gateway.webhook_event = WebhookEvent(
        provider=PaymentMethodEnum.STRIPE,
        event_id="evt_4",
        event_type="customer.created",
        outcome=WebhookOutcome.IGNORED,
    )

    assert await service.handle_webhook(PaymentMethodEnum.STRIPE, b"{}", {}) == "ignored"


@pytest.mark.asyncio
async def test_webhook_signature_failure_propagates() -> None:
    service, _, _, _, stripe_gateway = _service()
    stripe_gateway.webhook_error = AuthenticationException("Invalid Stripe signature")

    with pytest.raises(AuthenticationException):
        await service.handle_webhook(PaymentMethodEnum.STRIPE, b"{}", {})


@pytest.mark.asyncio
async def test_webhook_processing_error_is_upstream_failure() -> None:
    service, _, _, _, stripe_gateway = _service()
    stripe_gateway.webhook_event = WebhookEvent(
        provider=PaymentMethodEnum.STRIPE,
        event_id="evt_5",
        event_type="payment_intent.succeeded",
        outcome=WebhookOutcome.CAPTURE_COMPLETED,
        capture=_capture(SimpleNamespace(id=uuid4())),
    )

    with pytest.raises(UpstreamFailureException):
        await service.handle_webhook(PaymentMethodEnum.STRIPE, b"{}", {})


@pytest.mark.asyncio
async def test_manual_payment_defaults_to_lesson_price() -> None:
    booking = _booking(Decimal("20.00"))
    service, repository, booking_service, audit, _ = _service(booking)

    payment = await service.record_manual_payment(
        ManualPaymentCreate(booking_id=booking.id, notes="paid at the door"),
        _actor(booking.tutor_id, RoleEnum.TUTOR),
    )

    assert payment.amount == Decimal("20.00")
    assert payment.payment_method == PaymentMethodEnum.CASH
    assert payment.notes == "paid at the door"
    assert booking_service.paid == [booking.id]
    assert audit.events[0]["event_type"] == "payment.recorded"


@pytest.mark.asyncio
async def test_manual_payment_is_tutor_only() -> None:
    booking = _booking()
    service, *_ = _service(booking)

    with pytest.raises(UnauthorizedException):
        await service.record_manual_payment(
            ManualPaymentCreate(booking_id=booking.id),
            _actor(booking.student_id),
        )
    with pytest.raises(UnauthorizedException):
        await service.record_manual_payment(
            ManualPaymentCreate(booking_id=booking.id),
            _actor(uuid4(), RoleEnum.TUTOR),
        )


@pytest.mark.asyncio
async def test_refund_goes_through_provider_and_emits_event() -> None:
    booking = _booking()
    service, _, _, audit, stripe_gateway = _service(booking)
    payment, _ = await service.reconcile_capture(_capture(booking, transaction_id="pi_9"))

    refunded = await service.refund_payment(
        payment.id,
        RefundCreate(amount=Decimal("10.00")),
        _actor(booking.tutor_id, RoleEnum.TUTOR),
    )

    assert stripe_gateway.refunds == [("pi_9", Decimal("10.00"), "GBP")]
    assert refunded.status == PaymentStatusEnum.PARTIALLY_REFUNDED
    assert refunded.refunded_amount == Decimal("10.00")
    assert refunded.refund_reference == "re_1"
    assert audit.events[-1]["event_type"] == "payment.refunded"


@pytest.mark.asyncio
async def test_refund_rejects_excess_amount_and_non_completed_payment() -> None:
    booking = _booking()
    service, *_ = _service(booking)
    payment, _ = await service.reconcile_capture(_capture(booking))
    tutor = _actor(booking.tutor_id, RoleEnum.TUTOR)

    with pytest.raises(BusinessRuleException):
        await service.refund_payment(payment.id, RefundCreate(amount=Decimal("99.00")), tutor)

    await service.refund_payment(payment.id, RefundCreate(), tutor)
    with pytest.raises(BusinessRuleException):
        await service.refund_payment(payment.id, RefundCreate(), tutor)


@pytest.mark.asyncio
async def test_partial_refunds_accumulate_until_fully_refunded() -> None:
    booking = _booking()
    service, _, _, audit, stripe_gateway = _service(booking)
    payment, _ = await service.reconcile_capture(_capture(booking, transaction_id="pi_10"))
    tutor = _actor(booking.tutor_id, RoleEnum.TUTOR)

    await service.refund_payment(payment.id, RefundCreate(amount=Decimal("10.00")), tutor)
    with pytest.raises(BusinessRuleException):
        await service.refund_payment(payment.id, RefundCreate(amount=Decimal("25.00")), tutor)
    refunded = await service.refund_payment(payment.id, RefundCreate(), tutor)

    assert refunded.status == PaymentStatusEnum.REFUNDED
    assert refunded.refunded_amount == Decimal("30.00")
    assert stripe_gateway.refunds == [("pi_10", Decimal("10.00"), "GBP"), ("pi_10", Decimal("20.00"), "GBP")]
    assert [event["payload"]["amount"] for event in audit.events[1:]] == ["10.00", "20.00"]
    assert audit.events[-1]["payload"]["refunded_total"] == "30.00"
    with pytest.raises(BusinessRuleException):
        await service.refund_payment(payment.id, RefundCreate(amount=Decimal("1.00")), tutor)


class ConcurrentInsertRepository(FakePaymentsRepository):
    """Another transaction commits the same capture between lookup and insert."""

    async def create_payment(self, **fields) -> FakePayment:
        self.payments.append(FakePayment(id=uuid4(), **fields))
        raise IntegrityError("INSERT INTO payments", {}, Exception("uq_payments_provider_transaction"))


@pytest.mark.asyncio
async def test_reconcile_returns_concurrently_recorded_payment() -> None:
    booking = _booking()
    service, _, booking_service, audit, _ = _service(booking)
    service.repository = ConcurrentInsertRepository()

    payment, created = await service.reconcile_capture(_capture(booking))

    assert created is False
    assert payment is service.repository.payments[0]
    assert booking_service.booking_repository.locked == [booking.id]
    assert booking_service.paid == []
    assert audit.events == []


@pytest.mark.asyncio
async def test_concurrent_webhook_insert_is_reported_as_duplicate() -> None:
    booking = _booking()
    service, _, _, _, stripe_gateway = _service(booking)
    service.repository = ConcurrentInsertRepository()
    stripe_gateway.webhook_event = WebhookEvent(
        provider=PaymentMethodEnum.STRIPE,
        event_id="evt_6",
        event_type="payment_intent.succeeded",
        outcome=WebhookOutcome.CAPTURE_COMPLETED,
        capture=_capture(booking),
    )

    assert await service.handle_webhook(PaymentMethodEnum.STRIPE, b"{}", {}) == "duplicate"


@pytest.mark.asyncio
async def test_unexplained_integrity_error_propagates() -> None:
    booking = _booking()
    service, repository, *_ = _service(booking)

    async def failing_insert(**fields):
        raise IntegrityError("INSERT INTO payments", {}, Exception("fk violation"))

    repository.create_payment = failing_insert

    with pytest.raises(IntegrityError):
        await service.reconcile_capture(_capture(booking))
