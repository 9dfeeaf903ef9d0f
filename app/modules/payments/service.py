"""Payments business logic: checkout, capture reconciliation, webhooks, refunds."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import (
    BookingPaymentStatusEnum,
    BookingStatusEnum,
    PaymentMethodEnum,
    PaymentStatusEnum,
    RoleEnum,
)
from app.core.metrics import record_payment, record_webhook_outcome
from app.modules.audit.repository import AuditRepository
from app.modules.booking.models import Booking
from app.modules.booking.service import BookingService, get_booking_service
from app.modules.payments.gateways import (
    CaptureResult,
    CheckoutRequest,
    CheckoutSession,
    PaymentGatewayRegistry,
    WebhookOutcome,
)
from app.modules.payments.models import Payment
from app.modules.payments.repository import PaymentsRepository
from app.modules.payments.schemas import (
    CaptureCreate,
    CheckoutCreate,
    ManualPaymentCreate,
    RefundCreate,
)
from app.modules.profiles.models import Profile
from app.shared.exceptions import (
    AppException,
    BusinessRuleException,
    InvalidInputException,
    NotFoundException,
    UnauthorizedException,
    UpstreamFailureException,
)
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)
settings = get_settings()

ONLINE_PROVIDERS = frozenset({PaymentMethodEnum.STRIPE, PaymentMethodEnum.PAYPAL})
CENT = Decimal("0.01")
REFUNDABLE_STATUSES = frozenset({PaymentStatusEnum.COMPLETED, PaymentStatusEnum.PARTIALLY_REFUNDED})


def lesson_price(booking: Booking) -> Decimal:
    """Tutor hourly rate prorated to lesson length, else configured default."""
    hourly_rate = booking.tutor.hourly_rate
    if hourly_rate is None or hourly_rate <= 0:
        return settings.default_lesson_price.quantize(CENT)
    return (Decimal(hourly_rate) * booking.duration_minutes / 60).quantize(CENT)


class PaymentsService:
    """Payments domain service."""

    def __init__(
        self,
        repository: PaymentsRepository,
        booking_service: BookingService,
        audit_repository: AuditRepository,
        gateways: PaymentGatewayRegistry,
    ) -> None:
        self.repository = repository
        self.booking_service = booking_service
        self.booking_repository = booking_service.booking_repository
        self.audit_repository = audit_repository
        self.gateways = gateways

    @staticmethod
    def _require_online(provider: PaymentMethodEnum) -> None:
        if provider not in ONLINE_PROVIDERS:
            raise InvalidInputException("provider must be stripe or paypal")

    async def _get_booking(self, booking_id: UUID, *, for_update: bool = False) -> Booking:
        booking = await self.booking_repository.get_booking_by_id(booking_id, for_update=for_update)
        if booking is None:
            raise NotFoundException("Booking not found")
        return booking

    @staticmethod
    def _ensure_payable(booking: Booking) -> None:
        if booking.payment_status == BookingPaymentStatusEnum.PAID:
            raise BusinessRuleException("Booking is already paid")
        if booking.status in (BookingStatusEnum.CANCELLED, BookingStatusEnum.COMPLETED):
            raise BusinessRuleException(f"Booking is {booking.status.value} and cannot be paid")

    async def start_checkout(self, payload: CheckoutCreate, actor: Profile) -> tuple[CheckoutSession, Booking, Decimal]:
        """Create provider-side payment for student's own booking."""
        self._require_online(payload.provider)
        booking = await self._get_booking(payload.booking_id)
        if booking.student_id != actor.id:
            raise UnauthorizedException("You can only pay for your own bookings")
        self._ensure_payable(booking)

        amount = lesson_price(booking)
        session = await self.gateways.get(payload.provider).create_intent(
            CheckoutRequest(
                booking_id=booking.id,
                student_id=booking.student_id,
                tutor_id=booking.tutor_id,
                amount=amount,
                currency=settings.payment_currency,
                description=f"Tutoring session payment - Booking {booking.id}",
                idempotency_key=f"checkout-{payload.provider.value}-{booking.id}",
                receipt_email=actor.email,
            ),
        )
        logger.info("Started %s checkout %s for booking %s", payload.provider, session.reference, booking.id)
        return session, booking, amount

    async def confirm_capture(self, payload: CaptureCreate, actor: Profile) -> Payment:
        """Client-side completion path: capture/look up then reconcile."""
        self._require_online(payload.provider)
        capture = await self.gateways.get(payload.provider).capture(payload.reference)
        if not capture.succeeded:
            raise BusinessRuleException(f"Payment not completed (status: {capture.provider_status})")
        if capture.booking_id is None:
            raise BusinessRuleException("Payment is not linked to a booking")

        booking = await self._get_booking(capture.booking_id)
        if booking.student_id != actor.id:
            raise UnauthorizedException("You can only confirm payments for your own bookings")

        payment, _ = await self.reconcile_capture(capture)
        return payment

    async def reconcile_capture(self, capture: CaptureResult) -> tuple[Payment, bool]:
        """Insert payment once per provider transaction and mark booking paid.

        The booking row lock serializes concurrent captures of the same
        transaction; the unique provider-transaction index backs it up.
        Returns the payment and whether it was created by this call.
        """
        if capture.booking_id is None:
            existing = await self.repository.get_by_provider_transaction(capture.provider, capture.transaction_id)
            if existing is not None:
                return existing, False
            raise BusinessRuleException("Payment is not linked to a booking")
        booking = await self._get_booking(capture.booking_id, for_update=True)

        existing = await self.repository.get_by_provider_transaction(capture.provider, capture.transaction_id)
        if existing is not None:
            logger.info("Payment %s for %s already recorded", capture.transaction_id, capture.provider)
            return existing, False

        expected = lesson_price(booking)
        if capture.amount != expected:
            logger.warning(
                "Captured amount %s %s differs from price %s for booking %s",
                capture.amount,
                capture.currency,
                expected,
                booking.id,
            )

        try:
            payment = await self.repository.create_payment(
                booking_id=booking.id,
                student_id=booking.student_id,
                tutor_id=booking.tutor_id,
                amount=capture.amount,
                currency=capture.currency or settings.payment_currency,
                payment_method=capture.provider,
                provider_transaction_id=capture.transaction_id,
                status=PaymentStatusEnum.COMPLETED,
                payment_date=utc_now(),
            )
        except IntegrityError:
            existing = await self.repository.get_by_provider_transaction(capture.provider, capture.transaction_id)
            if existing is None:
                raise
            logger.info("Payment %s for %s recorded concurrently", capture.transaction_id, capture.provider)
            return existing, False

        await self.booking_service.mark_paid(booking)
        await self._emit_payment_recorded(payment)
        return payment, True

    async def handle_webhook(
        self,
        provider: PaymentMethodEnum,
        body: bytes,
        headers: Mapping[str, str],
    ) -> str:
        """Verify and apply one provider webhook delivery; return outcome label."""
        try:
            event = await self.gateways.get(provider).verify_webhook(body, headers)
        except AppException:
            record_webhook_outcome(provider.value, "rejected")
            raise

        try:
            if event.outcome == WebhookOutcome.CAPTURE_COMPLETED and event.capture is not None:
                _, created = await self.reconcile_capture(event.capture)
                outcome = "processed" if created else "duplicate"
            elif event.outcome == WebhookOutcome.CAPTURE_FAILED:
                updated = await self.repository.mark_failed_by_transactions(provider, event.transaction_ids)
                outcome = "failed_marked" if updated else "ignored"
            else:
                outcome = "ignored"
        except AppException as exc:
            logger.error("Webhook %s (%s) from %s failed: %s", event.event_id, event.event_type, provider, exc.message)
            record_webhook_outcome(provider.value, "error")
            raise UpstreamFailureException("Webhook processing failed") from exc

        logger.info("Webhook %s (%s) from %s: %s", event.event_id, event.event_type, provider, outcome)
        record_webhook_outcome(provider.value, outcome)
        return outcome

    async def record_manual_payment(self, payload: ManualPaymentCreate, actor: Profile) -> Payment:
        """Tutor point-of-sale: record money taken outside online checkout."""
        if actor.role != RoleEnum.TUTOR:
            raise UnauthorizedException("Only tutors can record payments")
        booking = await self._get_booking(payload.booking_id, for_update=True)
        if booking.tutor_id != actor.id:
            raise UnauthorizedException("You can only record payments for your own bookings")
        self._ensure_payable(booking)

        if payload.provider_transaction_id:
            existing = await self.repository.get_by_provider_transaction(
                payload.payment_method,
                payload.provider_transaction_id,
            )
            if existing is not None:
                return existing

        payment = await self.repository.create_payment(
            booking_id=booking.id,
            student_id=booking.student_id,
            tutor_id=booking.tutor_id,
            amount=payload.amount or lesson_price(booking),
            currency=settings.payment_currency,
            payment_method=payload.payment_method,
            provider_transaction_id=payload.provider_transaction_id,
            status=PaymentStatusEnum.COMPLETED,
            payment_date=utc_now(),
            notes=payload.notes,
        )
        await self.booking_service.mark_paid(booking)
        await self._emit_payment_recorded(payment)
        return payment

    async def refund_payment(self, payment_id: UUID, payload: RefundCreate, actor: Profile) -> Payment:
        """Refund all or part of what remains on a payment through its provider."""
        payment = await self.repository.get_payment_by_id(payment_id)
        if payment is None:
            raise NotFoundException("Payment not found")
        if actor.role != RoleEnum.TUTOR or payment.tutor_id != actor.id:
            raise UnauthorizedException("Only the tutor who was paid can refund")
        if payment.status not in REFUNDABLE_STATUSES:
            raise BusinessRuleException(f"Payment is {payment.status.value} and cannot be refunded")

        already_refunded = payment.refunded_amount or Decimal("0")
        remaining = payment.amount - already_refunded
        if payload.amount is not None and payload.amount > remaining:
            raise BusinessRuleException(f"Refund amount exceeds the {remaining} left on this payment")

        refunded_now = payload.amount or remaining
        if payment.payment_method in ONLINE_PROVIDERS:
            if not payment.provider_transaction_id:
                raise BusinessRuleException("Payment has no provider transaction to refund")
            result = await self.gateways.get(payment.payment_method).refund(
                payment.provider_transaction_id,
                payload.amount if not already_refunded else refunded_now,
                payment.currency,
            )
            payment.refund_reference = result.refund_id
            refunded_now = result.amount or refunded_now

        payment.refunded_amount = already_refunded + refunded_now
        if payment.refunded_amount >= payment.amount:
            payment.status = PaymentStatusEnum.REFUNDED
        else:
            payment.status = PaymentStatusEnum.PARTIALLY_REFUNDED
        await self.repository.save(payment)

        await self.audit_repository.create_outbox_event(
            aggregate_type="payment",
            aggregate_id=str(payment.id),
            event_type="payment.refunded",
            payload={
                "payment_id": str(payment.id),
                "booking_id": str(payment.booking_id),
                "student_id": str(payment.student_id),
                "amount": str(refunded_now),
                "refunded_total": str(payment.refunded_amount),
                "currency": payment.currency,
            },
        )
        record_payment(payment.payment_method.value, payment.status.value)
        return payment

    async def list_payments(self, actor: Profile, limit: int, offset: int) -> tuple[list[Payment], int]:
        return await self.repository.list_payments(actor.id, actor.role, limit, offset)

    async def _emit_payment_recorded(self, payment: Payment) -> None:
        await self.audit_repository.create_outbox_event(
            aggregate_type="payment",
            aggregate_id=str(payment.id),
            event_type="payment.recorded",
            payload={
                "payment_id": str(payment.id),
                "booking_id": str(payment.booking_id),
                "student_id": str(payment.student_id),
                "tutor_id": str(payment.tutor_id),
                "amount": str(payment.amount),
                "currency": payment.currency,
                "payment_method": payment.payment_method.value,
            },
        )
        record_payment(payment.payment_method.value, payment.status.value)


def get_payment_gateways(request: Request) -> PaymentGatewayRegistry:
    """Gateways built once in the application lifespan."""
    return request.app.state.payment_gateways


async def get_payments_service(
    session: AsyncSession = Depends(get_db_session),
    booking_service: BookingService = Depends(get_booking_service),
    gateways: PaymentGatewayRegistry = Depends(get_payment_gateways),
) -> PaymentsService:
    """Dependency provider for payments service."""
    return PaymentsService(
        repository=PaymentsRepository(session),
        booking_service=booking_service,
        audit_repository=AuditRepository(session),
        gateways=gateways,
    )
