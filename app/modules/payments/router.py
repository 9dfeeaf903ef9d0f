"""Payments API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status

from app.core.config import get_settings
from app.core.enums import PaymentMethodEnum, RoleEnum
from app.core.rate_limit import checkout_rate_limit
from app.modules.payments.schemas import (
    CaptureCreate,
    CheckoutCreate,
    CheckoutRead,
    ManualPaymentCreate,
    PaymentRead,
    RefundCreate,
    WebhookAck,
)
from app.modules.payments.service import PaymentsService, get_payments_service
from app.modules.profiles.service import get_current_user, require_roles
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/payments", tags=["payments"])
settings = get_settings()


@router.post(
    "/checkout",
    response_model=CheckoutRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(checkout_rate_limit("payment"))],
)
async def start_checkout(
    payload: CheckoutCreate,
    service: PaymentsService = Depends(get_payments_service),
    current_user=Depends(require_roles(RoleEnum.STUDENT)),
) -> CheckoutRead:
    """Create Stripe payment intent or PayPal order for a booking."""
    session, booking, amount = await service.start_checkout(payload, current_user)
    return CheckoutRead(
        provider=session.provider,
        booking_id=booking.id,
        reference=session.reference,
        status=session.status,
        amount=amount,
        currency=settings.payment_currency,
        client_secret=session.client_secret,
        approval_url=session.approval_url,
    )


@router.post("/capture", response_model=PaymentRead)
async def confirm_capture(
    payload: CaptureCreate,
    service: PaymentsService = Depends(get_payments_service),
    current_user=Depends(require_roles(RoleEnum.STUDENT)),
) -> PaymentRead:
    """Record payment once the provider reports it completed."""
    payment = await service.confirm_capture(payload, current_user)
    return PaymentRead.model_validate(payment)


@router.post("/webhooks/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    service: PaymentsService = Depends(get_payments_service),
) -> WebhookAck:
    """Stripe webhook endpoint (signature-verified)."""
    outcome = await service.handle_webhook(PaymentMethodEnum.STRIPE, await request.body(), request.headers)
    return WebhookAck(outcome=outcome)


@router.post("/webhooks/paypal", response_model=WebhookAck)
async def paypal_webhook(
    request: Request,
    service: PaymentsService = Depends(get_payments_service),
) -> WebhookAck:
    """PayPal webhook endpoint (verified with PayPal)."""
    outcome = await service.handle_webhook(PaymentMethodEnum.PAYPAL, await request.body(), request.headers)
    return WebhookAck(outcome=outcome)


@router.post("", response_model=PaymentRead, status_code=status.HTTP_201_CREATED)
async def record_manual_payment(
    payload: ManualPaymentCreate,
    service: PaymentsService = Depends(get_payments_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> PaymentRead:
    """Tutor point-of-sale payment."""
    payment = await service.record_manual_payment(payload, current_user)
    return PaymentRead.model_validate(payment)


@router.post("/{payment_id}/refund", response_model=PaymentRead)
async def refund_payment(
    payment_id: UUID,
    payload: RefundCreate,
    service: PaymentsService = Depends(get_payments_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> PaymentRead:
    payment = await service.refund_payment(payment_id, payload, current_user)
    return PaymentRead.model_validate(payment)


@router.get("/my", response_model=Page[PaymentRead])
async def list_my_payments(
    pagination=Depends(get_pagination_params),
    service: PaymentsService = Depends(get_payments_service),
    current_user=Depends(get_current_user),
) -> Page[PaymentRead]:
    """List payments made (student) or received (tutor)."""
    items, total = await service.list_payments(current_user, pagination.limit, pagination.offset)
    serialized = [PaymentRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)
