"""Payments schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import PaymentMethodEnum, PaymentStatusEnum


class CheckoutCreate(BaseModel):
    """Start online payment for a booking."""

    booking_id: UUID
    provider: PaymentMethodEnum


class CheckoutRead(BaseModel):
    provider: PaymentMethodEnum
    booking_id: UUID
    reference: str
    status: str
    amount: Decimal
    currency: str
    client_secret: str | None = None
    approval_url: str | None = None


class CaptureCreate(BaseModel):
    """Confirm a payment after the client finished the provider flow.

    ``reference`` is the Stripe payment intent id or the PayPal order id.
    """

    provider: PaymentMethodEnum
    reference: str = Field(min_length=1, max_length=128)


class ManualPaymentCreate(BaseModel):
    """Tutor records a point-of-sale payment."""

    booking_id: UUID
    amount: Decimal | None = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    payment_method: PaymentMethodEnum = PaymentMethodEnum.CASH
    provider_transaction_id: str | None = Field(default=None, max_length=128)
    notes: str | None = Field(default=None, max_length=512)


class RefundCreate(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0, max_digits=10, decimal_places=2)


class PaymentRead(BaseModel):
    """Payment response schema."""

    model_config = ConfigDict(from_attributes=True)

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
    refunded_amount: Decimal | None
    notes: str | None


class WebhookAck(BaseModel):
    received: bool = True
    outcome: str
