"""Payment provider gateways (Stripe and PayPal) behind one interface."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import StrEnum
from typing import Any, Protocol
from uuid import UUID

import httpx
import stripe

from app.core.config import Settings
from app.core.enums import PaymentMethodEnum
from app.shared.exceptions import (
    AuthenticationException,
    InvalidInputException,
    UpstreamFailureException,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class WebhookOutcome(StrEnum):
    """What a verified provider event means for local payment rows."""

    CAPTURE_COMPLETED = "capture_completed"
    CAPTURE_FAILED = "capture_failed"
    IGNORED = "ignored"


@dataclass(frozen=True, slots=True)
class CheckoutRequest:
    booking_id: UUID
    student_id: UUID
    tutor_id: UUID
    amount: Decimal
    currency: str
    description: str
    idempotency_key: str
    receipt_email: str | None = None


@dataclass(frozen=True, slots=True)
class CheckoutSession:
    provider: PaymentMethodEnum
    reference: str
    status: str
    client_secret: str | None = None
    approval_url: str | None = None


@dataclass(frozen=True, slots=True)
class CaptureResult:
    provider: PaymentMethodEnum
    transaction_id: str
    succeeded: bool
    provider_status: str
    amount: Decimal
    currency: str
    booking_id: UUID | None = None
    student_id: UUID | None = None


@dataclass(frozen=True, slots=True)
class WebhookEvent:
    provider: PaymentMethodEnum
    event_id: str | None
    event_type: str
    outcome: WebhookOutcome
    capture: CaptureResult | None = None
    transaction_ids: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class RefundResult:
    provider: PaymentMethodEnum
    refund_id: str
    status: str
    amount: Decimal | None


class PaymentGateway(Protocol):
    """Common contract for payment providers."""

    provider: PaymentMethodEnum

    async def create_intent(self, request: CheckoutRequest) -> CheckoutSession:
        """Start provider-side checkout for a booking."""

    async def capture(self, reference: str) -> CaptureResult:
        """Finalize (or look up) payment for a checkout reference."""

    async def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        """Authenticate webhook delivery and classify it."""

    async def refund(self, transaction_id: str, amount: Decimal | None, currency: str) -> RefundResult:
        """Refund a captured payment, fully when amount is None."""


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(value: int | None) -> Decimal:
    return (Decimal(value or 0) / 100).quantize(CENT)


def _optional_uuid(value: object) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _field(obj: Any, key: str) -> Any:
    try:
        return obj[key]
    except (KeyError, TypeError, IndexError):
        return None


class StripeGateway:
    """Stripe Payment Intents; API key is passed per call."""

    provider = PaymentMethodEnum.STRIPE

    def __init__(self, settings: Settings) -> None:
        self.api_key = settings.stripe_secret_key
        self.webhook_secret = settings.stripe_webhook_secret

    def _require_api_key(self) -> str:
        if not self.api_key:
            raise UpstreamFailureException("Stripe is not configured")
        return self.api_key

    async def create_intent(self, request: CheckoutRequest) -> CheckoutSession:
        api_key = self._require_api_key()
        params: dict[str, Any] = {
            "amount": to_minor_units(request.amount),
            "currency": request.currency.lower(),
            "automatic_payment_methods": {"enabled": True},
            "metadata": {
                "bookingId": str(request.booking_id),
                "studentId": str(request.student_id),
                "tutorId": str(request.tutor_id),
            },
            "description": request.description,
        }
        if request.receipt_email:
            params["receipt_email"] = request.receipt_email

        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                api_key=api_key,
                idempotency_key=request.idempotency_key,
                **params,
            )
        except stripe.StripeError as exc:
            logger.warning("Stripe payment intent creation failed: %s", exc)
            raise UpstreamFailureException("Stripe payment intent creation failed") from exc

        return CheckoutSession(
            provider=self.provider,
            reference=_field(intent, "id"),
            status=_field(intent, "status") or "unknown",
            client_secret=_field(intent, "client_secret"),
        )

    async def capture(self, reference: str) -> CaptureResult:
        """Look up a client-confirmed payment intent."""
        api_key = self._require_api_key()
        try:
            intent = await asyncio.to_thread(stripe.PaymentIntent.retrieve, reference, api_key=api_key)
        except stripe.StripeError as exc:
            logger.warning("Stripe payment intent lookup failed for %s: %s", reference, exc)
            raise UpstreamFailureException("Stripe payment intent lookup failed") from exc
        return self._capture_from_intent(intent)

    def _capture_from_intent(self, intent: Any) -> CaptureResult:
        status = _field(intent, "status") or "unknown"
        metadata = _field(intent, "metadata") or {}
        return CaptureResult(
            provider=self.provider,
            transaction_id=str(_field(intent, "id")),
            succeeded=status == "succeeded",
            provider_status=status,
            amount=from_minor_units(_field(intent, "amount_received") or _field(intent, "amount")),
            currency=str(_field(intent, "currency") or "").upper(),
            booking_id=_optional_uuid(_field(metadata, "bookingId")),
            student_id=_optional_uuid(_field(metadata, "studentId")),
        )

    async def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        if not self.webhook_secret:
            raise UpstreamFailureException("Stripe webhook secret is not configured")
        signature = headers.get("stripe-signature")
        if not signature:
            raise AuthenticationException("Missing Stripe signature")

        try:
            stripe.Webhook.construct_event(body, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise AuthenticationException("Invalid Stripe signature") from exc
        except ValueError as exc:
            raise InvalidInputException("Invalid Stripe payload") from exc

        event = json.loads(body)
        event_type = str(event.get("type", ""))
        intent = (event.get("data") or {}).get("object") or {}

        if event_type == "payment_intent.succeeded":
            return WebhookEvent(
                provider=self.provider,
                event_id=event.get("id"),
                event_type=event_type,
                outcome=WebhookOutcome.CAPTURE_COMPLETED,
                capture=self._capture_from_intent(intent),
            )
        if event_type == "payment_intent.payment_failed":
            return WebhookEvent(
                provider=self.provider,
                event_id=event.get("id"),
                event_type=event_type,
                outcome=WebhookOutcome.CAPTURE_FAILED,
                transaction_ids=(str(intent.get("id")),),
            )
        return WebhookEvent(
            provider=self.provider,
            event_id=event.get("id"),
            event_type=event_type,
            outcome=WebhookOutcome.IGNORED,
        )

    async def refund(self, transaction_id: str, amount: Decimal | None, currency: str) -> RefundResult:
        api_key = self._require_api_key()
        params: dict[str, Any] = {"payment_intent": transaction_id}
        if amount is not None:
            params["amount"] = to_minor_units(amount)
        try:
            refund = await asyncio.to_thread(stripe.Refund.create, api_key=api_key, **params)
        except stripe.StripeError as exc:
            logger.warning("Stripe refund failed for %s: %s", transaction_id, exc)
            raise UpstreamFailureException("Stripe refund failed") from exc

        refunded = _field(refund, "amount")
        return RefundResult(
            provider=self.provider,
            refund_id=str(_field(refund, "id")),
            status=str(_field(refund, "status") or "unknown"),
            amount=from_minor_units(refunded) if refunded is not None else amount,
        )


class PayPalGateway:
    """PayPal Orders v2 over an injected httpx client."""

    provider = PaymentMethodEnum.PAYPAL
    TOKEN_SAFETY_MARGIN_SECONDS = 60

    def __init__(self, settings: Settings, client: httpx.AsyncClient) -> None:
        self.base_url = settings.paypal_api_base_url
        self.client_id = settings.paypal_client_id
        self.client_secret = settings.paypal_client_secret
        self.webhook_id = settings.paypal_webhook_id
        self.client = client
        self._token: str | None = None
        self._token_expires_at = 0.0

    async def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        if not self.client_id or not self.client_secret:
            raise UpstreamFailureException("PayPal is not configured")

        data = await self._send(
            "POST",
            "/v1/oauth2/token",
            auth=(self.client_id, self.client_secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
            operation="token",
        )
        token = data.get("access_token")
        if not token:
            raise UpstreamFailureException("PayPal token response had no access_token")
        expires_in = int(data.get("expires_in") or 0)
        self._token = token
        self._token_expires_at = time.monotonic() + max(0, expires_in - self.TOKEN_SAFETY_MARGIN_SECONDS)
        return token

    async def _send(self, method: str, path: str, *, operation: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self.client.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("PayPal %s request failed: %s", operation, exc)
            raise UpstreamFailureException(f"PayPal {operation} request failed") from exc

        if response.is_error:
            logger.warning("PayPal %s returned %s: %s", operation, response.status_code, response.text[:500])
            raise UpstreamFailureException(f"PayPal {operation} failed with status {response.status_code}")
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamFailureException(f"PayPal {operation} returned invalid JSON") from exc

    async def _authorized(self, method: str, path: str, *, operation: str, **kwargs: Any) -> dict[str, Any]:
        token = await self._access_token()
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        headers.update(kwargs.pop("headers", {}))
        return await self._send(method, path, operation=operation, headers=headers, **kwargs)

    async def create_intent(self, request: CheckoutRequest) -> CheckoutSession:
        booking_ref = str(request.booking_id)
        order = await self._authorized(
            "POST",
            "/v2/checkout/orders",
            operation="order create",
            headers={"PayPal-Request-Id": request.idempotency_key},
            json={
                "intent": "CAPTURE",
                "purchase_units": [
                    {
                        "reference_id": booking_ref,
                        "custom_id": booking_ref,
                        "description": request.description,
                        "amount": {
                            "currency_code": request.currency.upper(),
                            "value": f"{request.amount.quantize(CENT)}",
                        },
                    },
                ],
            },
        )
        approval_url = next(
            (link.get("href") for link in order.get("links", []) if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        return CheckoutSession(
            provider=self.provider,
            reference=str(order.get("id")),
            status=str(order.get("status", "CREATED")),
            approval_url=approval_url,
        )

    async def capture(self, reference: str) -> CaptureResult:
        order = await self._authorized(
            "POST",
            f"/v2/checkout/orders/{reference}/capture",
            operation="order capture",
            headers={"PayPal-Request-Id": f"capture-{reference}"},
        )
        unit = (order.get("purchase_units") or [{}])[0]
        captures = (unit.get("payments") or {}).get("captures") or []
        if not captures:
            raise UpstreamFailureException("PayPal capture response contained no capture")

        capture = captures[0]
        return self._capture_result(
            capture,
            booking_ref=unit.get("reference_id") or capture.get("custom_id"),
        )

    def _capture_result(self, capture: dict[str, Any], booking_ref: object) -> CaptureResult:
        amount = capture.get("amount") or {}
        status = str(capture.get("status", "UNKNOWN"))
        try:
            value = Decimal(str(amount.get("value", "0"))).quantize(CENT)
        except InvalidOperation as exc:
            raise UpstreamFailureException("PayPal capture amount is not a number") from exc
        return CaptureResult(
            provider=self.provider,
            transaction_id=str(capture.get("id")),
            succeeded=status == "COMPLETED",
            provider_status=status,
            amount=value,
            currency=str(amount.get("currency_code", "")).upper(),
            booking_id=_optional_uuid(booking_ref),
        )

    async def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        if not self.webhook_id:
            raise UpstreamFailureException("PayPal webhook id is not configured")
        try:
            event = json.loads(body)
        except ValueError as exc:
            raise InvalidInputException("Invalid PayPal payload") from exc

        transmission = {
            "auth_algo": headers.get("paypal-auth-algo"),
            "cert_url": headers.get("paypal-cert-url"),
            "transmission_id": headers.get("paypal-transmission-id"),
            "transmission_sig": headers.get("paypal-transmission-sig"),
            "transmission_time": headers.get("paypal-transmission-time"),
        }
        if not all(transmission.values()):
            raise AuthenticationException("Missing PayPal transmission headers")

        verification = await self._authorized(
            "POST",
            "/v1/notifications/verify-webhook-signature",
            operation="webhook verification",
            json={**transmission, "webhook_id": self.webhook_id, "webhook_event": event},
        )
        if verification.get("verification_status") != "SUCCESS":
            raise AuthenticationException("PayPal webhook signature verification failed")

        event_type = str(event.get("event_type", ""))
        resource = event.get("resource") or {}

        if event_type == "PAYMENT.CAPTURE.COMPLETED":
            return WebhookEvent(
                provider=self.provider,
                event_id=event.get("id"),
                event_type=event_type,
                outcome=WebhookOutcome.CAPTURE_COMPLETED,
                capture=self._capture_result(resource, booking_ref=resource.get("custom_id")),
            )
        if event_type in ("PAYMENT.CAPTURE.DENIED", "CHECKOUT.PAYMENT-APPROVAL.REVERSED"):
            related = (resource.get("supplementary_data") or {}).get("related_ids") or {}
            candidates = (resource.get("id"), related.get("order_id"))
            return WebhookEvent(
                provider=self.provider,
                event_id=event.get("id"),
                event_type=event_type,
                outcome=WebhookOutcome.CAPTURE_FAILED,
                transaction_ids=tuple(str(item) for item in candidates if item),
            )
        return WebhookEvent(
            provider=self.provider,
            event_id=event.get("id"),
            event_type=event_type,
            outcome=WebhookOutcome.IGNORED,
        )

    async def refund(self, transaction_id: str, amount: Decimal | None, currency: str) -> RefundResult:
        payload: dict[str, Any] = {}
        if amount is not None:
            payload["amount"] = {"value": f"{amount.quantize(CENT)}", "currency_code": currency.upper()}
        data = await self._authorized(
            "POST",
            f"/v2/payments/captures/{transaction_id}/refund",
            operation="refund",
            headers={"PayPal-Request-Id": f"refund-{transaction_id}-{amount if amount is not None else 'full'}"},
            json=payload,
        )
        refunded = (data.get("amount") or {}).get("value")
        return RefundResult(
            provider=self.provider,
            refund_id=str(data.get("id")),
            status=str(data.get("status", "UNKNOWN")),
            amount=Decimal(str(refunded)).quantize(CENT) if refunded is not None else amount,
        )


class PaymentGatewayRegistry:
    """Configured gateways keyed by provider."""

    def __init__(self, gateways: Mapping[PaymentMethodEnum, PaymentGateway]) -> None:
        self._gateways = dict(gateways)

    def get(self, provider: PaymentMethodEnum) -> PaymentGateway:
        gateway = self._gateways.get(provider)
        if gateway is None:
            raise InvalidInputException(f"Unsupported online payment provider: {provider}")
        return gateway


def build_payment_gateways(settings: Settings, http_client: httpx.AsyncClient) -> PaymentGatewayRegistry:
    return PaymentGatewayRegistry(
        {
            PaymentMethodEnum.STRIPE: StripeGateway(settings),
            PaymentMethodEnum.PAYPAL: PayPalGateway(settings, http_client),
        },
    )
