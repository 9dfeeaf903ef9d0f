from __future__ import annotations

import hashlib
import hmac
import json
import time
from decimal import Decimal
from uuid import uuid4

import httpx
import pytest

from app.core.config import Settings
from app.core.enums import PaymentMethodEnum
from app.modules.payments.gateways import (
    CheckoutRequest,
    PaymentGatewayRegistry,
    PayPalGateway,
    StripeGateway,
    WebhookOutcome,
    build_payment_gateways,
    from_minor_units,
    to_minor_units,
)
from app.shared.exceptions import (
    AuthenticationException,
    InvalidInputException,
    UpstreamFailureException,
)

WEBHOOK_SECRET = "whsec_test_secret"
PAYPAL_HEADERS = {
    "paypal-auth-algo": "SHA256withRSA",
    "paypal-cert-url": "https://api.paypal.com/cert.pem",
    "paypal-transmission-id": "tx-1",
    "paypal-transmission-sig": "sig",
    "paypal-transmission-time": "2026-01-01T00:00:00Z",
}


def _settings(**overrides) -> Settings:
    values = {
        "stripe_secret_key": "sk_test_123",
        "stripe_webhook_secret": WEBHOOK_SECRET,
        "paypal_env": "sandbox",
        "paypal_client_id": "client",
        "paypal_client_secret": "secret",
        "paypal_webhook_id": "WH-1",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _stripe_signature(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _stripe_event(event_type: str, intent: dict) -> bytes:
    return json.dumps(
        {"id": "evt_1", "object": "event", "type": event_type, "data": {"object": intent}},
    ).encode()


def _paypal(handler) -> tuple[PayPalGateway, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PayPalGateway(_settings(), client), client


def _token_response() -> httpx.Response:
    return httpx.Response(200, json={"access_token": "A21", "expires_in": 3600})


def test_minor_unit_conversion_rounds_half_up() -> None:
    assert to_minor_units(Decimal("17.00")) == 1700
    assert to_minor_units(Decimal("12.345")) == 1235
    assert from_minor_units(1999) == Decimal("19.99")
    assert from_minor_units(None) == Decimal("0.00")


def test_registry_rejects_unconfigured_provider() -> None:
    registry = PaymentGatewayRegistry({})

    with pytest.raises(InvalidInputException):
        registry.get(PaymentMethodEnum.CASH)


@pytest.mark.asyncio
async def test_registry_builds_both_online_gateways() -> None:
    async with httpx.AsyncClient() as client:
        registry = build_payment_gateways(_settings(), client)

        assert isinstance(registry.get(PaymentMethodEnum.STRIPE), StripeGateway)
        assert isinstance(registry.get(PaymentMethodEnum.PAYPAL), PayPalGateway)


@pytest.mark.asyncio
async def test_stripe_succeeded_webhook_becomes_completed_capture() -> None:
    booking_id = uuid4()
    payload = _stripe_event(
        "payment_intent.succeeded",
        {
            "id": "pi_123",
            "object": "payment_intent",
            "status": "succeeded",
            "amount": 1700,
            "amount_received": 1700,
            "currency": "gbp",
            "metadata": {"bookingId": str(booking_id), "studentId": str(uuid4())},
        },
    )
    gateway = StripeGateway(_settings())

    event = await gateway.verify_webhook(payload, {"stripe-signature": _stripe_signature(payload)})

    assert event.outcome == WebhookOutcome.CAPTURE_COMPLETED
    assert event.capture is not None
    assert event.capture.transaction_id == "pi_123"
    assert event.capture.succeeded is True
    assert event.capture.amount == Decimal("17.00")
    assert event.capture.currency == "GBP"
    assert event.capture.booking_id == booking_id


@pytest.mark.asyncio
async def test_stripe_payment_failed_webhook_lists_intent() -> None:
    payload = _stripe_event("payment_intent.payment_failed", {"id": "pi_999", "object": "payment_intent"})
    gateway = StripeGateway(_settings())

    event = await gateway.verify_webhook(payload, {"stripe-signature": _stripe_signature(payload)})

    assert event.outcome == WebhookOutcome.CAPTURE_FAILED
    assert event.transaction_ids == ("pi_999",)


@pytest.mark.asyncio
async def test_stripe_unknown_event_is_ignored() -> None:
    payload = _stripe_event("charge.refunded", {"id": "ch_1", "object": "charge"})
    gateway = StripeGateway(_settings())

    event = await gateway.verify_webhook(payload, {"stripe-signature": _stripe_signature(payload)})

    assert event.outcome == WebhookOutcome.IGNORED


@pytest.mark.asyncio
async def test_stripe_bad_signature_is_rejected() -> None:
    payload = _stripe_event("payment_intent.succeeded", {"id": "pi_123", "object": "payment_intent"})
    gateway = StripeGateway(_settings())

    with pytest.raises(AuthenticationException):
        await gateway.verify_webhook(payload, {"stripe-signature": _stripe_signature(payload, secret="whsec_other")})


@pytest.mark.asyncio
async def test_stripe_missing_signature_is_rejected() -> None:
    gateway = StripeGateway(_settings())

    with pytest.raises(AuthenticationException):
        await gateway.verify_webhook(b"{}", {})


@pytest.mark.asyncio
async def test_stripe_without_key_is_upstream_failure() -> None:
    gateway = StripeGateway(_settings(stripe_secret_key=None))
    request = CheckoutRequest(
        booking_id=uuid4(),
        student_id=uuid4(),
        tutor_id=uuid4(),
        amount=Decimal("17.00"),
        currency="GBP",
        description="Lesson",
        idempotency_key="checkout-stripe-1",
    )

    with pytest.raises(UpstreamFailureException):
        await gateway.create_intent(request)


@pytest.mark.asyncio
async def test_paypal_order_carries_booking_reference_and_request_id() -> None:
    booking_id = uuid4()
    seen: dict[str, httpx.Request] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/oauth2/token":
            return _token_response()
        seen["order"] = request
        return httpx.Response(
            201,
            json={
                "id": "ORDER-1",
                "status": "CREATED",
                "links": [{"rel": "approve", "href": "https://paypal.test/approve"}],
            },
        )

    gateway, client = _paypal(handler)
    async with client:
        session = await gateway.create_intent(
            CheckoutRequest(
                booking_id=booking_id,
                student_id=uuid4(),
                tutor_id=uuid4(),
                amount=Decimal("25.5"),
                currency="gbp",
                description="Lesson",
                idempotency_key="checkout-paypal-1",
            ),
        )

    order_request = seen["order"]
    body = json.loads(order_request.content)
    unit = body["purchase_units"][0]
    assert order_request.url.host == "api-m.sandbox.paypal.com"
    assert order_request.headers["PayPal-Request-Id"] == "checkout-paypal-1"
    assert order_request.headers["Authorization"] == "Bearer A21"
    assert unit["reference_id"] == str(booking_id)
    assert unit["custom_id"] == str(booking_id)
    assert unit["amount"] == {"currency_code": "GBP", "value": "25.50"}
    assert session.reference == "ORDER-1"
    assert session.approval_url == "https://paypal.test/approve"


@pytest.mark.asyncio
async def test_paypal_token_is_cached_between_calls() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if request.url.path == "/v1/oauth2/token":
            return _token_response()
        return httpx.Response(201, json={"id": "R-1", "status": "COMPLETED", "amount": {"value": "10.00"}})

    gateway, client = _paypal(handler)
    async with client:
        await gateway.refund("CAP-1", None, "GBP")
        await gateway.refund("CAP-2", Decimal("5"), "GBP")

    assert calls.count("/v1/oauth2/token") == 1


@pytest.mark.asyncio
async def test_paypal_capture_parses_first_capture() -> None:
    booking_id = uuid4()

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/oauth2/token":
            return _token_response()
        assert request.url.path == "/v2/checkout/orders/ORDER-1/capture"
        return httpx.Response(
            201,
            json={
                "id": "ORDER-1",
                "purchase_units": [
                    {
                        "reference_id": str(booking_id),
                        "payments": {
                            "captures": [
                                {
                                    "id": "CAP-1",
                                    "status": "COMPLETED",
                                    "amount": {"value": "17.00", "currency_code": "GBP"},
                                },
                            ],
                        },
                    },
                ],
            },
        )

    gateway, client = _paypal(handler)
    async with client:
        capture = await gateway.capture("ORDER-1")

    assert capture.transaction_id == "CAP-1"
    assert capture.succeeded is True
    assert capture.amount == Decimal("17.00")
    assert capture.booking_id == booking_id


@pytest.mark.asyncio
async def test_paypal_http_error_is_upstream_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/oauth2/token":
            return _token_response()
        return httpx.Response(422, json={"name": "UNPROCESSABLE_ENTITY"})

    gateway, client = _paypal(handler)
    async with client:
        with pytest.raises(UpstreamFailureException):
            await gateway.capture("ORDER-1")


@pytest.mark.asyncio
async def test_paypal_completed_webhook_is_verified_then_classified() -> None:
    booking_id = uuid4()
    verified: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/oauth2/token":
            return _token_response()
        verified.append(json.loads(request.content))
        return httpx.Response(200, json={"verification_status": "SUCCESS"})

    body = json.dumps(
        {
            "id": "WH-EVT-1",
            "event_type": "PAYMENT.CAPTURE.COMPLETED",
            "resource": {
                "id": "CAP-9",
                "status": "COMPLETED",
                "custom_id": str(booking_id),
                "amount": {"value": "30.00", "currency_code": "GBP"},
            },
        },
    ).encode()

    gateway, client = _paypal(handler)
    async with client:
        event = await gateway.verify_webhook(body, PAYPAL_HEADERS)

    assert verified[0]["webhook_id"] == "WH-1"
    assert verified[0]["transmission_id"] == "tx-1"
    assert event.outcome == WebhookOutcome.CAPTURE_COMPLETED
    assert event.capture.transaction_id == "CAP-9"
    assert event.capture.booking_id == booking_id


@pytest.mark.asyncio
async def test_paypal_denied_webhook_lists_capture_and_order() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/oauth2/token":
            return _token_response()
        return httpx.Response(200, json={"verification_status": "SUCCESS"})

    body = json.dumps(
        {
            "id": "WH-EVT-2",
            "event_type": "PAYMENT.CAPTURE.DENIED",
            "resource": {"id": "CAP-5", "supplementary_data": {"related_ids": {"order_id": "ORDER-5"}}},
        },
    ).encode()

    gateway, client = _paypal(handler)
    async with client:
        event = await gateway.verify_webhook(body, PAYPAL_HEADERS)

    assert event.outcome == WebhookOutcome.CAPTURE_FAILED
    assert event.transaction_ids == ("CAP-5", "ORDER-5")


@pytest.mark.asyncio
async def test_paypal_failed_verification_is_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/oauth2/token":
            return _token_response()
        return httpx.Response(200, json={"verification_status": "FAILURE"})

    gateway, client = _paypal(handler)
    async with client:
        with pytest.raises(AuthenticationException):
            await gateway.verify_webhook(b'{"event_type": "PAYMENT.CAPTURE.COMPLETED"}', PAYPAL_HEADERS)


@pytest.mark.asyncio
async def test_paypal_missing_transmission_headers_are_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("PayPal must not be called")

    gateway, client = _paypal(handler)
    async with client:
        with pytest.raises(AuthenticationException):
            await gateway.verify_webhook(b"{}", {"paypal-transmission-id": "tx-1"})
