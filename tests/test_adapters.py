"""
Tests para los adapters de MTN MoMo, Orange Money y Stripe.

El HTTP saliente se simula con httpx.MockTransport y el SDK de Stripe
con monkeypatch.
"""

import base64
import json
import threading
from decimal import Decimal
from uuid import UUID

import httpx
import pytest
import stripe

from app.adapters.base import InitPaymentParams
from app.adapters.mtn_adapter import MtnMomoAdapter
from app.adapters.orange_adapter import OrangeMoneyAdapter
from app.adapters.stripe_adapter import StripeAdapter
from app.schemas.payment import PaymentStatus
from app.utils.hmac_utils import generate_signature


MTN_BASE_URL = "https://sandbox.momoapi.mtn.com"
ORANGE_BASE_URL = "https://api.orange.com/orange-money-webpay/dev/v1"
ORANGE_TOKEN_URL = "https://api.orange.com/oauth/v3/token"
REFERENCE = "TXN-20260101-ABCDEF123456"


def make_params(**overrides) -> InitPaymentParams:
    values = {
        "amount": Decimal(500),
        "currency": "XOF",
        "reference": REFERENCE,
        "callback_url": "https://vote.example.com/callback",
        "webhook_url": "https://api.example.com/api/webhooks/mtn",
        "customer_phone": "+22670000000",
        "customer_email": "fan@example.com",
        "customer_name": "Moussa",
    }
    values.update(overrides)
    return InitPaymentParams(**values)


def basic_auth(user: str, password: str) -> str:
    return "Basic " + base64.b64encode(f"{user}:{password}".encode()).decode()


# ============================================
# MTN Mobile Money
# ============================================

class MtnApi:
    """Simula la Collection API de MTN y guarda los requests recibidos."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.requesttopay_status = 202
        self.requesttopay_body: dict | None = None
        self.status_body = {"status": "SUCCESSFUL", "amount": "500", "currency": "XOF"}
        self.raise_on_requesttopay: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/collection/token/":
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"message": "invalid credentials"})
            return httpx.Response(200, json={"access_token": "mtn-token", "expires_in": 3600})

        if path == "/collection/v1_0/requesttopay" and request.method == "POST":
            if self.raise_on_requesttopay is not None:
                raise self.raise_on_requesttopay
            return httpx.Response(self.requesttopay_status, json=self.requesttopay_body)

        if path.startswith("/collection/v1_0/requesttopay/"):
            return httpx.Response(200, json=self.status_body)

        return httpx.Response(404)

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


@pytest.fixture
def mtn_api() -> MtnApi:
    return MtnApi()


@pytest.fixture
def mtn(mtn_api: MtnApi) -> MtnMomoAdapter:
    return MtnMomoAdapter(
        api_user="api-user",
        api_key="api-key",
        subscription_key="sub-key",
        target_environment="sandbox",
        base_url=MTN_BASE_URL,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(mtn_api.handler)),
        token_margin_seconds=300,
    )


class TestMtnMomoAdapter:

    @pytest.mark.asyncio
    async def test_initialize_payment_accepted(self, mtn: MtnMomoAdapter, mtn_api: MtnApi):
        result = await mtn.initialize_payment(make_params())

        assert result.success is True
        assert result.provider == "mtn"
        assert result.payment_url is None
        UUID(result.provider_reference)

        token_request, rtp_request = mtn_api.requests
        assert token_request.headers["Authorization"] == basic_auth("api-user", "api-key")
        assert token_request.headers["Ocp-Apim-Subscription-Key"] == "sub-key"

        assert rtp_request.headers["Authorization"] == "Bearer mtn-token"
        assert rtp_request.headers["X-Reference-Id"] == result.provider_reference
        assert rtp_request.headers["X-Target-Environment"] == "sandbox"
        assert rtp_request.headers["X-Callback-Url"] == "https://api.example.com/api/webhooks/mtn"

        body = json.loads(rtp_request.content)
        assert body["externalId"] == REFERENCE
        assert body["amount"] == "500"
        assert body["currency"] == "XOF"
        assert body["payer"] == {"partyIdType": "MSISDN", "partyId": "22670000000"}

    @pytest.mark.asyncio
    async def test_token_reused_between_calls(self, mtn: MtnMomoAdapter, mtn_api: MtnApi):
        await mtn.initialize_payment(make_params())
        await mtn.initialize_payment(make_params(reference="TXN-20260101-000000000002"))

        assert mtn_api.paths().count("/collection/token/") == 1

    @pytest.mark.asyncio
    async def test_initialize_payment_rejected(self, mtn: MtnMomoAdapter, mtn_api: MtnApi):
        mtn_api.requesttopay_status = 400
        mtn_api.requesttopay_body = {"code": "PAYER_NOT_FOUND", "message": "Payer not found"}

        result = await mtn.initialize_payment(make_params())

        assert result.success is False
        assert result.error == "Payer not found"
        assert result.provider_reference is None

    @pytest.mark.asyncio
    async def test_initialize_payment_timeout(self, mtn: MtnMomoAdapter, mtn_api: MtnApi):
        mtn_api.raise_on_requesttopay = httpx.ReadTimeout("timed out")

        result = await mtn.initialize_payment(make_params())

        assert result.success is False
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_initialize_payment_token_failure(self, mtn: MtnMomoAdapter, mtn_api: MtnApi):
        mtn_api.token_status = 401

        result = await mtn.initialize_payment(make_params())

        assert result.success is False
        assert "authentication failed" in result.error
        assert "/collection/v1_0/requesttopay" not in mtn_api.paths()

    @pytest.mark.asyncio
    async def test_get_transaction_status_successful(self, mtn: MtnMomoAdapter, mtn_api: MtnApi):
        result = await mtn.get_transaction_status("ref-123")

        assert result.status == PaymentStatus.COMPLETED
        assert result.amount == Decimal("500")
        assert result.currency == "XOF"
        assert result.native_status == "SUCCESSFUL"
        assert mtn_api.requests[-1].url.path == "/collection/v1_0/requesttopay/ref-123"

    @pytest.mark.asyncio
    async def test_get_transaction_status_pending_is_processing(self, mtn: MtnMomoAdapter, mtn_api: MtnApi):
        mtn_api.status_body = {"status": "PENDING", "amount": "500", "currency": "XOF"}

        result = await mtn.get_transaction_status("ref-123")

        assert result.status == PaymentStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_get_transaction_status_error_stays_pending(self, mtn_api: MtnApi):
        def broken(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/collection/token/":
                return mtn_api.handler(request)
            raise httpx.ConnectError("connection refused")

        adapter = MtnMomoAdapter(
            api_user="api-user",
            api_key="api-key",
            subscription_key="sub-key",
            base_url=MTN_BASE_URL,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(broken)),
        )

        result = await adapter.get_transaction_status("ref-123")

        assert result.status == PaymentStatus.PENDING
        assert "connection refused" in result.message

    def test_verify_webhook_valid_payload(self, mtn: MtnMomoAdapter):
        payload = json.dumps({
            "referenceId": "ref-123",
            "externalId": REFERENCE,
            "status": "SUCCESSFUL",
            "amount": "500",
            "currency": "XOF",
        }).encode()

        verification = mtn.verify_webhook_signature(payload)

        assert verification.is_valid is True
        assert verification.data["referenceId"] == "ref-123"

    @pytest.mark.parametrize(
        "payload",
        [
            b'{"referenceId": "ref-123"}',
            b'{"status": "SUCCESSFUL"}',
            b'{"referenceId": "", "status": "SUCCESSFUL"}',
            b"not json",
            b"[]",
        ],
    )
    def test_verify_webhook_rejects_incomplete_payload(self, mtn: MtnMomoAdapter, payload: bytes):
        verification = mtn.verify_webhook_signature(payload)

        assert verification.is_valid is False
        assert verification.error

    def test_parse_webhook_event(self, mtn: MtnMomoAdapter):
        event = mtn.parse_webhook_event(
            {"referenceId": "ref-123", "externalId": REFERENCE, "status": "SUCCESSFUL"}
        )

        assert event.provider_reference == "ref-123"
        assert event.reference == REFERENCE
        assert event.lookup_reference == REFERENCE
        assert event.native_status == "SUCCESSFUL"

    def test_parse_webhook_event_without_external_id(self, mtn: MtnMomoAdapter):
        event = mtn.parse_webhook_event({"referenceId": "ref-123", "status": "FAILED"})

        assert event.lookup_reference == "ref-123"

    @pytest.mark.asyncio
    async def test_refund_not_supported(self, mtn: MtnMomoAdapter, mtn_api: MtnApi):
        result = await mtn.refund_transaction("ref-123")

        assert result.success is False
        assert "Manual refund" in result.error
        assert mtn_api.requests == []


# ============================================
# Orange Money
# ============================================

class OrangeApi:
    """Simula Orange Money Web Payment."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.webpayment_body = {
            "status": 201,
            "message": "OK",
            "pay_token": "pay-token-1",
            "payment_url": "https://webpayment.orange-money.com/payment/pay_token/pay-token-1",
            "notif_token": "notif-1",
        }
        self.status_body = {"status": "SUCCESS", "amount": 500, "currency": "XOF"}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if str(request.url) == ORANGE_TOKEN_URL:
            return httpx.Response(200, json={"access_token": "orange-token", "expires_in": 7776000})
        if path.endswith("/webpayment"):
            return httpx.Response(201, json=self.webpayment_body)
        if path.endswith("/refund"):
            return httpx.Response(200, json={"status": "REFUNDED"})
        if "/webpayment/v1/transactionRequests/" in path:
            return httpx.Response(200, json=self.status_body)
        return httpx.Response(404)


@pytest.fixture
def orange_api() -> OrangeApi:
    return OrangeApi()


@pytest.fixture
def orange(orange_api: OrangeApi) -> OrangeMoneyAdapter:
    return OrangeMoneyAdapter(
        client_id="client-id",
        client_secret="client-secret",
        merchant_key="merchant-key",
        base_url=ORANGE_BASE_URL,
        token_url=ORANGE_TOKEN_URL,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(orange_api.handler)),
    )


class TestOrangeMoneyAdapter:

    @pytest.mark.asyncio
    async def test_initialize_payment(self, orange: OrangeMoneyAdapter, orange_api: OrangeApi):
        result = await orange.initialize_payment(make_params())

        assert result.success is True
        assert result.provider_reference == "pay-token-1"
        assert result.payment_url == orange_api.webpayment_body["payment_url"]

        token_request, payment_request = orange_api.requests
        assert token_request.headers["Authorization"] == basic_auth("client-id", "client-secret")
        assert token_request.content == b"grant_type=client_credentials"

        assert payment_request.headers["Authorization"] == "Bearer orange-token"
        body = json.loads(payment_request.content)
        assert body["merchant_key"] == "merchant-key"
        assert body["order_id"] == REFERENCE
        assert body["amount"] == 500
        assert body["notif_url"] == "https://api.example.com/api/webhooks/mtn"

    @pytest.mark.asyncio
    async def test_initialize_payment_builds_url_from_token(self, orange: OrangeMoneyAdapter, orange_api: OrangeApi):
        orange_api.webpayment_body = {"pay_token": "pay-token-2"}

        result = await orange.initialize_payment(make_params())

        assert result.payment_url == f"{ORANGE_BASE_URL}/webpayment/v1/paymentUrl/pay-token-2"

    @pytest.mark.asyncio
    async def test_initialize_payment_without_pay_token_fails(self, orange: OrangeMoneyAdapter, orange_api: OrangeApi):
        orange_api.webpayment_body = {"status": 400, "message": "Bad request"}

        result = await orange.initialize_payment(make_params())

        assert result.success is False
        assert result.provider_reference is None

    @pytest.mark.asyncio
    async def test_get_transaction_status(self, orange: OrangeMoneyAdapter, orange_api: OrangeApi):
        result = await orange.get_transaction_status("pay-token-1")

        assert result.status == PaymentStatus.COMPLETED
        assert result.amount == Decimal(500)
        assert orange_api.requests[-1].url.path.endswith("/webpayment/v1/transactionRequests/pay-token-1")

    @pytest.mark.asyncio
    async def test_get_transaction_status_expired_is_cancelled(self, orange: OrangeMoneyAdapter, orange_api: OrangeApi):
        orange_api.status_body = {"status": "EXPIRED", "amount": 500, "currency": "XOF"}

        result = await orange.get_transaction_status("pay-token-1")

        assert result.status == PaymentStatus.CANCELLED

    def test_verify_webhook_valid_signature(self, orange: OrangeMoneyAdapter):
        payload = json.dumps({"status": "SUCCESS", "order_id": REFERENCE, "pay_token": "pay-token-1"}).encode()
        signature = generate_signature(payload, "merchant-key")

        verification = orange.verify_webhook_signature(payload, signature)

        assert verification.is_valid is True
        assert verification.data["order_id"] == REFERENCE

    def test_verify_webhook_signature_from_headers(self, orange: OrangeMoneyAdapter):
        payload = json.dumps({"status": "SUCCESS", "order_id": REFERENCE}).encode()
        headers = {"x-orange-signature": generate_signature(payload, "merchant-key")}

        assert orange.verify_webhook_signature(payload, headers=headers).is_valid is True

    def test_verify_webhook_tampered_payload(self, orange: OrangeMoneyAdapter):
        signed_body = json.dumps({"status": "FAILED", "order_id": REFERENCE}).encode()
        tampered = json.dumps({"status": "SUCCESS", "order_id": REFERENCE}).encode()
        signature = generate_signature(signed_body, "merchant-key")

        verification = orange.verify_webhook_signature(tampered, signature)

        assert verification.is_valid is False
        assert verification.error == "Invalid signature"

    def test_verify_webhook_missing_signature(self, orange: OrangeMoneyAdapter):
        verification = orange.verify_webhook_signature(b'{"status": "SUCCESS"}', None)

        assert verification.is_valid is False
        assert verification.error == "Missing signature"

    def test_verify_webhook_without_merchant_key(self):
        adapter = OrangeMoneyAdapter(
            merchant_key="",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))),
        )
        payload = b'{"status": "SUCCESS", "order_id": "x"}'

        verification = adapter.verify_webhook_signature(payload, generate_signature(payload, ""))

        assert verification.is_valid is False

    def test_verify_webhook_without_any_reference(self, orange: OrangeMoneyAdapter):
        payload = b'{"status": "SUCCESS"}'

        verification = orange.verify_webhook_signature(payload, generate_signature(payload, "merchant-key"))

        assert verification.is_valid is False

    def test_parse_webhook_event(self, orange: OrangeMoneyAdapter):
        event = orange.parse_webhook_event(
            {"status": "SUCCESS", "order_id": REFERENCE, "pay_token": "pay-token-1"}
        )

        assert event.reference == REFERENCE
        assert event.provider_reference == "pay-token-1"
        assert event.native_status == "SUCCESS"

    @pytest.mark.asyncio
    async def test_refund(self, orange: OrangeMoneyAdapter, orange_api: OrangeApi):
        result = await orange.refund_transaction("pay-token-1", Decimal(200))

        assert result.success is True
        refund_request = orange_api.requests[-1]
        assert refund_request.url.path.endswith("/webpayment/v1/transactionRequests/pay-token-1/refund")
        assert json.loads(refund_request.content) == {"amount": 200}


# ============================================
# Stripe
# ============================================

WEBHOOK_SECRET = "whsec_test_secret"


def stripe_session(**values) -> stripe.checkout.Session:
    data = {
        "id": "cs_test_123",
        "object": "checkout.session",
        "url": "https://checkout.stripe.com/c/pay/cs_test_123",
        "status": "open",
        "payment_status": "unpaid",
        "amount_total": 500,
        "currency": "xof",
        "payment_intent": None,
    }
    data.update(values)
    return stripe.checkout.Session.construct_from(data, "sk_test_123")


@pytest.fixture
def stripe_adapter() -> StripeAdapter:
    return StripeAdapter(api_key="sk_test_123", webhook_secret=WEBHOOK_SECRET)


class TestStripeAdapter:

    @pytest.mark.asyncio
    async def test_initialize_payment(self, stripe_adapter: StripeAdapter, monkeypatch):
        captured = {}

        def fake_create(**kwargs):
            captured.update(kwargs)
            return stripe_session()

        monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

        result = await stripe_adapter.initialize_payment(make_params())

        assert result.success is True
        assert result.provider_reference == "cs_test_123"
        assert result.payment_url == "https://checkout.stripe.com/c/pay/cs_test_123"
        assert captured["client_reference_id"] == REFERENCE
        assert captured["metadata"]["reference"] == REFERENCE
        assert captured["customer_email"] == "fan@example.com"
        assert captured["line_items"][0]["price_data"]["currency"] == "xof"
        assert captured["line_items"][0]["price_data"]["unit_amount"] == 500
        assert captured["success_url"].startswith("https://vote.example.com/callback?")

    @pytest.mark.asyncio
    async def test_initialize_payment_sdk_error(self, stripe_adapter: StripeAdapter, monkeypatch):
        def fake_create(**kwargs):
            raise stripe.APIConnectionError("Network error")

        monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

        result = await stripe_adapter.initialize_payment(make_params())

        assert result.success is False
        assert result.error

    @pytest.mark.asyncio
    async def test_sdk_call_runs_off_event_loop_thread(self, stripe_adapter: StripeAdapter, monkeypatch):
        threads = []

        def fake_create(**kwargs):
            threads.append(threading.get_ident())
            return stripe_session()

        monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

        result = await stripe_adapter.initialize_payment(make_params())

        assert result.success is True
        assert len(threads) == 1
        assert threads[0] != threading.get_ident()

    @pytest.mark.asyncio
    async def test_get_transaction_status_paid(self, stripe_adapter: StripeAdapter, monkeypatch):
        monkeypatch.setattr(
            stripe.checkout.Session,
            "retrieve",
            lambda session_id: stripe_session(id=session_id, status="complete", payment_status="paid"),
        )

        result = await stripe_adapter.get_transaction_status("cs_test_123")

        assert result.status == PaymentStatus.COMPLETED
        assert result.amount == Decimal(500)
        assert result.currency == "XOF"

    @pytest.mark.asyncio
    async def test_get_transaction_status_error_stays_pending(self, stripe_adapter: StripeAdapter, monkeypatch):
        def fake_retrieve(session_id):
            raise stripe.APIConnectionError("Network error")

        monkeypatch.setattr(stripe.checkout.Session, "retrieve", fake_retrieve)

        result = await stripe_adapter.get_transaction_status("cs_test_123")

        assert result.status == PaymentStatus.PENDING
        assert result.message

    @pytest.mark.parametrize(
        "session_status,payment_status,expected",
        [
            ("complete", "paid", PaymentStatus.COMPLETED),
            ("complete", "no_payment_required", PaymentStatus.COMPLETED),
            ("expired", "unpaid", PaymentStatus.FAILED),
            ("open", "unpaid", PaymentStatus.PENDING),
            ("complete", "unpaid", PaymentStatus.PROCESSING),
            (None, None, PaymentStatus.PENDING),
        ],
    )
    def test_session_status(self, session_status, payment_status, expected):
        assert StripeAdapter.session_status(session_status, payment_status) == expected

    def test_verify_webhook_valid_signature(self, stripe_adapter: StripeAdapter, stripe_signature):
        payload = json.dumps({
            "id": "evt_1",
            "object": "event",
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_test_123", "client_reference_id": REFERENCE}},
        }).encode()
        header = stripe_signature(payload, WEBHOOK_SECRET)

        verification = stripe_adapter.verify_webhook_signature(payload, header)

        assert verification.is_valid is True
        assert verification.data["type"] == "checkout.session.completed"

    def test_verify_webhook_wrong_secret(self, stripe_adapter: StripeAdapter, stripe_signature):
        payload = b'{"id": "evt_1", "object": "event", "type": "checkout.session.completed", "data": {"object": {}}}'
        header = stripe_signature(payload, "whsec_other")

        verification = stripe_adapter.verify_webhook_signature(payload, header)

        assert verification.is_valid is False
        assert verification.error == "Invalid signature"

    def test_verify_webhook_missing_header(self, stripe_adapter: StripeAdapter):
        verification = stripe_adapter.verify_webhook_signature(b"{}", None)

        assert verification.is_valid is False

    def test_parse_checkout_session_event(self, stripe_adapter: StripeAdapter):
        event = stripe_adapter.parse_webhook_event({
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_test_123", "client_reference_id": REFERENCE}},
        })

        assert event.provider_reference == "cs_test_123"
        assert event.reference == REFERENCE
        assert event.native_status == "checkout.session.completed"

    def test_parse_payment_intent_event_uses_metadata(self, stripe_adapter: StripeAdapter):
        event = stripe_adapter.parse_webhook_event({
            "type": "payment_intent.payment_failed",
            "data": {"object": {"id": "pi_123", "metadata": {"reference": REFERENCE}}},
        })

        assert event.provider_reference == "pi_123"
        assert event.reference == REFERENCE

    @pytest.mark.asyncio
    async def test_refund(self, stripe_adapter: StripeAdapter, monkeypatch):
        captured = {}

        def fake_refund_create(**kwargs):
            captured.update(kwargs)
            return stripe.Refund.construct_from(
                {"id": "re_123", "object": "refund", "status": "succeeded", "amount": 500},
                "sk_test_123",
            )

        monkeypatch.setattr(
            stripe.checkout.Session,
            "retrieve",
            lambda session_id: stripe_session(payment_intent="pi_123"),
        )
        monkeypatch.setattr(stripe.Refund, "create", fake_refund_create)

        result = await stripe_adapter.refund_transaction("cs_test_123")

        assert result.success is True
        assert captured == {"payment_intent": "pi_123"}

    @pytest.mark.asyncio
    async def test_refund_without_payment_intent(self, stripe_adapter: StripeAdapter, monkeypatch):
        monkeypatch.setattr(stripe.checkout.Session, "retrieve", lambda session_id: stripe_session())

        result = await stripe_adapter.refund_transaction("cs_test_123")

        assert result.success is False
