"""
Adapter para Orange Money (Web Payment, redirección a página hospedada).
"""

import json
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from app.adapters.base import (
    InitPaymentParams,
    PaymentProvider,
    PaymentResult,
    TransactionStatusResult,
    WebhookEvent,
    WebhookVerification,
)
from app.adapters.token_cache import ClientCredentialsToken
from app.config import settings
from app.schemas.payment import PaymentStatus
from app.schemas.webhook import OrangeWebhookPayload
from app.utils.exceptions import ProviderAuthError
from app.utils.hmac_utils import verify_signature


logger = structlog.get_logger(__name__)

SIGNATURE_HEADER = "X-Orange-Signature"


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or default
    if isinstance(body, dict):
        return body.get("message") or body.get("description") or default
    return default


def _to_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value or 0))
    except InvalidOperation:
        return Decimal(0)


class OrangeMoneyAdapter(PaymentProvider):
    """
    Adapter para Orange Money Web Payment.

    El votante es redirigido a la página de Orange; el resultado llega
    por notificación firmada con HMAC-SHA256 (merchant key).
    """

    # EXPIRED se conserva como CANCELLED en webhook y en consulta
    STATUS_MAP = {
        "SUCCESS": PaymentStatus.COMPLETED,
        "SUCCESSFUL": PaymentStatus.COMPLETED,
        "PENDING": PaymentStatus.PROCESSING,
        "INITIATED": PaymentStatus.PROCESSING,
        "FAILED": PaymentStatus.FAILED,
        "EXPIRED": PaymentStatus.CANCELLED,
        "CANCELLED": PaymentStatus.CANCELLED,
    }

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        merchant_key: str | None = None,
        base_url: str | None = None,
        token_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        token_margin_seconds: int | None = None,
    ):
        self._client_id = client_id or settings.ORANGE_MONEY_CLIENT_ID
        self._client_secret = client_secret or settings.ORANGE_MONEY_CLIENT_SECRET
        self._merchant_key = merchant_key if merchant_key is not None else settings.ORANGE_MONEY_MERCHANT_KEY
        self._base_url = (base_url or settings.ORANGE_MONEY_BASE_URL).rstrip("/")
        self._token_url = token_url or settings.ORANGE_MONEY_TOKEN_URL

        self._http = http_client or httpx.AsyncClient(
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        )
        self._token = ClientCredentialsToken(
            provider=self.provider_name,
            fetch=self._fetch_access_token,
            margin_seconds=(
                token_margin_seconds
                if token_margin_seconds is not None
                else settings.TOKEN_EXPIRY_MARGIN_SECONDS
            ),
        )

        logger.info("OrangeMoneyAdapter initialized")

    @property
    def provider_name(self) -> str:
        return "orange"

    async def _fetch_access_token(self) -> tuple[str, int | None]:
        response = await self._http.post(
            self._token_url,
            data={"grant_type": "client_credentials"},
            auth=(self._client_id, self._client_secret),
        )
        if not response.is_success:
            raise ProviderAuthError(
                self.provider_name,
                _error_message(response, f"HTTP {response.status_code}"),
            )
        data = response.json()
        return data.get("access_token"), data.get("expires_in")

    async def _auth_headers(self) -> dict[str, str]:
        token = await self._token.get()
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

    async def initialize_payment(self, params: InitPaymentParams) -> PaymentResult:
        """Crea una sesión de pago web y retorna la URL de Orange."""
        try:
            headers = await self._auth_headers()
            response = await self._http.post(
                f"{self._base_url}/webpayment",
                headers=headers,
                json={
                    "merchant_key": self._merchant_key,
                    "currency": params.currency,
                    "order_id": params.reference,
                    "amount": int(params.amount),
                    "return_url": params.callback_url,
                    "cancel_url": params.callback_url,
                    "notif_url": params.webhook_url or params.callback_url,
                    "lang": "fr",
                    "reference": params.description or f"Spotlight vote - {params.reference}",
                },
            )
            if not response.is_success:
                error = _error_message(response, "Orange Money payment rejected")
                logger.error(
                    "Orange Money payment rejected",
                    status_code=response.status_code,
                    error=error,
                    reference=params.reference,
                )
                return PaymentResult(success=False, provider=self.provider_name, error=error)
            data = response.json()

        except ProviderAuthError as e:
            return PaymentResult(success=False, provider=self.provider_name, error=e.message)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "Orange Money payment request failed",
                error=str(e),
                reference=params.reference,
            )
            return PaymentResult(success=False, provider=self.provider_name, error=str(e) or type(e).__name__)

        pay_token = data.get("pay_token") or data.get("payment_token")
        if not pay_token:
            logger.error("Orange Money response without pay_token", reference=params.reference)
            return PaymentResult(
                success=False,
                provider=self.provider_name,
                error="Orange Money did not return a pay_token",
                raw_data=data,
            )

        payment_url = data.get("payment_url") or f"{self._base_url}/webpayment/v1/paymentUrl/{pay_token}"

        logger.info(
            "Orange Money payment initiated",
            provider_reference=pay_token,
            reference=params.reference,
        )

        return PaymentResult(
            success=True,
            provider=self.provider_name,
            provider_reference=pay_token,
            payment_url=payment_url,
            message="Orange Money payment initiated",
            raw_data=data,
        )

    async def get_transaction_status(self, provider_reference: str) -> TransactionStatusResult:
        """Consulta el estado de una sesión de pago por pay_token."""
        try:
            headers = await self._auth_headers()
            response = await self._http.get(
                f"{self._base_url}/webpayment/v1/transactionRequests/{provider_reference}",
                headers=headers,
            )
            if not response.is_success:
                message = _error_message(response, f"HTTP {response.status_code}")
                logger.warning(
                    "Orange Money status check rejected",
                    provider_reference=provider_reference,
                    status_code=response.status_code,
                    error=message,
                )
                return TransactionStatusResult(
                    status=PaymentStatus.PENDING,
                    provider_reference=provider_reference,
                    message=message,
                )
            data = response.json()

        except ProviderAuthError as e:
            return TransactionStatusResult(
                status=PaymentStatus.PENDING,
                provider_reference=provider_reference,
                message=e.message,
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "Orange Money status check failed",
                provider_reference=provider_reference,
                error=str(e),
            )
            return TransactionStatusResult(
                status=PaymentStatus.PENDING,
                provider_reference=provider_reference,
                message=str(e) or type(e).__name__,
            )

        native = data.get("status")
        return TransactionStatusResult(
            status=self.normalize_status(native),
            provider_reference=provider_reference,
            amount=_to_decimal(data.get("amount")),
            currency=data.get("currency") or "",
            native_status=native,
            raw_data=data,
        )

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> WebhookVerification:
        """
        Verifica el HMAC-SHA256 del cuerpo crudo con la merchant key.

        La firma viene en el header X-Orange-Signature (hex).
        """
        if not signature and headers:
            signature = headers.get(SIGNATURE_HEADER) or headers.get(SIGNATURE_HEADER.lower())

        if not signature or not self._merchant_key:
            logger.warning("Orange Money webhook without signature or merchant key")
            return WebhookVerification(is_valid=False, error="Missing signature")

        if not verify_signature(payload, signature, self._merchant_key):
            logger.error("Invalid Orange Money webhook signature")
            return WebhookVerification(is_valid=False, error="Invalid signature")

        try:
            data = json.loads(payload)
            body = OrangeWebhookPayload.model_validate(data)
        except ValueError as e:
            reason = "invalid payload" if isinstance(e, ValidationError) else "malformed JSON"
            return WebhookVerification(is_valid=False, error=f"Orange Money webhook rejected: {reason}")

        if not (body.order_id or body.pay_token):
            return WebhookVerification(
                is_valid=False,
                error="Orange Money webhook rejected: missing order_id and pay_token",
            )

        return WebhookVerification(is_valid=True, data=data)

    def parse_webhook_event(self, data: dict[str, Any]) -> WebhookEvent:
        body = OrangeWebhookPayload.model_validate(data)
        return WebhookEvent(
            provider=self.provider_name,
            native_status=body.status,
            provider_reference=body.pay_token,
            reference=body.order_id,
            event_label=body.status,
            raw_data=data,
        )

    async def refund_transaction(
        self,
        provider_reference: str,
        amount: Decimal | None = None,
    ) -> PaymentResult:
        """Reembolso total o parcial de una transacción Orange Money."""
        body: dict[str, Any] = {}
        if amount is not None:
            body["amount"] = int(amount)

        try:
            headers = await self._auth_headers()
            response = await self._http.post(
                f"{self._base_url}/webpayment/v1/transactionRequests/{provider_reference}/refund",
                headers=headers,
                json=body,
            )
        except ProviderAuthError as e:
            return PaymentResult(
                success=False,
                provider=self.provider_name,
                provider_reference=provider_reference,
                error=e.message,
            )
        except httpx.HTTPError as e:
            logger.error("Orange Money refund failed", provider_reference=provider_reference, error=str(e))
            return PaymentResult(
                success=False,
                provider=self.provider_name,
                provider_reference=provider_reference,
                error=str(e) or type(e).__name__,
            )

        if not response.is_success:
            error = _error_message(response, "Orange Money refund rejected")
            logger.error("Orange Money refund rejected", provider_reference=provider_reference, error=error)
            return PaymentResult(
                success=False,
                provider=self.provider_name,
                provider_reference=provider_reference,
                error=error,
            )

        try:
            data = response.json()
        except ValueError:
            data = {}

        logger.info("Orange Money refund completed", provider_reference=provider_reference)

        return PaymentResult(
            success=True,
            provider=self.provider_name,
            provider_reference=provider_reference,
            message="Refund completed",
            raw_data=data if isinstance(data, dict) else {"response": data},
        )

    async def aclose(self) -> None:
        await self._http.aclose()
