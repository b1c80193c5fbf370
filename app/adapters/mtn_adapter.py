"""
Adapter para MTN Mobile Money (Collection API, request-to-pay).
"""

import json
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import uuid4

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
from app.schemas.webhook import MtnWebhookPayload
from app.utils.exceptions import ProviderAuthError


logger = structlog.get_logger(__name__)


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or default
    if isinstance(body, dict):
        return body.get("message") or body.get("reason") or default
    return default


class MtnMomoAdapter(PaymentProvider):
    """
    Adapter para MTN MoMo.

    El votante aprueba el cobro en su teléfono; no hay URL de pago.
    El resultado llega por callback (sin firma) o por consulta de estado.
    """

    STATUS_MAP = {
        "SUCCESSFUL": PaymentStatus.COMPLETED,
        "PENDING": PaymentStatus.PROCESSING,
        "FAILED": PaymentStatus.FAILED,
    }

    def __init__(
        self,
        api_user: str | None = None,
        api_key: str | None = None,
        subscription_key: str | None = None,
        target_environment: str | None = None,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        token_margin_seconds: int | None = None,
    ):
        self._api_user = api_user or settings.MTN_MOMO_API_USER
        self._api_key = api_key or settings.MTN_MOMO_API_KEY
        self._subscription_key = subscription_key or settings.MTN_MOMO_SUBSCRIPTION_KEY
        self._target_environment = target_environment or settings.MTN_MOMO_ENVIRONMENT
        self._base_url = (base_url or settings.mtn_base_url).rstrip("/")

        self._http = http_client or httpx.AsyncClient(
            base_url=self._base_url,
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

        logger.info(
            "MtnMomoAdapter initialized",
            environment=self._target_environment,
        )

    @property
    def provider_name(self) -> str:
        return "mtn"

    def _subscription_headers(self) -> dict[str, str]:
        return {"Ocp-Apim-Subscription-Key": self._subscription_key}

    async def _fetch_access_token(self) -> tuple[str, int | None]:
        response = await self._http.post(
            f"{self._base_url}/collection/token/",
            auth=(self._api_user, self._api_key),
            headers=self._subscription_headers(),
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
            **self._subscription_headers(),
            "Authorization": f"Bearer {token}",
            "X-Target-Environment": self._target_environment,
        }

    async def initialize_payment(self, params: InitPaymentParams) -> PaymentResult:
        """Envía un request-to-pay al teléfono del votante."""
        reference_id = str(uuid4())

        try:
            headers = await self._auth_headers()
            headers["X-Reference-Id"] = reference_id
            if params.webhook_url:
                headers["X-Callback-Url"] = params.webhook_url

            response = await self._http.post(
                f"{self._base_url}/collection/v1_0/requesttopay",
                headers=headers,
                json={
                    "amount": str(params.amount),
                    "currency": params.currency,
                    "externalId": params.reference,
                    "payer": {
                        "partyIdType": "MSISDN",
                        "partyId": (params.customer_phone or "").lstrip("+"),
                    },
                    "payerMessage": params.description or "Spotlight vote",
                    "payeeNote": f"Vote - {params.reference}",
                },
            )

        except ProviderAuthError as e:
            return PaymentResult(success=False, provider=self.provider_name, error=e.message)
        except httpx.HTTPError as e:
            logger.error(
                "MTN request-to-pay failed",
                error=str(e),
                reference=params.reference,
            )
            return PaymentResult(success=False, provider=self.provider_name, error=str(e) or type(e).__name__)

        if response.status_code != 202:
            error = _error_message(response, "MTN request-to-pay rejected")
            logger.error(
                "MTN request-to-pay rejected",
                status_code=response.status_code,
                error=error,
                reference=params.reference,
            )
            return PaymentResult(success=False, provider=self.provider_name, error=error)

        logger.info(
            "MTN request-to-pay accepted",
            provider_reference=reference_id,
            reference=params.reference,
        )

        return PaymentResult(
            success=True,
            provider=self.provider_name,
            provider_reference=reference_id,
            message="Payment initiated. Approve it on your phone.",
        )

    async def get_transaction_status(self, provider_reference: str) -> TransactionStatusResult:
        """Consulta el estado de un request-to-pay."""
        try:
            headers = await self._auth_headers()
            response = await self._http.get(
                f"{self._base_url}/collection/v1_0/requesttopay/{provider_reference}",
                headers=headers,
            )
            if not response.is_success:
                message = _error_message(response, f"HTTP {response.status_code}")
                logger.warning(
                    "MTN status check rejected",
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
                "MTN status check failed",
                provider_reference=provider_reference,
                error=str(e),
            )
            return TransactionStatusResult(
                status=PaymentStatus.PENDING,
                provider_reference=provider_reference,
                message=str(e) or type(e).__name__,
            )

        native = data.get("status")
        try:
            amount = Decimal(str(data.get("amount") or 0))
        except InvalidOperation:
            amount = Decimal(0)

        return TransactionStatusResult(
            status=self.normalize_status(native),
            provider_reference=provider_reference,
            amount=amount,
            currency=data.get("currency") or "",
            native_status=native,
            message=data.get("reason"),
            raw_data=data,
        )

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> WebhookVerification:
        """
        MTN no firma sus callbacks: solo se valida la forma del payload
        (referenceId y status obligatorios).
        """
        try:
            data = json.loads(payload)
            MtnWebhookPayload.model_validate(data)
        except ValueError as e:
            # ValidationError también es ValueError
            reason = "invalid payload" if isinstance(e, ValidationError) else "malformed JSON"
            logger.warning("Invalid MTN webhook", error=reason)
            return WebhookVerification(is_valid=False, error=f"MTN webhook rejected: {reason}")

        return WebhookVerification(is_valid=True, data=data)

    def parse_webhook_event(self, data: dict[str, Any]) -> WebhookEvent:
        body = MtnWebhookPayload.model_validate(data)
        return WebhookEvent(
            provider=self.provider_name,
            native_status=body.status,
            provider_reference=body.referenceId,
            reference=body.externalId,
            event_label=body.status,
            raw_data=data,
        )

    async def refund_transaction(
        self,
        provider_reference: str,
        amount: Decimal | None = None,
    ) -> PaymentResult:
        """MTN no ofrece reembolsos por API."""
        logger.warning("MTN refund requested, not supported", provider_reference=provider_reference)
        return PaymentResult(
            success=False,
            provider=self.provider_name,
            provider_reference=provider_reference,
            error="Manual refund required for MTN Mobile Money",
        )

    async def aclose(self) -> None:
        await self._http.aclose()
