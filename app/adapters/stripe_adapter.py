"""
Adapter para Stripe.
Implementa PaymentProvider usando el SDK oficial de Stripe (Checkout Session).
El SDK es síncrono: sus llamadas HTTP corren en un hilo con asyncio.to_thread.
"""

import asyncio
import json
from decimal import Decimal
from typing import Any

import stripe
import structlog

from app.adapters.base import (
    InitPaymentParams,
    PaymentProvider,
    PaymentResult,
    TransactionStatusResult,
    WebhookEvent,
    WebhookVerification,
)
from app.config import settings
from app.schemas.payment import PaymentStatus
from app.schemas.webhook import StripeWebhookEvent


logger = structlog.get_logger(__name__)


def _to_dict(obj: Any) -> dict[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj or {})


class StripeAdapter(PaymentProvider):
    """
    Adapter para Stripe Payments.

    Usa Stripe Checkout Session para el pago con tarjeta.
    Los webhooks se verifican con stripe.Webhook.construct_event.
    """

    # Tipos de evento de Stripe -> estado interno
    STATUS_MAP = {
        "checkout.session.completed": PaymentStatus.COMPLETED,
        "checkout.session.async_payment_succeeded": PaymentStatus.COMPLETED,
        "payment_intent.succeeded": PaymentStatus.COMPLETED,
        "checkout.session.async_payment_failed": PaymentStatus.FAILED,
        "payment_intent.payment_failed": PaymentStatus.FAILED,
        "checkout.session.expired": PaymentStatus.FAILED,
        "payment_intent.canceled": PaymentStatus.CANCELLED,
        "payment_intent.processing": PaymentStatus.PROCESSING,
    }

    def __init__(self, api_key: str | None = None, webhook_secret: str | None = None):
        """
        Inicializa el adapter de Stripe.

        Args:
            api_key: Stripe secret key (usa config si no se proporciona)
            webhook_secret: Stripe webhook secret (usa config si no se proporciona)
        """
        self._api_key = api_key or settings.STRIPE_SECRET_KEY
        self._webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET

        stripe.api_key = self._api_key

        logger.info("StripeAdapter initialized")

    @property
    def provider_name(self) -> str:
        return "stripe"

    def _status_key(self, native_status: str) -> str:
        return native_status.strip().lower()

    @staticmethod
    def session_status(status: str | None, payment_status: str | None) -> PaymentStatus:
        """
        Mapea el par (status, payment_status) de una Checkout Session.
        """
        if payment_status in ("paid", "no_payment_required"):
            return PaymentStatus.COMPLETED
        if status == "expired":
            return PaymentStatus.FAILED
        if status == "complete":
            # Pago asíncrono aún sin confirmar
            return PaymentStatus.PROCESSING
        return PaymentStatus.PENDING

    async def initialize_payment(self, params: InitPaymentParams) -> PaymentResult:
        """Crea una Stripe Checkout Session."""
        metadata = {
            "reference": params.reference,
            "customer_phone": params.customer_phone or "",
            "customer_name": params.customer_name or "",
        }

        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                payment_method_types=["card"],
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": params.currency.lower(),
                            # XOF no tiene subunidades: el monto va tal cual
                            "unit_amount": int(params.amount),
                            "product_data": {
                                "name": "Spotlight vote",
                                "description": params.description or f"Vote - {params.reference}",
                            },
                        },
                        "quantity": 1,
                    }
                ],
                client_reference_id=params.reference,
                customer_email=params.customer_email,
                metadata=metadata,
                payment_intent_data={"metadata": {"reference": params.reference}},
                success_url=f"{params.callback_url}?session_id={{CHECKOUT_SESSION_ID}}&status=success",
                cancel_url=f"{params.callback_url}?status=cancelled",
            )

        except stripe.StripeError as e:
            logger.error(
                "Stripe checkout session creation failed",
                error=str(e),
                reference=params.reference,
            )
            return PaymentResult(
                success=False,
                provider=self.provider_name,
                error=e.user_message or str(e) or "Stripe error",
            )

        logger.info(
            "Stripe Checkout Session created",
            session_id=session.id,
            reference=params.reference,
        )

        return PaymentResult(
            success=True,
            provider=self.provider_name,
            provider_reference=session.id,
            payment_url=session.url,
            message="Stripe checkout session created",
            raw_data=_to_dict(session),
        )

    async def get_transaction_status(self, provider_reference: str) -> TransactionStatusResult:
        """Obtiene el estado de una Checkout Session."""
        try:
            session = await asyncio.to_thread(stripe.checkout.Session.retrieve, provider_reference)
        except stripe.StripeError as e:
            logger.error(
                "Failed to retrieve Stripe session",
                provider_reference=provider_reference,
                error=str(e),
            )
            return TransactionStatusResult(
                status=PaymentStatus.PENDING,
                provider_reference=provider_reference,
                message=str(e) or "Stripe error",
            )

        status = self.session_status(session.status, session.payment_status)

        return TransactionStatusResult(
            status=status,
            provider_reference=provider_reference,
            amount=Decimal(session.amount_total or 0),
            currency=(session.currency or "").upper(),
            native_status=f"{session.status}/{session.payment_status}",
            raw_data=_to_dict(session),
        )

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> WebhookVerification:
        """Valida el header Stripe-Signature contra el webhook secret."""
        if not signature and headers:
            signature = headers.get("Stripe-Signature") or headers.get("stripe-signature")

        if not signature:
            return WebhookVerification(is_valid=False, error="Missing Stripe-Signature header")
        if not self._webhook_secret:
            logger.error("Stripe webhook secret not configured")
            return WebhookVerification(is_valid=False, error="Webhook secret not configured")

        try:
            stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature,
                secret=self._webhook_secret,
            )
            data = json.loads(payload)
            StripeWebhookEvent.model_validate(data)
        except stripe.SignatureVerificationError as e:
            logger.error("Invalid Stripe webhook signature", error=str(e))
            return WebhookVerification(is_valid=False, error="Invalid signature")
        except ValueError as e:
            logger.error("Malformed Stripe webhook payload", error=str(e))
            return WebhookVerification(is_valid=False, error="Malformed payload")

        return WebhookVerification(is_valid=True, data=data)

    def parse_webhook_event(self, data: dict[str, Any]) -> WebhookEvent:
        """
        Extrae referencias del objeto del evento.

        Las sessions traen client_reference_id; los payment intents
        llevan la referencia en metadata.
        """
        event_type = data.get("type") or ""
        envelope = data.get("data")
        obj = envelope.get("object") if isinstance(envelope, dict) else None
        if not isinstance(obj, dict):
            obj = {}
        metadata = obj.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}

        return WebhookEvent(
            provider=self.provider_name,
            native_status=event_type,
            provider_reference=obj.get("id"),
            reference=obj.get("client_reference_id") or metadata.get("reference"),
            event_label=event_type,
            raw_data=data,
        )

    async def refund_transaction(
        self,
        provider_reference: str,
        amount: Decimal | None = None,
    ) -> PaymentResult:
        """Reembolsa el payment intent asociado a la session."""
        try:
            session = await asyncio.to_thread(stripe.checkout.Session.retrieve, provider_reference)
            payment_intent_id = session.payment_intent

            if not payment_intent_id:
                return PaymentResult(
                    success=False,
                    provider=self.provider_name,
                    provider_reference=provider_reference,
                    error="No payment intent found for this session",
                )

            refund_params: dict[str, Any] = {"payment_intent": payment_intent_id}
            if amount is not None:
                refund_params["amount"] = int(amount)

            refund = await asyncio.to_thread(stripe.Refund.create, **refund_params)

        except stripe.StripeError as e:
            logger.error("Stripe refund failed", provider_reference=provider_reference, error=str(e))
            return PaymentResult(
                success=False,
                provider=self.provider_name,
                provider_reference=provider_reference,
                error=str(e) or "Stripe error",
            )

        logger.info(
            "Stripe refund created",
            provider_reference=provider_reference,
            refund_id=refund.id,
            status=refund.status,
        )

        return PaymentResult(
            success=True,
            provider=self.provider_name,
            provider_reference=provider_reference,
            message=f"Refund {refund.status}",
            raw_data=_to_dict(refund),
        )
