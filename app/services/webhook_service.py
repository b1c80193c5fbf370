"""
Servicio para webhooks entrantes de los proveedores de pago.

Política: siempre se acusa recibo. Los errores se registran (structlog y
WebhookLog) y se responden con success=False, nunca con un 5xx.
"""

from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters import WebhookEvent
from app.db.repositories import WebhookLogRepository
from app.schemas.webhook import WebhookAck
from app.services.payment_service import PaymentService
from app.services.vote_service import VoteService
from app.utils.exceptions import (
    TransactionNotFoundError,
    VoteServiceError,
    WebhookVerificationError,
)


logger = structlog.get_logger(__name__)

# Límite del cuerpo crudo guardado cuando el webhook es rechazado
MAX_RAW_BODY_LOGGED = 4000


def _raw_body(payload: bytes) -> str:
    return payload.decode("utf-8", errors="replace")[:MAX_RAW_BODY_LOGGED]


class WebhookService:
    """
    Pipeline de ingesta de webhooks.

    1. Verifica con el adapter del proveedor
    2. Registra el webhook (commit inmediato)
    3. Normaliza el estado nativo
    4. Entrega la transición a VoteService.confirm_payment
    """

    def __init__(self, db: AsyncSession, payments: PaymentService):
        self.db = db
        self.payments = payments
        self.webhook_repo = WebhookLogRepository(db)
        self.vote_service = VoteService(db, payments)

    async def process_webhook(
        self,
        provider_name: str,
        payload: bytes,
        signature: str | None = None,
        headers: dict[str, str] | None = None,
        ip_address: str | None = None,
    ) -> WebhookAck:
        """
        Procesa un webhook de cualquier proveedor.

        Args:
            provider_name: "mtn", "orange" o "stripe"
            payload: Cuerpo crudo del request
            signature: Header de firma del proveedor, si firma
            headers: Headers del request
            ip_address: IP de origen

        Returns:
            WebhookAck con success=False si algo falló
        """
        try:
            data = self._verify(provider_name, payload, signature, headers)
        except WebhookVerificationError as e:
            logger.warning(
                "Webhook rejected",
                provider=provider_name,
                error=e.reason,
                ip_address=ip_address,
            )
            await self._log_failure(
                provider_name,
                event="rejected",
                reference=None,
                payload={"raw": _raw_body(payload), "error": e.reason},
                ip_address=ip_address,
            )
            return WebhookAck(success=False, message=e.reason)

        event: WebhookEvent | None = None

        try:
            event = self.payments.parse_webhook_event(provider_name, data)

            await self.webhook_repo.create(
                provider=provider_name,
                event=event.event_label or event.native_status,
                reference=event.lookup_reference,
                payload=data,
                ip_address=ip_address,
            )
            await self.db.commit()

            status = self.payments.normalize_status(provider_name, event.native_status)

            logger.info(
                "Webhook received",
                provider=provider_name,
                native_status=event.native_status,
                status=status.value,
                reference=event.reference,
                provider_reference=event.provider_reference,
            )

            if not event.lookup_reference:
                raise TransactionNotFoundError("<missing>")

            result = await self.vote_service.confirm_payment(
                event.lookup_reference,
                status,
                data,
                provider=provider_name,
            )

        except (VoteServiceError, SQLAlchemyError, ValueError, KeyError) as e:
            message = e.message if isinstance(e, VoteServiceError) else str(e)
            logger.error(
                "Webhook processing failed",
                provider=provider_name,
                error=message,
                error_type=type(e).__name__,
            )
            return await self._fail(provider_name, event, data, message, ip_address)

        except Exception as e:
            # Un webhook nunca termina en 5xx: se registra y se acusa recibo
            message = str(e) or type(e).__name__
            logger.exception(
                "Unexpected error processing webhook",
                provider=provider_name,
                error_type=type(e).__name__,
            )
            return await self._fail(provider_name, event, data, message, ip_address)

        return WebhookAck(
            success=True,
            message="Webhook processed" if result.applied else "Webhook acknowledged, no state change",
            reference=result.transaction.reference,
            status=result.status.value,
        )

    def _verify(
        self,
        provider_name: str,
        payload: bytes,
        signature: str | None,
        headers: dict[str, str] | None,
    ) -> dict[str, Any]:
        """
        Raises:
            WebhookVerificationError: Si el adapter rechaza el payload
        """
        verification = self.payments.verify_webhook_signature(
            provider_name, payload, signature, headers
        )
        if not verification.is_valid:
            raise WebhookVerificationError(verification.error or "Invalid webhook")
        return verification.data or {}

    async def _fail(
        self,
        provider_name: str,
        event: WebhookEvent | None,
        data: dict[str, Any],
        message: str,
        ip_address: str | None,
    ) -> WebhookAck:
        """Descarta la transacción en curso, registra el error y responde success=False."""
        await self.db.rollback()
        await self._log_failure(
            provider_name,
            event=(event.event_label or event.native_status) if event else "error",
            reference=event.lookup_reference if event else None,
            payload={**data, "error": message},
            ip_address=ip_address,
        )
        return WebhookAck(success=False, message=message)

    async def _log_failure(
        self,
        provider_name: str,
        event: str,
        reference: str | None,
        payload: dict[str, Any],
        ip_address: str | None,
    ) -> None:
        try:
            await self.webhook_repo.create(
                provider=provider_name,
                event=event,
                reference=reference,
                payload=payload,
                ip_address=ip_address,
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "Failed to write webhook log",
                provider=provider_name,
                error=str(e),
            )
