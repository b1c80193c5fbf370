"""
Orquestador de proveedores de pago.
Único componente que sabe que existen varios proveedores.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Any

import structlog

from app.adapters import (
    InitPaymentParams,
    PaymentProvider,
    PaymentResult,
    TransactionStatusResult,
    WebhookEvent,
    WebhookVerification,
    build_providers,
)
from app.schemas.payment import PaymentMethod, PaymentStatus
from app.utils.exceptions import UnsupportedPaymentMethodError, UnsupportedProviderError


logger = structlog.get_logger(__name__)


# Método de pago elegido por el votante -> clave de proveedor
METHOD_PROVIDERS: dict[PaymentMethod, str] = {
    PaymentMethod.MTN_MOBILE_MONEY: "mtn",
    PaymentMethod.ORANGE_MONEY: "orange",
    PaymentMethod.CARD: "stripe",
}


class PaymentService:
    """
    Resuelve un nombre lógico de proveedor y delega en su adapter.

    Sin estado propio más allá del mapa de proveedores construido al
    arrancar.
    """

    def __init__(self, providers: dict[str, PaymentProvider] | None = None):
        self._providers = providers if providers is not None else build_providers()

    def get_provider(self, name: str) -> PaymentProvider:
        """
        Raises:
            UnsupportedProviderError: Si el proveedor no existe
        """
        provider = self._providers.get(name.lower())
        if provider is None:
            raise UnsupportedProviderError(name, self.available_providers())
        return provider

    def available_providers(self) -> list[str]:
        return list(self._providers.keys())

    def provider_for_method(self, payment_method: PaymentMethod | str) -> str:
        """Clave de proveedor para un método de pago."""
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise UnsupportedPaymentMethodError(str(payment_method))
        return METHOD_PROVIDERS[method]

    async def initialize_payment(self, provider_name: str, params: InitPaymentParams) -> PaymentResult:
        provider = self.get_provider(provider_name)

        logger.info(
            "Initializing payment",
            provider=provider.provider_name,
            reference=params.reference,
            amount=float(params.amount),
            currency=params.currency,
        )

        return await provider.initialize_payment(params)

    async def get_transaction_status(self, provider_name: str, provider_reference: str) -> TransactionStatusResult:
        return await self.get_provider(provider_name).get_transaction_status(provider_reference)

    def verify_webhook_signature(
        self,
        provider_name: str,
        payload: bytes,
        signature: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> WebhookVerification:
        return self.get_provider(provider_name).verify_webhook_signature(payload, signature, headers)

    def parse_webhook_event(self, provider_name: str, data: dict[str, Any]) -> WebhookEvent:
        return self.get_provider(provider_name).parse_webhook_event(data)

    def normalize_status(self, provider_name: str, native_status: str | None) -> PaymentStatus:
        return self.get_provider(provider_name).normalize_status(native_status)

    async def refund_transaction(
        self,
        provider_name: str,
        provider_reference: str,
        amount: Decimal | None = None,
    ) -> PaymentResult:
        provider = self.get_provider(provider_name)

        logger.info(
            "Refund requested",
            provider=provider.provider_name,
            provider_reference=provider_reference,
            amount=float(amount) if amount is not None else None,
        )

        return await provider.refund_transaction(provider_reference, amount)

    async def aclose(self) -> None:
        for provider in self._providers.values():
            await provider.aclose()


@lru_cache()
def get_payment_service() -> PaymentService:
    """Instancia compartida por proceso (dependency de FastAPI)."""
    return PaymentService()
