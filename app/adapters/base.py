"""
Interfaz base abstracta para proveedores de pago.
Define el contrato que MTN, Orange y Stripe deben implementar.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from app.schemas.payment import PaymentStatus


@dataclass
class InitPaymentParams:
    """
    Parámetros para iniciar un pago.

    `reference` es nuestra referencia (TXN-...), generada antes de llamar
    al proveedor.
    """

    amount: Decimal
    currency: str
    reference: str
    callback_url: str
    webhook_url: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    customer_name: str | None = None
    description: str | None = None


@dataclass
class PaymentResult:
    """
    Resultado normalizado de initialize_payment y refund_transaction.
    Todos los adapters deben retornar esta estructura.
    """

    success: bool
    provider: str
    provider_reference: str | None = None
    payment_url: str | None = None
    message: str | None = None
    error: str | None = None
    raw_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransactionStatusResult:
    """Estado de una transacción consultada al proveedor."""

    status: PaymentStatus
    provider_reference: str
    amount: Decimal = Decimal(0)
    currency: str = ""
    native_status: str | None = None
    message: str | None = None
    raw_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookVerification:
    """Resultado de verificar un webhook entrante."""

    is_valid: bool
    data: dict[str, Any] | None = None
    error: str | None = None


@dataclass
class WebhookEvent:
    """
    Evento de webhook ya verificado, en formato común.

    `reference` es nuestra referencia cuando el payload la trae;
    `provider_reference` es el ID del proveedor.
    """

    provider: str
    native_status: str
    provider_reference: str | None = None
    reference: str | None = None
    event_label: str | None = None
    raw_data: dict[str, Any] = field(default_factory=dict)

    @property
    def lookup_reference(self) -> str | None:
        """Referencia a usar para encontrar la transacción."""
        return self.reference or self.provider_reference


class PaymentProvider(ABC):
    """
    Interfaz abstracta para proveedores de pago.

    Cada adapter es dueño de sus credenciales y de su vocabulario de
    estados. Ningún método deja escapar errores de red o del SDK: se
    convierten en resultados con success=False o estado PENDING.
    """

    # Estado nativo (normalizado por _status_key) -> estado interno
    STATUS_MAP: dict[str, PaymentStatus] = {}

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Clave del proveedor ('mtn', 'orange', 'stripe')."""
        pass

    @abstractmethod
    async def initialize_payment(self, params: InitPaymentParams) -> PaymentResult:
        """
        Inicia un pago en el proveedor.

        Se llama una sola vez por referencia; no reintenta.

        Args:
            params: Monto, moneda, referencia y datos del votante

        Returns:
            PaymentResult con provider_reference y payment_url si aplica
        """
        pass

    @abstractmethod
    async def get_transaction_status(self, provider_reference: str) -> TransactionStatusResult:
        """
        Consulta el estado de una transacción.

        Args:
            provider_reference: ID de la transacción en el proveedor

        Returns:
            TransactionStatusResult con el estado ya normalizado
        """
        pass

    @abstractmethod
    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> WebhookVerification:
        """
        Verifica la autenticidad de un webhook.

        Args:
            payload: Cuerpo crudo del request
            signature: Header de firma, si el proveedor firma
            headers: Headers del request

        Returns:
            WebhookVerification con el payload parseado si es válido
        """
        pass

    @abstractmethod
    def parse_webhook_event(self, data: dict[str, Any]) -> WebhookEvent:
        """Extrae referencias y estado nativo de un payload verificado."""
        pass

    async def refund_transaction(
        self,
        provider_reference: str,
        amount: Decimal | None = None,
    ) -> PaymentResult:
        """Reembolso total o parcial. Por defecto no soportado."""
        return PaymentResult(
            success=False,
            provider=self.provider_name,
            provider_reference=provider_reference,
            error=f"Refund not supported by {self.provider_name}",
        )

    async def aclose(self) -> None:
        """Libera recursos del adapter (clientes HTTP)."""

    def _status_key(self, native_status: str) -> str:
        return native_status.strip().upper()

    def normalize_status(self, native_status: str | None) -> PaymentStatus:
        """
        Mapea un estado nativo al estado interno.

        Un estado desconocido nunca es COMPLETED: cae en PENDING.
        """
        if not native_status:
            return PaymentStatus.PENDING
        return self.STATUS_MAP.get(self._status_key(native_status), PaymentStatus.PENDING)
