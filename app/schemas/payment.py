"""
Schemas para pagos y transacciones.
"""

from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import Field

from app.schemas.common import BaseSchema


class PaymentStatus(str, Enum):
    """
    Estados posibles de un pago, compartidos por Vote y Transaction.

    PENDING y PROCESSING son transitorios; COMPLETED, FAILED y CANCELLED
    son terminales y nunca se sobrescriben.
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED}
)


class PaymentMethod(str, Enum):
    """Métodos de pago que el votante puede elegir."""

    MTN_MOBILE_MONEY = "MTN_MOBILE_MONEY"
    ORANGE_MONEY = "ORANGE_MONEY"
    CARD = "CARD"

    @property
    def is_mobile_money(self) -> bool:
        return self in (PaymentMethod.MTN_MOBILE_MONEY, PaymentMethod.ORANGE_MONEY)


# ============================================
# Response Schemas (salida)
# ============================================

class ProviderStatusResponse(BaseSchema):
    """Estado de una transacción tal como lo reporta el proveedor."""

    provider: str
    provider_reference: str
    status: PaymentStatus
    amount: Decimal
    currency: str
    message: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class RefundRequest(BaseSchema):
    """Request para reembolsar una transacción (total si no hay monto)."""

    amount: Decimal | None = Field(None, gt=0)


class ProviderOperationResponse(BaseSchema):
    """Resultado de una operación directa sobre un proveedor."""

    success: bool
    provider_reference: str | None = None
    message: str | None = None
    error: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
