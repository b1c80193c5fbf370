"""
Schemas para webhooks entrantes de los proveedores de pago.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ============================================
# Payloads nativos de cada proveedor
# ============================================

class MtnPayer(BaseModel):
    """Payer informado por MTN MoMo."""

    partyIdType: str
    partyId: str


class MtnWebhookPayload(BaseModel):
    """
    Callback de MTN Mobile Money (request-to-pay).

    MTN no firma sus callbacks: el payload se considera válido si trae
    los campos requeridos.
    """

    model_config = ConfigDict(extra="allow")

    referenceId: str = Field(..., min_length=1, description="X-Reference-Id de la solicitud")
    status: str = Field(..., min_length=1, description="SUCCESSFUL, FAILED, PENDING")
    externalId: str | None = Field(None, description="Nuestra referencia")
    amount: str | float | None = None
    currency: str | None = None
    reason: str | dict[str, Any] | None = None
    payer: MtnPayer | None = None


class OrangeWebhookPayload(BaseModel):
    """Notificación de Orange Money Web Payment."""

    model_config = ConfigDict(extra="allow")

    pay_token: str | None = Field(None, description="Token de pago de Orange")
    order_id: str | None = Field(None, description="Nuestra referencia")
    status: str = Field(..., min_length=1, description="SUCCESS, FAILED, PENDING, EXPIRED")
    amount: str | float | None = None
    txnid: str | None = None
    message: str | None = None
    customer_msisdn: str | None = None


class StripeWebhookEvent(BaseModel):
    """Evento de webhook de Stripe (estructura simplificada)."""

    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    data: dict[str, Any]
    created: int | None = None
    livemode: bool = False


# ============================================
# Respuestas y auditoría
# ============================================

class WebhookAck(BaseModel):
    """
    Acuse de recibo devuelto a los proveedores.

    Siempre se responde 200: los proveedores reintentan agresivamente ante
    respuestas no-2xx.
    """

    success: bool
    message: str
    reference: str | None = None
    status: str | None = None
