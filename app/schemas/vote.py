"""
Schemas para votos.
"""

from decimal import Decimal
from uuid import UUID

from pydantic import EmailStr, Field

from app.schemas.common import BaseSchema, TimestampMixin
from app.schemas.payment import PaymentMethod, PaymentStatus


# ============================================
# Request Schemas (entrada)
# ============================================

class VoteCreateRequest(BaseSchema):
    """
    Request para crear un voto.

    El teléfono es obligatorio para los métodos mobile money y el email
    para el pago con tarjeta; esa regla se valida en VoteService.
    """

    candidate_id: UUID = Field(..., description="ID del candidato")
    payment_method: PaymentMethod = Field(..., description="Método de pago elegido")
    phone: str | None = Field(
        None,
        pattern=r"^\+?[0-9]{8,15}$",
        description="Teléfono del votante (requerido para mobile money)",
    )
    email: EmailStr | None = Field(None, description="Email del votante (requerido para tarjeta)")
    voter_name: str | None = Field(None, max_length=100)
    message: str | None = Field(None, max_length=200)


# ============================================
# Response Schemas (salida)
# ============================================

class VoteResponse(BaseSchema, TimestampMixin):
    """Respuesta con datos de un voto."""

    id: UUID
    candidate_id: UUID
    phone: str | None = None
    email: str | None = None
    voter_name: str | None = None
    message: str | None = None
    amount: Decimal
    currency: str
    payment_method: PaymentMethod
    payment_status: PaymentStatus


class VoteCreateResponse(BaseSchema):
    """Respuesta al crear un voto (para frontend)."""

    vote: VoteResponse
    reference: str
    provider: str
    payment_url: str | None = None
    message: str | None = None
