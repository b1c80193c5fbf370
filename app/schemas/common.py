"""
Piezas compartidas por los schemas de votos y pagos.
"""

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict


T = TypeVar("T")


class BaseSchema(BaseModel):
    """Base de los schemas; se construyen también desde modelos ORM."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class TimestampMixin(BaseModel):
    created_at: datetime
    updated_at: datetime | None = None


class APIResponse(BaseModel, Generic[T]):
    """
    Envoltorio de las respuestas de /api/votes y /api/payments.

    Los webhooks no lo usan: responden WebhookAck.
    """

    success: bool = True
    message: str | None = None
    data: T | None = None
    errors: list[str] | None = None


class ErrorResponse(BaseModel):
    """Cuerpo de los 500 no mapeados por las rutas."""

    success: bool = False
    message: str
    errors: list[str] | None = None
    request_id: str | None = None
