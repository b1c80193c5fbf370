"""
Endpoints para webhooks entrantes de MTN, Orange y Stripe.

Siempre responden 200 con {success, message}.
"""

from fastapi import APIRouter, Depends, Header, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.database import get_db
from app.schemas import WebhookAck
from app.services import PaymentService, WebhookService, get_payment_service


router = APIRouter()


async def get_webhook_service(
    db: AsyncSession = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
) -> WebhookService:
    """Dependency para obtener WebhookService."""
    return WebhookService(db, payments)


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post(
    "/mtn",
    response_model=WebhookAck,
    status_code=status.HTTP_200_OK,
    summary="Webhook de MTN Mobile Money",
    description="Callback de request-to-pay. MTN no firma: se valida la forma del payload.",
)
async def mtn_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
):
    payload = await request.body()
    return await service.process_webhook(
        "mtn",
        payload,
        headers=dict(request.headers),
        ip_address=_client_ip(request),
    )


@router.post(
    "/orange",
    response_model=WebhookAck,
    status_code=status.HTTP_200_OK,
    summary="Webhook de Orange Money",
    description="Notificación firmada con HMAC-SHA256 en el header `X-Orange-Signature`.",
)
async def orange_webhook(
    request: Request,
    orange_signature: str | None = Header(None, alias="X-Orange-Signature"),
    service: WebhookService = Depends(get_webhook_service),
):
    payload = await request.body()
    return await service.process_webhook(
        "orange",
        payload,
        signature=orange_signature,
        headers=dict(request.headers),
        ip_address=_client_ip(request),
    )


@router.post(
    "/stripe",
    response_model=WebhookAck,
    status_code=status.HTTP_200_OK,
    summary="Webhook de Stripe",
    description="""
    Endpoint para recibir webhooks de Stripe.

    Valida la firma con el header `Stripe-Signature`.

    **Importante**: Este endpoint debe ser configurado en el dashboard de Stripe.
    """,
)
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    service: WebhookService = Depends(get_webhook_service),
):
    # Body crudo: la firma se calcula sobre los bytes exactos
    payload = await request.body()
    return await service.process_webhook(
        "stripe",
        payload,
        signature=stripe_signature,
        headers=dict(request.headers),
        ip_address=_client_ip(request),
    )
