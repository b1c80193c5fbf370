"""
Endpoints de consulta directa a los proveedores de pago.
La protección de acceso (admin) la aplica el gateway.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from app.schemas import (
    APIResponse,
    ProviderOperationResponse,
    ProviderStatusResponse,
    RefundRequest,
)
from app.services import PaymentService, get_payment_service
from app.utils.exceptions import UnsupportedProviderError


logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/providers",
    response_model=APIResponse[list[str]],
    summary="Listar proveedores disponibles",
)
async def list_providers(
    payments: PaymentService = Depends(get_payment_service),
):
    return APIResponse(success=True, data=payments.available_providers())


@router.get(
    "/status/{provider}/{provider_reference}",
    response_model=APIResponse[ProviderStatusResponse],
    summary="Consultar el estado de una transacción en el proveedor",
)
async def get_provider_status(
    provider: str,
    provider_reference: str,
    payments: PaymentService = Depends(get_payment_service),
):
    """No modifica el estado guardado; solo informa lo que dice el proveedor."""
    try:
        result = await payments.get_transaction_status(provider, provider_reference)
    except UnsupportedProviderError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message,
        )

    return APIResponse(
        success=True,
        data=ProviderStatusResponse(
            provider=provider.lower(),
            provider_reference=result.provider_reference,
            status=result.status,
            amount=result.amount,
            currency=result.currency,
            message=result.message,
            data=result.raw_data,
        ),
    )


@router.post(
    "/refund/{provider}/{provider_reference}",
    response_model=APIResponse[ProviderOperationResponse],
    summary="Reembolsar una transacción",
)
async def refund_transaction(
    provider: str,
    provider_reference: str,
    refund: RefundRequest | None = None,
    payments: PaymentService = Depends(get_payment_service),
):
    try:
        result = await payments.refund_transaction(
            provider,
            provider_reference,
            refund.amount if refund else None,
        )
    except UnsupportedProviderError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message,
        )

    if not result.success:
        logger.warning(
            "Refund not completed",
            provider=provider,
            provider_reference=provider_reference,
            error=result.error,
        )

    return APIResponse(
        success=result.success,
        message=result.message or result.error,
        data=ProviderOperationResponse(
            success=result.success,
            provider_reference=result.provider_reference,
            message=result.message,
            error=result.error,
            data=result.raw_data,
        ),
    )
