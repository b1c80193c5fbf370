"""
Endpoints para votos pagados.
"""

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.database import get_db
from app.schemas import (
    APIResponse,
    VoteCreateRequest,
    VoteCreateResponse,
    VoteResponse,
)
from app.services import PaymentService, VoteService, get_payment_service
from app.utils.exceptions import (
    CandidateNotFoundError,
    MissingContactError,
    PaymentProviderError,
    UnsupportedPaymentMethodError,
    UnsupportedProviderError,
    VoteNotFoundError,
)
from app.utils.idempotency import get_idempotency_manager


logger = structlog.get_logger(__name__)

router = APIRouter()


async def get_vote_service(
    db: AsyncSession = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
) -> VoteService:
    """Dependency para obtener VoteService."""
    return VoteService(db, payments)


@router.post(
    "",
    response_model=APIResponse[VoteCreateResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Crear un voto pagado",
    description="""
    Crea un voto y arranca el pago con el proveedor del método elegido.

    - `MTN_MOBILE_MONEY` y `ORANGE_MONEY` requieren `phone`
    - `CARD` requiere `email`
    - Soporta idempotencia via header `Idempotency-Key`
    - El voto queda `PENDING` hasta confirmación por webhook o consulta
    """,
)
async def create_vote(
    vote_request: VoteCreateRequest,
    request: Request,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
    service: VoteService = Depends(get_vote_service),
    idempotency_manager=Depends(get_idempotency_manager),
):
    """Crea un voto."""
    if idempotency_key:
        cached = await idempotency_manager.get_cached_response(idempotency_key)
        if cached:
            logger.info("Returning cached vote response", idempotency_key=idempotency_key)
            return APIResponse(
                success=True,
                message="Vote retrieved from cache (idempotent)",
                data=VoteCreateResponse(**cached),
            )

        if await idempotency_manager.is_processing(idempotency_key):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Request with this idempotency key is already being processed",
            )

    try:
        result = await service.create(
            vote_request,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
        response = VoteCreateResponse(
            vote=VoteResponse.model_validate(result.vote),
            reference=result.transaction.reference,
            provider=result.provider,
            payment_url=result.transaction.payment_url,
            message=result.message,
        )

        if idempotency_key:
            await idempotency_manager.cache_response(
                idempotency_key,
                response.model_dump(mode="json"),
            )

        return APIResponse(
            success=True,
            message="Vote created, awaiting payment",
            data=response,
        )

    except (MissingContactError, UnsupportedPaymentMethodError, UnsupportedProviderError) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message,
        )
    except CandidateNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=e.message,
        )
    except PaymentProviderError as e:
        logger.error("Payment provider error", error=e.message)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=e.message,
        )
    finally:
        if idempotency_key:
            await idempotency_manager.release_lock(idempotency_key)


@router.get(
    "/{vote_id}",
    response_model=APIResponse[VoteResponse],
    summary="Obtener un voto por ID",
)
async def get_vote(
    vote_id: UUID,
    service: VoteService = Depends(get_vote_service),
):
    """Obtiene un voto tal como está guardado."""
    try:
        vote = await service.get_vote(vote_id)
        return APIResponse(
            success=True,
            data=VoteResponse.model_validate(vote),
        )
    except VoteNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=e.message,
        )


@router.get(
    "/{vote_id}/status",
    response_model=APIResponse[VoteResponse],
    summary="Verificar el estado del pago de un voto",
    description="Consulta al proveedor si el pago sigue abierto y aplica el resultado.",
)
async def check_vote_status(
    vote_id: UUID,
    service: VoteService = Depends(get_vote_service),
):
    """Consulta y reconcilia el estado del pago."""
    try:
        vote = await service.check_payment_status(vote_id)
        return APIResponse(
            success=True,
            data=VoteResponse.model_validate(vote),
        )
    except VoteNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=e.message,
        )
