"""
Ciclo de vida de votos y transacciones.
Crea votos PENDING y aplica las transiciones que llegan por webhook o
por consulta de estado.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters import InitPaymentParams
from app.config import settings
from app.db.models import Transaction, Vote
from app.db.repositories import (
    CandidateRepository,
    TransactionRepository,
    VoteRepository,
)
from app.schemas.payment import PaymentMethod, PaymentStatus
from app.schemas.vote import VoteCreateRequest
from app.services.payment_service import PaymentService
from app.utils.exceptions import (
    CandidateNotFoundError,
    MissingContactError,
    PaymentProviderError,
    TransactionNotFoundError,
    VoteNotFoundError,
)


logger = structlog.get_logger(__name__)


# Estados desde los que se puede llegar a cada estado.
# Un estado no terminal nunca retrocede (PROCESSING no vuelve a PENDING).
ALLOWED_PREDECESSORS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.PENDING, PaymentStatus.PROCESSING}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.PENDING, PaymentStatus.PROCESSING}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING, PaymentStatus.PROCESSING}),
    PaymentStatus.CANCELLED: frozenset({PaymentStatus.PENDING, PaymentStatus.PROCESSING}),
}


def generate_reference(now: datetime | None = None) -> str:
    """Nuestra referencia de transacción: TXN-YYYYMMDD-XXXXXXXXXXXX."""
    now = now or datetime.now(timezone.utc)
    return f"TXN-{now:%Y%m%d}-{uuid4().hex[:12].upper()}"


@dataclass
class VoteCreateResult:
    vote: Vote
    transaction: Transaction
    provider: str
    message: str | None = None


@dataclass
class ConfirmResult:
    """
    Resultado de confirm_payment.

    `applied` es True solo para la llamada que hizo la transición.
    """

    transaction: Transaction
    status: PaymentStatus
    applied: bool


class VoteService:
    """
    Servicio de votos.

    Dueño de los registros Vote y Transaction; la fila de la transacción
    es el único punto de serialización entre webhooks y consultas.
    """

    def __init__(self, db: AsyncSession, payments: PaymentService):
        self.db = db
        self.payments = payments
        self.vote_repo = VoteRepository(db)
        self.transaction_repo = TransactionRepository(db)
        self.candidate_repo = CandidateRepository(db)

    async def create(
        self,
        request: VoteCreateRequest,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> VoteCreateResult:
        """
        Crea un voto y arranca el pago.

        1. Resuelve el proveedor y valida el contacto (antes de escribir)
        2. Persiste Vote + Transaction PENDING y hace commit
        3. Llama una sola vez al proveedor
        4. Si falla, marca ambos FAILED, hace commit y lanza PaymentProviderError

        Raises:
            UnsupportedPaymentMethodError, MissingContactError,
            CandidateNotFoundError, PaymentProviderError
        """
        provider_name = self.payments.provider_for_method(request.payment_method)
        method = PaymentMethod(request.payment_method)

        if method.is_mobile_money and not request.phone:
            raise MissingContactError(method.value, "phone")
        if method == PaymentMethod.CARD and not request.email:
            raise MissingContactError(method.value, "email")

        candidate = await self.candidate_repo.get_by_id(request.candidate_id)
        if candidate is None:
            raise CandidateNotFoundError(str(request.candidate_id))

        amount = Decimal(settings.VOTE_PRICE)
        currency = settings.DEFAULT_CURRENCY

        vote = await self.vote_repo.create(
            candidate_id=candidate.id,
            amount=amount,
            currency=currency,
            payment_method=method.value,
            phone=request.phone,
            email=request.email,
            voter_name=request.voter_name,
            message=request.message,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        transaction = await self.transaction_repo.create(
            vote_id=vote.id,
            provider=provider_name,
            reference=generate_reference(),
            amount=amount,
            currency=currency,
        )
        await self.db.commit()

        params = InitPaymentParams(
            amount=amount,
            currency=currency,
            reference=transaction.reference,
            callback_url=settings.PAYMENT_CALLBACK_URL,
            webhook_url=f"{settings.PUBLIC_API_URL.rstrip('/')}/webhooks/{provider_name}",
            customer_email=request.email,
            customer_phone=request.phone,
            customer_name=request.voter_name,
            description=f"Vote for {candidate.name}",
        )

        try:
            result = await self.payments.initialize_payment(provider_name, params)
        except Exception as e:
            logger.error(
                "Payment initialization raised",
                provider=provider_name,
                reference=transaction.reference,
                error=str(e),
            )
            await self._fail_initialization(vote, transaction, str(e) or type(e).__name__, {})
            raise PaymentProviderError(provider_name, str(e) or type(e).__name__) from e

        if not result.success:
            reason = result.error or result.message or "Payment initialization failed"
            await self._fail_initialization(vote, transaction, reason, result.raw_data)
            raise PaymentProviderError(provider_name, reason)

        await self.transaction_repo.set_provider_data(
            transaction,
            provider_reference=result.provider_reference,
            payment_url=result.payment_url,
            payload=result.raw_data,
        )
        await self.db.commit()

        logger.info(
            "Vote payment initiated",
            vote_id=str(vote.id),
            reference=transaction.reference,
            provider=provider_name,
            provider_reference=result.provider_reference,
        )

        return VoteCreateResult(
            vote=vote,
            transaction=transaction,
            provider=provider_name,
            message=result.message,
        )

    async def _fail_initialization(
        self,
        vote: Vote,
        transaction: Transaction,
        reason: str,
        payload: dict[str, Any],
    ) -> None:
        # Commit explícito: get_db hace rollback cuando la excepción sube
        await self.transaction_repo.update_status_if(
            transaction,
            PaymentStatus.FAILED,
            ALLOWED_PREDECESSORS[PaymentStatus.FAILED],
            failure_reason=reason,
            payload=payload,
        )
        await self.vote_repo.update_status(vote.id, PaymentStatus.FAILED)
        await self.db.commit()
        await self.db.refresh(vote)

        logger.warning(
            "Vote payment initialization failed",
            vote_id=str(vote.id),
            reference=transaction.reference,
            reason=reason,
        )

    async def confirm_payment(
        self,
        reference: str,
        new_status: PaymentStatus,
        raw_payload: dict[str, Any] | None = None,
        provider: str | None = None,
    ) -> ConfirmResult:
        """
        Aplica un estado reportado por el proveedor.

        Idempotente: un estado terminal no se sobrescribe y los contadores
        del candidato solo se incrementan en la transición ganadora a
        COMPLETED.

        Args:
            reference: Nuestra referencia o la del proveedor
            new_status: Estado ya normalizado
            raw_payload: Snapshot del proveedor a guardar
            provider: Si se indica, la transacción debe ser de ese proveedor

        Raises:
            TransactionNotFoundError: Si no hay transacción para la referencia
        """
        transaction = await self.transaction_repo.get_by_any_reference(reference)
        if transaction is None:
            raise TransactionNotFoundError(reference)
        if provider is not None and transaction.provider != provider:
            logger.warning(
                "Reference belongs to another provider",
                reference=reference,
                expected=provider,
                actual=transaction.provider,
            )
            raise TransactionNotFoundError(reference)

        current = PaymentStatus(transaction.status)

        if current.is_terminal:
            logger.debug(
                "Transaction already terminal, ignoring update",
                reference=transaction.reference,
                current=current.value,
                reported=new_status.value,
            )
            return ConfirmResult(transaction=transaction, status=current, applied=False)

        allowed = ALLOWED_PREDECESSORS[new_status]
        if current == new_status or current not in allowed:
            logger.debug(
                "Status update would not advance transaction",
                reference=transaction.reference,
                current=current.value,
                reported=new_status.value,
            )
            return ConfirmResult(transaction=transaction, status=current, applied=False)

        failure_reason = None
        if new_status in (PaymentStatus.FAILED, PaymentStatus.CANCELLED):
            failure_reason = f"Provider reported {new_status.value}"

        applied = await self.transaction_repo.update_status_if(
            transaction,
            new_status,
            allowed,
            failure_reason=failure_reason,
            payload=raw_payload or None,
        )
        if not applied:
            # Otra llamada concurrente ganó la transición
            return ConfirmResult(
                transaction=transaction,
                status=PaymentStatus(transaction.status),
                applied=False,
            )

        vote = await self.vote_repo.update_status(transaction.vote_id, new_status)

        if new_status == PaymentStatus.COMPLETED and vote is not None:
            await self.candidate_repo.increment_counters(vote.candidate_id, transaction.amount)

        await self.db.commit()

        logger.info(
            "Payment status confirmed",
            reference=transaction.reference,
            previous=current.value,
            status=new_status.value,
        )

        return ConfirmResult(transaction=transaction, status=new_status, applied=True)

    async def get_vote(self, vote_id: UUID) -> Vote:
        """
        Raises:
            VoteNotFoundError: Si el voto no existe
        """
        vote = await self.vote_repo.get_by_id(vote_id)
        if vote is None:
            raise VoteNotFoundError(str(vote_id))
        return vote

    async def get_transaction(self, vote_id: UUID) -> Transaction | None:
        return await self.transaction_repo.get_latest_for_vote(vote_id)

    async def check_payment_status(self, vote_id: UUID) -> Vote:
        """
        Consulta al proveedor si el pago sigue abierto.

        Sin llamada externa si la transacción ya es terminal o si el
        proveedor nunca la aceptó (sin provider_reference).
        """
        vote = await self.get_vote(vote_id)
        transaction = await self.transaction_repo.get_latest_for_vote(vote.id)

        if transaction is None:
            return vote
        if PaymentStatus(transaction.status).is_terminal or not transaction.provider_reference:
            return vote

        result = await self.payments.get_transaction_status(
            transaction.provider,
            transaction.provider_reference,
        )

        logger.info(
            "Payment status polled",
            reference=transaction.reference,
            provider=transaction.provider,
            status=result.status.value,
            message=result.message,
        )

        await self.confirm_payment(transaction.reference, result.status, result.raw_data)

        await self.db.refresh(vote)
        return vote
