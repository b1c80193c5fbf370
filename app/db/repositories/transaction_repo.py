"""
Repositorio para operaciones de Transaction.

La fila de la transacción es el punto de serialización: los cambios de
estado se hacen con un UPDATE condicionado al estado actual.
"""

from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Transaction
from app.schemas.payment import PaymentStatus


logger = structlog.get_logger(__name__)


class TransactionRepository:
    """Repositorio para operaciones CRUD de transacciones."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        vote_id: UUID,
        provider: str,
        reference: str,
        amount: Decimal,
        currency: str,
    ) -> Transaction:
        """Crea una transacción PENDING con nuestra referencia."""
        transaction = Transaction(
            vote_id=vote_id,
            provider=provider,
            reference=reference,
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING.value,
            provider_payload={},
        )

        self.db.add(transaction)
        await self.db.flush()
        await self.db.refresh(transaction)

        logger.info(
            "Transaction created",
            transaction_id=str(transaction.id),
            reference=reference,
            provider=provider,
        )
        return transaction

    async def get_by_id(self, transaction_id: UUID) -> Transaction | None:
        """Obtiene una transacción por ID."""
        result = await self.db.execute(
            select(Transaction).where(Transaction.id == transaction_id)
        )
        return result.scalar_one_or_none()

    async def get_by_reference(self, reference: str) -> Transaction | None:
        """Obtiene una transacción por nuestra referencia."""
        result = await self.db.execute(
            select(Transaction).where(Transaction.reference == reference)
        )
        return result.scalar_one_or_none()

    async def get_by_any_reference(self, reference: str) -> Transaction | None:
        """Busca por nuestra referencia o por la referencia del proveedor."""
        result = await self.db.execute(
            select(Transaction).where(
                or_(
                    Transaction.reference == reference,
                    Transaction.provider_reference == reference,
                )
            ).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_latest_for_vote(self, vote_id: UUID) -> Transaction | None:
        """Última transacción de un voto."""
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.vote_id == vote_id)
            .order_by(Transaction.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def set_provider_data(
        self,
        transaction: Transaction,
        provider_reference: str | None,
        payment_url: str | None,
        payload: dict[str, Any],
    ) -> Transaction:
        """Guarda lo que devolvió el proveedor al iniciar el pago."""
        transaction.provider_reference = provider_reference
        transaction.payment_url = payment_url
        transaction.provider_payload = payload
        await self.db.flush()
        await self.db.refresh(transaction)
        return transaction

    async def update_status_if(
        self,
        transaction: Transaction,
        status: PaymentStatus,
        allowed_from: Iterable[PaymentStatus],
        failure_reason: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> bool:
        """
        Cambia el estado solo si el actual está en `allowed_from`.

        Chequeo y escritura van en un mismo UPDATE; de dos llamadas
        concurrentes solo una ve rowcount 1.

        Returns:
            True si esta llamada hizo la transición
        """
        values: dict[str, Any] = {"status": status.value}
        if failure_reason is not None:
            values["failure_reason"] = failure_reason
        if payload is not None:
            values["provider_payload"] = payload

        result = await self.db.execute(
            update(Transaction)
            .where(Transaction.id == transaction.id)
            .where(Transaction.status.in_([s.value for s in allowed_from]))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()
        await self.db.refresh(transaction)

        applied = result.rowcount == 1

        logger.info(
            "Transaction status update",
            reference=transaction.reference,
            status=status.value,
            applied=applied,
        )
        return applied
