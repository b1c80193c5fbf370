"""
Repositorio para operaciones de Vote.
"""

from decimal import Decimal
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Vote
from app.schemas.payment import PaymentStatus


logger = structlog.get_logger(__name__)


class VoteRepository:
    """Repositorio para operaciones CRUD de votos."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        candidate_id: UUID,
        amount: Decimal,
        currency: str,
        payment_method: str,
        phone: str | None = None,
        email: str | None = None,
        voter_name: str | None = None,
        message: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Vote:
        """Crea un voto en estado PENDING."""
        vote = Vote(
            candidate_id=candidate_id,
            amount=amount,
            currency=currency,
            payment_method=payment_method,
            phone=phone,
            email=email,
            voter_name=voter_name,
            message=message,
            ip_address=ip_address,
            user_agent=user_agent,
            payment_status=PaymentStatus.PENDING.value,
        )

        self.db.add(vote)
        await self.db.flush()
        await self.db.refresh(vote)

        logger.info("Vote created", vote_id=str(vote.id))
        return vote

    async def get_by_id(self, vote_id: UUID) -> Vote | None:
        """Obtiene un voto por ID."""
        result = await self.db.execute(
            select(Vote).where(Vote.id == vote_id)
        )
        return result.scalar_one_or_none()

    async def update_status(self, vote_id: UUID, status: PaymentStatus) -> Vote | None:
        """Refleja en el voto el estado de su transacción."""
        await self.db.execute(
            update(Vote)
            .where(Vote.id == vote_id)
            .values(payment_status=status.value)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()

        vote = await self.get_by_id(vote_id)
        if vote is not None:
            await self.db.refresh(vote)
        return vote
