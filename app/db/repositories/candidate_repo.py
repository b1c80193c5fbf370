"""
Repositorio para operaciones de Candidate.
Solo lectura y contadores: el catálogo se administra en otro servicio.
"""

from decimal import Decimal
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Candidate


logger = structlog.get_logger(__name__)


class CandidateRepository:
    """Repositorio de candidatos."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, candidate_id: UUID) -> Candidate | None:
        """Obtiene un candidato por ID."""
        result = await self.db.execute(
            select(Candidate).where(Candidate.id == candidate_id)
        )
        return result.scalar_one_or_none()

    async def increment_counters(self, candidate_id: UUID, amount: Decimal) -> None:
        """
        Suma un voto y su monto en un único UPDATE atómico.
        """
        await self.db.execute(
            update(Candidate)
            .where(Candidate.id == candidate_id)
            .values(
                vote_count=Candidate.vote_count + 1,
                total_revenue=Candidate.total_revenue + amount,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()

        logger.info(
            "Candidate counters incremented",
            candidate_id=str(candidate_id),
            amount=float(amount),
        )
