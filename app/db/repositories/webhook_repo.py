"""
Repositorio para WebhookLog (append-only).
"""

from typing import Any, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import WebhookLog


logger = structlog.get_logger(__name__)


class WebhookLogRepository:
    """Los logs de webhook solo se insertan y se leen."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        provider: str,
        event: str,
        payload: dict[str, Any],
        reference: str | None = None,
        ip_address: str | None = None,
    ) -> WebhookLog:
        """Registra un webhook recibido."""
        webhook_log = WebhookLog(
            provider=provider,
            event=event[:100],
            reference=reference,
            payload=payload,
            ip_address=ip_address,
        )

        self.db.add(webhook_log)
        await self.db.flush()
        await self.db.refresh(webhook_log)

        logger.info(
            "Incoming webhook logged",
            webhook_id=str(webhook_log.id),
            provider=provider,
            event=event,
            reference=reference,
        )
        return webhook_log

    async def list_by_reference(self, reference: str) -> Sequence[WebhookLog]:
        """Lista los webhooks recibidos para una referencia."""
        result = await self.db.execute(
            select(WebhookLog)
            .where(WebhookLog.reference == reference)
            .order_by(WebhookLog.created_at)
        )
        return result.scalars().all()

    async def list_by_provider(self, provider: str, limit: int = 50) -> Sequence[WebhookLog]:
        """Últimos webhooks de un proveedor."""
        result = await self.db.execute(
            select(WebhookLog)
            .where(WebhookLog.provider == provider)
            .order_by(WebhookLog.created_at.desc())
            .limit(limit)
        )
        return result.scalars().all()
