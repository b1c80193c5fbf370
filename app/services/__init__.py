"""
Servicios de negocio del servicio de votos pagados.
"""

from app.services.payment_service import PaymentService, get_payment_service
from app.services.vote_service import ConfirmResult, VoteCreateResult, VoteService
from app.services.webhook_service import WebhookService

__all__ = [
    "PaymentService",
    "get_payment_service",
    "ConfirmResult",
    "VoteCreateResult",
    "VoteService",
    "WebhookService",
]
