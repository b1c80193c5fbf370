"""
Repositorios para operaciones de base de datos.
"""

from app.db.repositories.candidate_repo import CandidateRepository
from app.db.repositories.transaction_repo import TransactionRepository
from app.db.repositories.vote_repo import VoteRepository
from app.db.repositories.webhook_repo import WebhookLogRepository

__all__ = [
    "CandidateRepository",
    "TransactionRepository",
    "VoteRepository",
    "WebhookLogRepository",
]
