"""
Capa de base de datos del servicio de votos pagados.
"""

from app.db.database import (
    get_db,
    init_db,
    close_db,
    AsyncSessionLocal,
    engine,
)
from app.db.models import (
    Base,
    Candidate,
    Transaction,
    Vote,
    WebhookLog,
)

__all__ = [
    # Database
    "get_db",
    "init_db",
    "close_db",
    "AsyncSessionLocal",
    "engine",
    # Models
    "Base",
    "Candidate",
    "Transaction",
    "Vote",
    "WebhookLog",
]
