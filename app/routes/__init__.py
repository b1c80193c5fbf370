"""
Rutas/Endpoints del servicio de votos pagados.
"""

from app.routes.payments import router as payments_router
from app.routes.votes import router as votes_router
from app.routes.webhooks import router as webhooks_router

__all__ = [
    "payments_router",
    "votes_router",
    "webhooks_router",
]
