"""
Utilidades del servicio de votos pagados.
"""

from app.utils.hmac_utils import (
    generate_signature,
    verify_signature,
)
from app.utils.idempotency import (
    IdempotencyManager,
    InMemoryIdempotencyManager,
    get_idempotency_manager,
)

__all__ = [
    # HMAC
    "generate_signature",
    "verify_signature",
    # Idempotency
    "IdempotencyManager",
    "InMemoryIdempotencyManager",
    "get_idempotency_manager",
]
