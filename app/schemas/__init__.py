"""
Schemas del servicio de votos pagados.
Exporta todos los schemas para fácil acceso.
"""

# Common
from app.schemas.common import (
    APIResponse,
    BaseSchema,
    ErrorResponse,
    TimestampMixin,
)

# Payment
from app.schemas.payment import (
    PaymentMethod,
    PaymentStatus,
    ProviderOperationResponse,
    ProviderStatusResponse,
    RefundRequest,
    TERMINAL_STATUSES,
)

# Vote
from app.schemas.vote import (
    VoteCreateRequest,
    VoteCreateResponse,
    VoteResponse,
)

# Webhook
from app.schemas.webhook import (
    MtnWebhookPayload,
    OrangeWebhookPayload,
    StripeWebhookEvent,
    WebhookAck,
)

__all__ = [
    # Common
    "APIResponse",
    "BaseSchema",
    "ErrorResponse",
    "TimestampMixin",
    # Payment
    "PaymentMethod",
    "PaymentStatus",
    "ProviderOperationResponse",
    "ProviderStatusResponse",
    "RefundRequest",
    "TERMINAL_STATUSES",
    # Vote
    "VoteCreateRequest",
    "VoteCreateResponse",
    "VoteResponse",
    # Webhook
    "MtnWebhookPayload",
    "OrangeWebhookPayload",
    "StripeWebhookEvent",
    "WebhookAck",
]
