"""
Adapters para proveedores de pago.
Implementación del patrón Adapter para MTN MoMo, Orange Money y Stripe.
"""

from app.adapters.base import (
    InitPaymentParams,
    PaymentProvider,
    PaymentResult,
    TransactionStatusResult,
    WebhookEvent,
    WebhookVerification,
)
from app.adapters.mtn_adapter import MtnMomoAdapter
from app.adapters.orange_adapter import OrangeMoneyAdapter
from app.adapters.stripe_adapter import StripeAdapter
from app.adapters.factory import PROVIDERS, build_providers, get_provider_by_name

__all__ = [
    "InitPaymentParams",
    "PaymentProvider",
    "PaymentResult",
    "TransactionStatusResult",
    "WebhookEvent",
    "WebhookVerification",
    "MtnMomoAdapter",
    "OrangeMoneyAdapter",
    "StripeAdapter",
    "PROVIDERS",
    "build_providers",
    "get_provider_by_name",
]
