"""
Factory para instanciar los proveedores de pago.
Registro fijo: agregar un proveedor requiere cambiar este módulo.
"""

import structlog

from app.adapters.base import PaymentProvider
from app.adapters.mtn_adapter import MtnMomoAdapter
from app.adapters.orange_adapter import OrangeMoneyAdapter
from app.adapters.stripe_adapter import StripeAdapter
from app.utils.exceptions import UnsupportedProviderError


logger = structlog.get_logger(__name__)


# Registro de proveedores disponibles
PROVIDERS: dict[str, type[PaymentProvider]] = {
    "mtn": MtnMomoAdapter,
    "orange": OrangeMoneyAdapter,
    "stripe": StripeAdapter,
}


def get_provider_by_name(name: str) -> PaymentProvider:
    """
    Crea un proveedor por nombre.

    Args:
        name: Clave del proveedor ("mtn", "orange", "stripe")

    Returns:
        Instancia del PaymentProvider

    Raises:
        UnsupportedProviderError: Si el proveedor no está registrado
    """
    key = name.lower()

    if key not in PROVIDERS:
        raise UnsupportedProviderError(name, list(PROVIDERS.keys()))

    return PROVIDERS[key]()


def build_providers() -> dict[str, PaymentProvider]:
    """Instancia todos los proveedores registrados (una vez por proceso)."""
    providers = {name: get_provider_by_name(name) for name in PROVIDERS}

    logger.info("Payment providers initialized", providers=list(providers))

    return providers
