"""
Configuración del servicio de votos pagados.
Carga variables de entorno y define settings globales.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Literal


class Settings(BaseSettings):
    """Configuración principal del servicio."""

    # Aplicación
    APP_NAME: str = "Spotlight Vote Payments"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # Base de datos PostgreSQL
    DATABASE_URL: str

    # Redis para idempotencia de creación de votos
    REDIS_URL: str = "redis://localhost:6379/0"

    # Votos
    VOTE_PRICE: int = 500
    DEFAULT_CURRENCY: str = "XOF"

    # URL del frontend a la que vuelve el votante tras pagar
    PAYMENT_CALLBACK_URL: str = "http://localhost:3000/vote/callback"
    # URL pública de esta API (para construir las URLs de webhook)
    PUBLIC_API_URL: str = "http://localhost:4000/api"

    # Llamadas salientes a proveedores
    PROVIDER_TIMEOUT_SECONDS: float = 30.0
    TOKEN_EXPIRY_MARGIN_SECONDS: int = 300

    # MTN Mobile Money
    MTN_MOMO_API_USER: str = ""
    MTN_MOMO_API_KEY: str = ""
    MTN_MOMO_SUBSCRIPTION_KEY: str = ""
    MTN_MOMO_ENVIRONMENT: str = "sandbox"
    MTN_MOMO_BASE_URL: str = ""

    # Orange Money
    ORANGE_MONEY_CLIENT_ID: str = ""
    ORANGE_MONEY_CLIENT_SECRET: str = ""
    ORANGE_MONEY_MERCHANT_KEY: str = ""
    ORANGE_MONEY_BASE_URL: str = "https://api.orange.com/orange-money-webpay/dev/v1"
    ORANGE_MONEY_TOKEN_URL: str = "https://api.orange.com/oauth/v3/token"

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""

    @property
    def mtn_base_url(self) -> str:
        """URL base de MTN según el entorno (sandbox o producción)."""
        if self.MTN_MOMO_BASE_URL:
            return self.MTN_MOMO_BASE_URL
        if self.MTN_MOMO_ENVIRONMENT == "production":
            return "https://proxy.momoapi.mtn.com"
        return "https://sandbox.momoapi.mtn.com"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Retorna instancia cacheada de settings."""
    return Settings()


settings = get_settings()
