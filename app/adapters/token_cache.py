"""
Cache de access tokens OAuth (client credentials) por proveedor.
"""

import asyncio
import time
from typing import Awaitable, Callable

import structlog

from app.utils.exceptions import ProviderAuthError


logger = structlog.get_logger(__name__)

# Vida del token cuando el proveedor no envía expires_in
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600

TokenFetcher = Callable[[], Awaitable[tuple[str, int | None]]]


class ClientCredentialsToken:
    """
    Token OAuth cacheado en memoria con expiración absoluta.

    La expiración se guarda como timestamp: emisión + expires_in - margen.
    Un solo refresh a la vez; los demás llamadores esperan el lock y
    reutilizan el token nuevo.
    """

    def __init__(
        self,
        provider: str,
        fetch: TokenFetcher,
        margin_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ):
        self._provider = provider
        self._fetch = fetch
        self._margin = margin_seconds
        self._clock = clock
        self._lock = asyncio.Lock()
        self._token: str | None = None
        self._expires_at: float = 0.0

    @property
    def expires_at(self) -> float:
        return self._expires_at

    def _is_valid(self) -> bool:
        return self._token is not None and self._clock() < self._expires_at

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0

    async def get(self) -> str:
        """
        Retorna un token válido, renovándolo si expiró.

        Raises:
            ProviderAuthError: Si el intercambio de credenciales falla
        """
        if self._is_valid():
            return self._token

        async with self._lock:
            # Otro llamador pudo renovarlo mientras esperábamos
            if self._is_valid():
                return self._token

            issued_at = self._clock()
            try:
                token, expires_in = await self._fetch()
            except ProviderAuthError:
                raise
            except Exception as e:
                logger.error(
                    "Access token request failed",
                    provider=self._provider,
                    error=str(e),
                )
                raise ProviderAuthError(self._provider, str(e)) from e

            if not token:
                raise ProviderAuthError(self._provider, "empty access token")

            lifetime = expires_in or DEFAULT_TOKEN_LIFETIME_SECONDS
            self._token = token
            self._expires_at = issued_at + lifetime - self._margin

            logger.info(
                "Access token refreshed",
                provider=self._provider,
                expires_in=lifetime,
            )
            return self._token
