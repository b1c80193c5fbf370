"""
Control de idempotencia para la creación de votos.
Evita que un mismo Idempotency-Key cree dos votos (y dos cobros).
"""

import json
from datetime import timedelta
from typing import Any

import structlog
import redis.asyncio as redis
from redis.exceptions import RedisError

from app.config import settings


logger = structlog.get_logger(__name__)

# Tiempo de expiración de claves de idempotencia (24 horas)
IDEMPOTENCY_TTL_HOURS = 24
# Duración máxima del lock mientras se procesa un request
PROCESSING_LOCK_SECONDS = 60


class IdempotencyManager:
    """
    Gestor de idempotencia usando Redis.

    Guarda la respuesta de POST /votes bajo el Idempotency-Key para
    devolverla tal cual si el cliente reintenta.
    """

    def __init__(self, redis_client: redis.Redis, prefix: str = "vote-idempotency:"):
        self._redis = redis_client
        self._prefix = prefix

    def _make_key(self, idempotency_key: str) -> str:
        return f"{self._prefix}{idempotency_key}"

    def _make_lock_key(self, idempotency_key: str) -> str:
        return f"{self._prefix}lock:{idempotency_key}"

    async def get_cached_response(
        self,
        idempotency_key: str,
    ) -> dict[str, Any] | None:
        """
        Obtiene una respuesta cacheada por Idempotency-Key.

        Returns:
            Respuesta cacheada o None si no existe
        """
        try:
            data = await self._redis.get(self._make_key(idempotency_key))

            if data:
                logger.info(
                    "Idempotency cache hit",
                    idempotency_key=idempotency_key,
                )
                return json.loads(data)

            return None

        except RedisError as e:
            logger.error(
                "Redis error getting idempotency key",
                error=str(e),
                idempotency_key=idempotency_key,
            )
            # Sin Redis el request continúa
            return None

    async def cache_response(
        self,
        idempotency_key: str,
        response: dict[str, Any],
        ttl_hours: int = IDEMPOTENCY_TTL_HOURS,
    ) -> bool:
        """Cachea una respuesta para una Idempotency-Key."""
        try:
            await self._redis.setex(
                self._make_key(idempotency_key),
                timedelta(hours=ttl_hours),
                json.dumps(response, default=str),
            )

            logger.info(
                "Response cached for idempotency",
                idempotency_key=idempotency_key,
                ttl_hours=ttl_hours,
            )
            return True

        except RedisError as e:
            logger.error(
                "Redis error caching response",
                error=str(e),
                idempotency_key=idempotency_key,
            )
            return False

    async def is_processing(self, idempotency_key: str) -> bool:
        """
        Intenta tomar el lock de procesamiento para la key.

        Returns:
            True si otro request ya lo tiene (SET NX falló)
        """
        try:
            acquired = await self._redis.set(
                self._make_lock_key(idempotency_key),
                "processing",
                nx=True,
                ex=PROCESSING_LOCK_SECONDS,
            )
            return not acquired

        except RedisError as e:
            logger.error(
                "Redis error checking processing lock",
                error=str(e),
                idempotency_key=idempotency_key,
            )
            return False

    async def release_lock(self, idempotency_key: str) -> None:
        """Libera el lock de procesamiento."""
        try:
            await self._redis.delete(self._make_lock_key(idempotency_key))
        except RedisError as e:
            logger.error(
                "Redis error releasing lock",
                error=str(e),
                idempotency_key=idempotency_key,
            )


class InMemoryIdempotencyManager:
    """
    Implementación en memoria para desarrollo sin Redis.

    NO USAR EN PRODUCCIÓN - no es persistente ni distribuido.
    """

    def __init__(self):
        self._cache: dict[str, dict[str, Any]] = {}
        self._locks: set[str] = set()

    async def get_cached_response(self, idempotency_key: str) -> dict[str, Any] | None:
        return self._cache.get(idempotency_key)

    async def cache_response(
        self,
        idempotency_key: str,
        response: dict[str, Any],
        ttl_hours: int = IDEMPOTENCY_TTL_HOURS,
    ) -> bool:
        self._cache[idempotency_key] = response
        return True

    async def is_processing(self, idempotency_key: str) -> bool:
        if idempotency_key in self._locks:
            return True
        self._locks.add(idempotency_key)
        return False

    async def release_lock(self, idempotency_key: str) -> None:
        self._locks.discard(idempotency_key)


# Singletons
_redis_client: redis.Redis | None = None
_idempotency_manager: IdempotencyManager | InMemoryIdempotencyManager | None = None


async def get_redis_client() -> redis.Redis:
    """Obtiene o crea el cliente Redis."""
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
        logger.info("Redis client initialized", url=settings.REDIS_URL.split("@")[-1])

    return _redis_client


async def get_idempotency_manager() -> IdempotencyManager | InMemoryIdempotencyManager:
    """
    Obtiene el gestor de idempotencia.

    Si Redis no responde al arrancar se usa la implementación en memoria.
    """
    global _idempotency_manager

    if _idempotency_manager is None:
        try:
            redis_client = await get_redis_client()
            await redis_client.ping()
            _idempotency_manager = IdempotencyManager(redis_client)
        except RedisError as e:
            logger.warning(
                "Failed to connect to Redis, using in-memory idempotency",
                error=str(e),
            )
            _idempotency_manager = InMemoryIdempotencyManager()

    return _idempotency_manager


async def close_redis() -> None:
    """Cierra la conexión de Redis."""
    global _redis_client, _idempotency_manager

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")
    _idempotency_manager = None
