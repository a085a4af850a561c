"""
redis_client.py
---------------
Cliente Redis del motor de ganancias.

Hoy solo lo usa PayoutLock (un lock por usuario mientras un payout
está en vuelo), así que el pool es chico y los timeouts cortos: si
Redis no responde, es preferible rechazar el payout que esperar.

Uso en FastAPI (app/main.py, lifespan):
    await redis_manager.connect()
    ...
    await redis_manager.disconnect()
"""

import asyncio
import logging

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import BusyLoadingError, ConnectionError, TimeoutError

from app.core.config import settings

logger = logging.getLogger(__name__)


class RedisManager:

    def __init__(self):
        self.client: redis.Redis | None = None

    async def connect(self) -> None:
        """Crea el pool y verifica con PING. Falla al arrancar si Redis no está."""
        logger.info(f"[Redis] Conectando a {settings.REDIS_URL} ...")

        self.client = redis.Redis.from_url(
            settings.REDIS_URL,
            max_connections        = 50,
            socket_timeout         = 1.0,
            socket_connect_timeout = 2.0,
            health_check_interval  = 30,
            retry                  = Retry(
                backoff          = ExponentialBackoff(cap=0.5, base=0.1),
                retries          = 2,
                supported_errors = (ConnectionError, TimeoutError, BusyLoadingError),
            ),
            decode_responses       = False,
        )

        if not await self.ping():
            raise ConnectionError("[Redis] No responde al arrancar")
        logger.info("[Redis] Conexión establecida")

    async def disconnect(self) -> None:
        if self.client is None:
            return
        try:
            await self.client.aclose()
            logger.info("[Redis] Conexiones cerradas")
        except Exception as e:
            logger.error(f"[Redis] Error al cerrar conexiones: {e}")
        finally:
            self.client = None

    async def ping(self) -> bool:
        """Health check para /health y para el arranque."""
        if self.client is None:
            return False
        try:
            return bool(await asyncio.wait_for(self.client.ping(), timeout=2.0))
        except asyncio.TimeoutError:
            logger.error("[Redis] PING sin respuesta en 2s")
        except Exception as e:
            logger.error(f"[Redis] PING falló: {e}")
        return False


# Singleton
redis_manager = RedisManager()
