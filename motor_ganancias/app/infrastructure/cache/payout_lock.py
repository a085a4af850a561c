"""
payout_lock.py
--------------
Lock consultivo por usuario para payouts automáticos.

Mientras un payout está en vuelo (llamada externa + débito del ledger)
ningún otro intento del mismo usuario puede empezar. El lock vive en
Redis:

    SET payout:lock:{user_id} <token> NX PX <ttl_ms>

El token aleatorio asegura que solo quien adquirió el lock pueda
liberarlo: la liberación es un compare-and-delete atómico en Lua. Si el
proceso muere, el TTL libera el lock solo. El TTL debe ser mayor que el
timeout de la transferencia externa.

Uso:
    async with payout_lock.hold(user_id):
        ...  # payout
"""

import logging
import secrets
from contextlib import asynccontextmanager
from typing import AsyncIterator

from app.core.config import settings
from app.core.exceptions import ConflictError

logger = logging.getLogger(__name__)

KEY_PREFIX = "payout:lock"

# Borra la key solo si todavía contiene nuestro token
_RELEASE_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


class PayoutLock:

    def __init__(self, redis_client, ttl_seconds: int = settings.PAYOUT_LOCK_TTL_SEC):
        self.redis  = redis_client
        self.ttl_ms = int(ttl_seconds * 1000)

    async def acquire(self, user_id: str) -> str | None:
        """Retorna el token si se adquirió, None si ya estaba tomado."""
        token = secrets.token_hex(16)
        created = await self.redis.set(
            f"{KEY_PREFIX}:{user_id}", token, nx=True, px=self.ttl_ms
        )
        return token if created else None

    async def release(self, user_id: str, token: str) -> bool:
        try:
            deleted = await self.redis.eval(
                _RELEASE_SCRIPT, 1, f"{KEY_PREFIX}:{user_id}", token
            )
        except Exception as e:
            logger.error(f"[PayoutLock] Error liberando lock user={user_id}: {e}")
            return False

        if not deleted:
            logger.warning(f"[PayoutLock] Lock de user={user_id} ya había expirado")
        return bool(deleted)

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        try:
            token = await self.acquire(user_id)
        except Exception as e:
            logger.error(f"[PayoutLock] Redis no disponible user={user_id}: {e}")
            raise ConflictError(
                "No se pudo verificar si hay un payout en curso. Intenta de nuevo."
            )

        if token is None:
            logger.info(f"[PayoutLock] Payout en curso user={user_id}")
            raise ConflictError("Ya hay un payout en curso para este usuario.")

        try:
            yield
        finally:
            await self.release(user_id, token)
