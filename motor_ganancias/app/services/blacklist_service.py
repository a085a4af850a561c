"""
blacklist_service.py
--------------------
Lista negra de usuarios del motor de ganancias.

Un usuario en la blacklist:
  - recibe score de riesgo 1.0 (crítico) sin evaluar otros factores
  - deja de ser elegible para payouts automáticos

Las entradas viven en la tabla user_blacklist (user_id único). Las
agrega el FraudAlertIngestor cuando un evento del procesador de pagos
confirma fraude; en ese caso blocked_by queda en NULL (bloqueo
automático del sistema).

Principio de diseño:
  - Nunca lanza excepción hacia el ingestor: un fallo al bloquear se
    loggea y se reporta como False, el webhook sigue su curso.
  - add() distingue "bloqueo nuevo" de "ya estaba bloqueado" para que
    la notificación a administradores se envíe una sola vez.
  - is_blocked() protege el camino del dinero: si la consulta falla,
    el usuario se trata como bloqueado.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)

FRAUD_TYPE_PAYMENT = "payment_fraud"


class BlacklistService:
    """
    Ejemplo de uso desde el ingestor:

        created = await blacklist.add(
            user_id  = user_id,
            reason   = "Auto-blocked: early fraud warning",
            metadata = {"charge_id": "ch_123"},
            source   = "early_fraud_warning",
        )
        if created:
            await notifier.send_fraud_block_alert(...)
    """

    def __init__(self, repository):
        self.repository = repository

    async def is_blocked(self, user_id: str) -> bool:
        """Si la blacklist no se puede consultar, el usuario cuenta como bloqueado."""
        try:
            return await self.repository.find(user_id) is not None
        except Exception as e:
            logger.error(
                f"[Blacklist] Error al verificar usuario {user_id}, "
                f"se trata como bloqueado: {e}"
            )
            return True

    async def add(
        self,
        user_id:    str,
        reason:     str,
        metadata:   dict,
        source:     str,
        blocked_by: Optional[str] = None,
    ) -> bool:
        """
        Agrega al usuario a la blacklist.

        Retorna True solo si la entrada se creó en esta llamada.
        False si ya existía o si hubo error (el error queda loggeado).
        """
        notes = json.dumps(
            {
                "auto_blocked": blocked_by is None,
                "source":       source,
                "metadata":     metadata,
                "blocked_at":   datetime.now(timezone.utc).isoformat(),
            },
            default=str,
        )

        try:
            created = await self.repository.insert(
                user_id    = user_id,
                reason     = reason,
                fraud_type = FRAUD_TYPE_PAYMENT,
                notes      = notes,
                blocked_by = blocked_by,
            )
        except Exception as e:
            logger.error(f"[Blacklist] Error al bloquear usuario {user_id}: {e}")
            return False

        if created:
            logger.warning(
                f"[Blacklist] Usuario bloqueado — "
                f"user={user_id}  source={source}  reason={reason}"
            )
        else:
            logger.info(f"[Blacklist] Usuario {user_id} ya estaba bloqueado")
        return created
