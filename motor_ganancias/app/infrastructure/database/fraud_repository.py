"""
fraud_repository.py
-------------------
Persistencia de alertas de fraude y de la blacklist de usuarios.

Las escrituras lanzan excepción hacia el servicio que las usa: es el
servicio (FraudAlertIngestor / BlacklistService) quien decide
tragarse el error para no tumbar la entrega del webhook.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.models import FraudAlert, UserBlacklist

logger = logging.getLogger(__name__)


class FraudAlertRepository:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def exists_for_event(self, event_type: str, external_event_id: str) -> bool:
        result = await self.db.execute(
            select(func.count())
            .select_from(FraudAlert)
            .where(
                FraudAlert.event_type == event_type,
                FraudAlert.external_event_id == external_event_id,
            )
        )
        return (result.scalar_one() or 0) > 0

    async def create(
        self,
        user_id:           str,
        risk_score:        float,
        risk_level:        str,
        risk_factors:      list,
        fraud_stats:       dict,
        event_type:        str,
        external_event_id: Optional[str],
        status:            str = "pending",
    ) -> FraudAlert:
        alert = FraudAlert(
            id                = uuid.uuid4(),
            user_id           = user_id,
            risk_score        = risk_score,
            risk_level        = risk_level,
            risk_factors      = risk_factors,
            fraud_stats       = fraud_stats,
            event_type        = event_type,
            external_event_id = external_event_id,
            status            = status,
        )
        self.db.add(alert)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return alert


class BlacklistRepository:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find(self, user_id: str) -> Optional[UserBlacklist]:
        result = await self.db.execute(
            select(UserBlacklist).where(UserBlacklist.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def insert(
        self,
        user_id:    str,
        reason:     str,
        fraud_type: str,
        notes:      Optional[str],
        blocked_by: Optional[str],
    ) -> bool:
        """
        Inserta la entrada. Retorna False si el usuario ya estaba
        bloqueado (violación de unicidad), True si se creó.
        """
        entry = UserBlacklist(
            id         = uuid.uuid4(),
            user_id    = user_id,
            reason     = reason,
            fraud_type = fraud_type,
            notes      = notes,
            blocked_by = blocked_by,
        )
        self.db.add(entry)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return False
        return True
