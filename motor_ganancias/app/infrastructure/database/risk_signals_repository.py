"""
risk_signals_repository.py
--------------------------
Consultas de solo lectura que alimentan al RiskAssessmentEngine:
blacklist, alertas pendientes, velocidad de transacciones y
antigüedad de la cuenta.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.models import FraudAlert, UserBlacklist, UserProfile, WalletTransaction


class RiskSignalsRepository:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def is_blacklisted(self, user_id: str) -> bool:
        result = await self.db.execute(
            select(UserBlacklist.id).where(UserBlacklist.user_id == user_id)
        )
        return result.first() is not None

    async def count_pending_alerts(self, user_id: str, since: datetime) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(FraudAlert)
            .where(
                FraudAlert.user_id == user_id,
                FraudAlert.status == "pending",
                FraudAlert.created_at >= since,
            )
        )
        return int(result.scalar_one() or 0)

    async def count_transactions(self, user_id: str, since: datetime) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(WalletTransaction)
            .where(
                WalletTransaction.user_id == user_id,
                WalletTransaction.created_at >= since,
            )
        )
        return int(result.scalar_one() or 0)

    async def get_account_created_at(self, user_id: str) -> Optional[datetime]:
        result = await self.db.execute(
            select(UserProfile.created_at).where(UserProfile.id == user_id)
        )
        return result.scalar_one_or_none()
