"""
payout_repository.py
--------------------
Repositorios de cuentas de cobro, preferencias de umbral y
transacciones de payout.

La unicidad de payout_accounts.user_id es la garantía final de "un
solo destino por usuario": si dos conexiones concurrentes pasan el
chequeo en Python, la segunda choca contra el índice y se traduce a
ConflictError.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError
from app.domain.models import PayoutAccount, PayoutPreference, PayoutTransaction

logger = logging.getLogger(__name__)


class PayoutAccountRepository:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_by_user(self, user_id: str) -> Optional[PayoutAccount]:
        result = await self.db.execute(
            select(PayoutAccount).where(PayoutAccount.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        user_id: str,
        rail: str,
        account_identifier: str,
        status: str,
    ) -> PayoutAccount:
        account = PayoutAccount(
            id                 = uuid.uuid4(),
            user_id            = user_id,
            rail               = rail,
            account_identifier = account_identifier,
            status             = status,
        )
        self.db.add(account)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.warning(f"[PayoutAccounts] Conexión concurrente rechazada user={user_id}")
            raise ConflictError()

        await self.db.refresh(account)
        return account

    async def update(self, user_id: str, rail: str, **fields) -> Optional[PayoutAccount]:
        """Actualiza la cuenta solo si sigue perteneciendo al mismo rail."""
        account = await self.find_by_user(user_id)
        if account is None or account.rail != rail:
            return None

        for key, value in fields.items():
            setattr(account, key, value)
        await self.db.commit()
        await self.db.refresh(account)
        return account

    async def delete(self, user_id: str) -> bool:
        result = await self.db.execute(
            delete(PayoutAccount).where(PayoutAccount.user_id == user_id)
        )
        await self.db.commit()
        return result.rowcount > 0


class PayoutPreferenceRepository:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_threshold(self, user_id: str) -> Optional[int]:
        result = await self.db.execute(
            select(PayoutPreference.auto_payout_threshold_cents).where(
                PayoutPreference.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    async def upsert_threshold(self, user_id: str, threshold_cents: int) -> None:
        stmt = insert(PayoutPreference).values(
            user_id=user_id, auto_payout_threshold_cents=threshold_cents
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[PayoutPreference.user_id],
            set_={"auto_payout_threshold_cents": threshold_cents},
        )
        await self.db.execute(stmt)
        await self.db.commit()


class PayoutTransactionRepository:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create(
        self,
        user_id:           str,
        rail:              str,
        external_id:       str,
        amount_cents:      int,
        currency:          str,
        status:            str,
        estimated_arrival: Optional[datetime],
    ) -> PayoutTransaction:
        tx = PayoutTransaction(
            id                = uuid.uuid4(),
            user_id           = user_id,
            rail              = rail,
            external_id       = external_id,
            amount_cents      = amount_cents,
            currency          = currency,
            status            = status,
            estimated_arrival = estimated_arrival,
        )
        self.db.add(tx)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return tx
