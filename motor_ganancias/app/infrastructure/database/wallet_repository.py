"""
wallet_repository.py
--------------------
Movimiento manual de ganancias hacia la wallet interna.

Débito del ledger, crédito de la wallet y registro del movimiento van
en una sola transacción de base de datos: o se aplican los tres o
ninguno.
"""

import uuid
from typing import Optional, Tuple

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.models import EarningsLedger, WalletBalance, WalletTransaction


class WalletRepository:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def move_from_earnings(
        self, user_id: str, amount_cents: int, meta: dict
    ) -> Optional[Tuple[int, int]]:
        """
        Retorna (saldo_ledger_restante, saldo_wallet) o None si el
        ledger no cubría el monto.
        """
        try:
            debit = await self.db.execute(
                update(EarningsLedger)
                .where(
                    EarningsLedger.user_id == user_id,
                    EarningsLedger.available_cents >= amount_cents,
                )
                .values(available_cents=EarningsLedger.available_cents - amount_cents)
                .returning(EarningsLedger.available_cents)
            )
            remaining = debit.scalar_one_or_none()
            if remaining is None:
                await self.db.rollback()
                return None

            stmt = insert(WalletBalance).values(
                user_id=user_id, balance_cents=amount_cents
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[WalletBalance.user_id],
                set_={"balance_cents": WalletBalance.balance_cents + amount_cents},
            ).returning(WalletBalance.balance_cents)
            wallet_balance = (await self.db.execute(stmt)).scalar_one()

            self.db.add(
                WalletTransaction(
                    id           = uuid.uuid4(),
                    user_id      = user_id,
                    amount_cents = amount_cents,
                    kind         = "sale_commission",
                    meta         = meta,
                )
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        return int(remaining), int(wallet_balance)
