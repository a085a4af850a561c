"""
ledger_repository.py
--------------------
Acceso al ledger de ganancias de red (earnings_ledger).

Regla única: el saldo nunca se lee-y-escribe desde Python. El débito es
una sola sentencia SQL, de modo que dos payouts concurrentes del mismo
usuario no pueden dejar el saldo negativo:

    UPDATE earnings_ledger
       SET available_cents = available_cents - :amount
     WHERE user_id = :user_id AND available_cents >= :amount
 RETURNING available_cents

Si el UPDATE no toca ninguna fila, el saldo no alcanzaba.
"""

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.models import EarningsLedger

logger = logging.getLogger(__name__)


class LedgerRepository:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_available(self, user_id: str) -> int:
        """Saldo disponible en centavos. Sin fila → 0."""
        result = await self.db.execute(
            select(EarningsLedger.available_cents).where(
                EarningsLedger.user_id == user_id
            )
        )
        value = result.scalar_one_or_none()
        return int(value) if value is not None else 0

    async def debit(self, user_id: str, amount_cents: int) -> Optional[int]:
        """
        Compare-and-decrement atómico.

        Retorna el saldo restante, o None si el saldo no cubría el monto
        (en ese caso no se modificó nada).
        """
        if amount_cents <= 0:
            raise ValueError("El monto a debitar debe ser mayor a cero.")

        result = await self.db.execute(
            update(EarningsLedger)
            .where(
                EarningsLedger.user_id == user_id,
                EarningsLedger.available_cents >= amount_cents,
            )
            .values(available_cents=EarningsLedger.available_cents - amount_cents)
            .returning(EarningsLedger.available_cents)
        )
        remaining = result.scalar_one_or_none()
        await self.db.commit()

        if remaining is None:
            logger.info(
                f"[Ledger] Débito rechazado por saldo insuficiente — "
                f"user={user_id}  amount={amount_cents}"
            )
            return None

        logger.info(
            f"[Ledger] Débito OK — user={user_id}  amount={amount_cents}  "
            f"remaining={remaining}"
        )
        return int(remaining)
