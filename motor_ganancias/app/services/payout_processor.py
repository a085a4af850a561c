"""
payout_processor.py
-------------------
Orquestador de payouts automáticos del motor de ganancias.

Flujo de process_auto_payout():

    ELEGIBILIDAD ──► LOCK ──► DESPACHO ──► TRANSFERENCIA ──► DÉBITO ──► REGISTRO
     (sin efectos)   (Redis)   (tabla rail)  (httpx ≤15s)     (atómico)  (pending)

Reglas:
  - Cualquier excepción antes del DÉBITO significa que no se movió dinero.
  - El monto del payout es el saldo disponible completo.
  - Umbral efectivo = min(max(mínimo, preferencia o mínimo), máximo).
  - La elegibilidad se vuelve a evaluar ya con el lock tomado: otro
    proceso pudo haber pagado o desconectado la cuenta mientras tanto.
  - Una vez que el proveedor aceptó la transferencia, el débito nunca se
    reintenta. Si el UPDATE condicional no encuentra saldo, el incidente
    se loggea como error y el resultado lleva ledger_debited=False.
  - El registro en payout_transactions es best-effort: su fallo se
    loggea y no cambia el resultado.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from app.core.config import settings
from app.core.exceptions import (
    ExternalTransferError,
    InsufficientFundsError,
    NotEligibleError,
    PayoutsDisabledError,
    ValidationError,
)
from app.domain.schemas import (
    AccountStatus,
    AutoPayoutStatus,
    ConnectedAccount,
    PaymentMode,
    PayoutOutcome,
    PayoutRail,
    PayoutStatus,
    ThresholdUpdate,
    WalletTransferResult,
)
from app.services.payout_accounts import to_connected

logger = logging.getLogger(__name__)

TRANSFER_FAILED_PREFIX = "Payout failed: "


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _money(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class _Eligibility:
    """Foto del estado del usuario al evaluar un payout."""
    account:         Any
    rail:            PayoutRail
    available_cents: int
    minimum_cents:   int
    threshold_cents: int

    @property
    def meets_threshold(self) -> bool:
        return self.available_cents >= self.threshold_cents


class PayoutProcessor:

    def __init__(
        self,
        ledger,
        accounts,
        preferences,
        transactions,
        wallets,
        blacklist,
        config,
        lock,
        rails:    dict,
        clock:    Callable[[], datetime] = _utcnow,
        timeout:  float = settings.PAYOUT_TIMEOUT_SEC,
        currency: str = settings.PAYOUT_CURRENCY,
    ):
        self.ledger       = ledger
        self.accounts     = accounts
        self.preferences  = preferences
        self.transactions = transactions
        self.wallets      = wallets
        self.blacklist    = blacklist
        self.config       = config
        self.lock         = lock
        self.rails        = rails
        self.clock        = clock
        self.timeout      = timeout
        self.currency     = currency

    # ------------------------------------------------------------------ #
    #  Payout automático                                                  #
    # ------------------------------------------------------------------ #

    async def process_auto_payout(self, user_id: str) -> PayoutOutcome:
        eligibility = await self._check_eligibility(user_id)
        if not eligibility.meets_threshold:
            return self._below_threshold(eligibility)

        async with self.lock.hold(user_id):
            eligibility = await self._check_eligibility(user_id)
            if not eligibility.meets_threshold:
                return self._below_threshold(eligibility)

            return await self._disburse(user_id, eligibility)

    async def _disburse(self, user_id: str, eligibility: _Eligibility) -> PayoutOutcome:
        adapter = self.rails.get(eligibility.rail)
        if adapter is None:
            raise NotEligibleError(
                f"El método de cobro {eligibility.rail.value} no admite payouts automáticos."
            )

        credentials = await adapter.validate_credentials()
        amount      = eligibility.available_cents
        request     = adapter.build_request(
            user_id            = user_id,
            account_identifier = eligibility.account.account_identifier,
            amount_cents       = amount,
            currency           = self.currency,
            now                = self.clock(),
        )

        logger.info(
            f"[Payout] Iniciando — user={user_id}  rail={eligibility.rail.value}  "
            f"amount={amount}  key={request.idempotency_key}"
        )

        try:
            result = await asyncio.wait_for(
                adapter.transfer(request, credentials), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"[Payout] Timeout de {self.timeout:.0f}s user={user_id}")
            raise ExternalTransferError(
                f"{TRANSFER_FAILED_PREFIX}el proveedor no respondió en {self.timeout:.0f}s"
            )
        except ExternalTransferError as e:
            logger.error(f"[Payout] Rechazado user={user_id}: {e.message}")
            raise ExternalTransferError(f"{TRANSFER_FAILED_PREFIX}{e.message}")
        except Exception as e:
            logger.error(f"[Payout] Error inesperado user={user_id}: {e}")
            raise ExternalTransferError(f"{TRANSFER_FAILED_PREFIX}{e}")

        ledger_debited = await self._debit_after_transfer(
            user_id, amount, result.external_id
        )

        try:
            await self.transactions.create(
                user_id           = user_id,
                rail              = eligibility.rail.value,
                external_id       = result.external_id,
                amount_cents      = amount,
                currency          = self.currency,
                status            = PayoutStatus.PENDING.value,
                estimated_arrival = result.estimated_arrival,
            )
        except Exception as e:
            logger.error(
                f"[Payout] No se pudo registrar la transacción {result.external_id} "
                f"user={user_id}: {e}"
            )

        logger.info(
            f"[Payout] Completado — user={user_id}  amount={amount}  "
            f"payout_id={result.external_id}  ledger_debited={ledger_debited}"
        )
        return PayoutOutcome(
            processed         = True,
            amount_cents      = amount,
            payout_id         = result.external_id,
            estimated_arrival = result.estimated_arrival,
            threshold_cents   = eligibility.threshold_cents,
            rail              = eligibility.rail,
            ledger_debited    = ledger_debited,
        )

    async def _debit_after_transfer(
        self, user_id: str, amount: int, external_id: str
    ) -> bool:
        # El dinero ya salió: nunca se lanza excepción desde aquí
        try:
            remaining = await self.ledger.debit(user_id, amount)
        except Exception as e:
            logger.error(
                f"[Payout] INCIDENTE: transferencia {external_id} aceptada pero el "
                f"débito falló user={user_id} amount={amount}: {e}"
            )
            return False

        if remaining is None:
            logger.error(
                f"[Payout] INCIDENTE: transferencia {external_id} aceptada pero el "
                f"saldo ya no cubría el monto user={user_id} amount={amount}"
            )
            return False
        return True

    @staticmethod
    def _below_threshold(eligibility: _Eligibility) -> PayoutOutcome:
        return PayoutOutcome(
            processed       = False,
            reason          = "below_threshold",
            message         = (
                f"Saldo disponible {_money(eligibility.available_cents)} por debajo "
                f"del umbral de payout {_money(eligibility.threshold_cents)}."
            ),
            available_cents = eligibility.available_cents,
            minimum_cents   = eligibility.minimum_cents,
            threshold_cents = eligibility.threshold_cents,
        )

    # ------------------------------------------------------------------ #
    #  Elegibilidad                                                       #
    # ------------------------------------------------------------------ #

    async def _threshold(self, user_id: str) -> tuple[int, int]:
        minimum    = await self.config.get_minimum_payout_cents()
        maximum    = self.config.get_maximum_payout_cents()
        preference = await self.preferences.find_threshold(user_id)
        threshold  = min(max(minimum, preference if preference is not None else minimum), maximum)
        return minimum, threshold

    async def _check_eligibility(self, user_id: str) -> _Eligibility:
        if await self.config.get_payment_mode() == PaymentMode.MANUAL:
            raise PayoutsDisabledError()

        account = await self.accounts.find_by_user(user_id)
        if account is None:
            raise NotEligibleError("No tienes un método de cobro conectado.")

        try:
            rail = PayoutRail(account.rail)
        except ValueError:
            raise NotEligibleError(f"Método de cobro no soportado: {account.rail}")

        if account.status != AccountStatus.ACTIVE.value:
            raise NotEligibleError(
                f"La cuenta {rail.value} está en estado {account.status}; "
                "debe estar activa para recibir payouts."
            )
        if not account.account_identifier:
            raise NotEligibleError("La cuenta de cobro no tiene identificador.")

        if await self.blacklist.is_blocked(user_id):
            logger.warning(f"[Payout] Usuario en blacklist user={user_id}")
            raise NotEligibleError("El usuario no es elegible para payouts.")

        minimum, threshold = await self._threshold(user_id)
        available = await self.ledger.get_available(user_id)

        return _Eligibility(
            account         = account,
            rail            = rail,
            available_cents = available,
            minimum_cents   = minimum,
            threshold_cents = threshold,
        )

    # ------------------------------------------------------------------ #
    #  Estado y preferencias                                              #
    # ------------------------------------------------------------------ #

    async def get_auto_payout_status(self, user_id: str) -> AutoPayoutStatus:
        mode               = await self.config.get_payment_mode()
        minimum, threshold = await self._threshold(user_id)
        available          = await self.ledger.get_available(user_id)
        account            = await self.accounts.find_by_user(user_id)

        connected: Optional[ConnectedAccount] = to_connected(account) if account else None
        enabled = mode == PaymentMode.AUTOMATIC

        eligible = (
            enabled
            and account is not None
            and account.rail in {r.value for r in PayoutRail}
            and account.status == AccountStatus.ACTIVE.value
            and bool(account.account_identifier)
            and available >= threshold
            and not await self.blacklist.is_blocked(user_id)
        )

        return AutoPayoutStatus(
            enabled         = enabled,
            eligible        = eligible,
            available_cents = available,
            minimum_cents   = minimum,
            maximum_cents   = self.config.get_maximum_payout_cents(),
            threshold_cents = threshold,
            payment_mode    = mode,
            payout_account  = connected,
        )

    async def update_auto_payout_threshold(
        self, user_id: str, payload: ThresholdUpdate | dict
    ) -> AutoPayoutStatus:
        if isinstance(payload, ThresholdUpdate):
            value = payload.threshold_cents
        elif isinstance(payload, dict):
            value = payload.get("threshold_cents")
        else:
            raise ValidationError("Datos del umbral inválidos.")

        if not _is_int(value):
            raise ValidationError("threshold_cents debe ser un número entero de centavos.")

        minimum = await self.config.get_minimum_payout_cents()
        maximum = self.config.get_maximum_payout_cents()
        if value < minimum or value > maximum:
            raise ValidationError(
                f"El umbral debe estar entre {_money(minimum)} y {_money(maximum)}."
            )

        await self.preferences.upsert_threshold(user_id, value)
        logger.info(f"[Payout] Umbral actualizado user={user_id}  threshold={value}")
        return await self.get_auto_payout_status(user_id)

    # ------------------------------------------------------------------ #
    #  Transferencia a wallet interna                                     #
    # ------------------------------------------------------------------ #

    async def transfer_to_wallet(self, user_id: str, amount_cents: Any) -> WalletTransferResult:
        if not _is_int(amount_cents) or amount_cents <= 0:
            raise ValidationError("El monto debe ser un entero positivo de centavos.")

        moved = await self.wallets.move_from_earnings(
            user_id,
            amount_cents,
            meta={"source": "network_earnings", "type": "earnings_transfer"},
        )
        if moved is None:
            available = await self.ledger.get_available(user_id)
            raise InsufficientFundsError(
                f"Saldo insuficiente: disponible {_money(available)}, "
                f"solicitado {_money(amount_cents)}."
            )

        remaining, wallet_balance = moved
        logger.info(
            f"[Payout] Transferencia a wallet — user={user_id}  amount={amount_cents}  "
            f"remaining={remaining}"
        )
        return WalletTransferResult(
            transferred_cents    = amount_cents,
            available_cents      = remaining,
            wallet_balance_cents = wallet_balance,
        )
