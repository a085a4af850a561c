"""
payout_accounts.py
------------------
Gestión del destino de cobro de cada usuario.

Invariante: un usuario tiene como máximo UNA cuenta de cobro. Para
cambiar de rail primero hay que desconectar la actual.

Orden de validación de connect_*:
  1. payload                 → ValidationError
  2. cuenta existente
  3. otro rail ya conectado  → ConflictError
  4. rail habilitado         → RailDisabledError
Ninguna escritura ocurre antes de pasar los cuatro pasos.

Identificadores por rail:
  card_acquirer   acct_<24 hex>                 (generado aquí)
  digital_wallet  email normalizado
  bank_transfer   routing:account:titular
  global_payout   payee_id
"""

import logging
import secrets
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import ConflictError, RailDisabledError, ValidationError
from app.domain.schemas import (
    AccountStatus,
    BankTransferConnect,
    ConnectedAccount,
    ConnectResult,
    DigitalWalletConnect,
    DisconnectedAccount,
    DisconnectResult,
    GlobalPayoutConnect,
    PayoutRail,
)

logger = logging.getLogger(__name__)

RAIL_NAMES = {
    PayoutRail.CARD_ACQUIRER:  "Card acquirer",
    PayoutRail.DIGITAL_WALLET: "Digital wallet",
    PayoutRail.BANK_TRANSFER:  "Bank transfer",
    PayoutRail.GLOBAL_PAYOUT:  "Global payout",
}


def _parse(model: type[BaseModel], payload: Any) -> BaseModel:
    if not isinstance(payload, dict):
        raise ValidationError("Datos de la cuenta inválidos.")
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "payload"
        raise ValidationError(f"{field}: {first.get('msg')}")


def to_connected(account) -> ConnectedAccount:
    return ConnectedAccount(
        user_id            = account.user_id,
        rail               = account.rail,
        account_identifier = account.account_identifier,
        status             = AccountStatus(account.status),
        created_at         = account.created_at,
        updated_at         = account.updated_at,
    )


class PayoutAccountManager:

    def __init__(self, repository, config):
        self.repository = repository
        self.config     = config
        self._connectors: dict[PayoutRail, Callable[[str, Any], Awaitable[ConnectResult]]] = {
            PayoutRail.CARD_ACQUIRER:  lambda user_id, _payload: self.connect_card_acquirer(user_id),
            PayoutRail.DIGITAL_WALLET: self.connect_digital_wallet,
            PayoutRail.BANK_TRANSFER:  self.connect_bank_transfer,
            PayoutRail.GLOBAL_PAYOUT:  self.connect_global_payout,
        }

    # ------------------------------------------------------------------ #
    #  Lectura                                                            #
    # ------------------------------------------------------------------ #

    async def get_account(self, user_id: str) -> ConnectedAccount | DisconnectedAccount:
        account = await self.repository.find_by_user(user_id)
        if account is None:
            return DisconnectedAccount()
        return to_connected(account)

    # ------------------------------------------------------------------ #
    #  Conexión                                                           #
    # ------------------------------------------------------------------ #

    async def connect(self, user_id: str, rail: str, payload: Any = None) -> ConnectResult:
        try:
            target = PayoutRail(rail)
        except ValueError:
            raise ValidationError(f"Método de cobro desconocido: {rail}")
        return await self._connectors[target](user_id, payload or {})

    async def connect_card_acquirer(self, user_id: str) -> ConnectResult:
        existing = await self._preflight(user_id, PayoutRail.CARD_ACQUIRER)

        if existing is not None:
            if existing.status == AccountStatus.ACTIVE.value:
                return ConnectResult(account=to_connected(existing), created=False)
            account = await self.repository.update(
                user_id, PayoutRail.CARD_ACQUIRER.value, status=AccountStatus.ACTIVE.value
            )
            if account is None:
                raise ConflictError()
            logger.info(f"[PayoutAccounts] Cuenta card_acquirer reactivada user={user_id}")
            return ConnectResult(account=to_connected(account), created=False)

        identifier = f"acct_{secrets.token_hex(12)}"
        return await self._create(user_id, PayoutRail.CARD_ACQUIRER, identifier)

    async def connect_digital_wallet(self, user_id: str, payload: Any) -> ConnectResult:
        data = _parse(DigitalWalletConnect, payload)
        return await self._connect_with_identifier(
            user_id, PayoutRail.DIGITAL_WALLET, str(data.email)
        )

    async def connect_bank_transfer(self, user_id: str, payload: Any) -> ConnectResult:
        data = _parse(BankTransferConnect, payload)
        identifier = f"{data.routing_number}:{data.account_number}:{data.account_holder_name}"
        return await self._connect_with_identifier(
            user_id, PayoutRail.BANK_TRANSFER, identifier
        )

    async def connect_global_payout(self, user_id: str, payload: Any) -> ConnectResult:
        data = _parse(GlobalPayoutConnect, payload)
        return await self._connect_with_identifier(
            user_id, PayoutRail.GLOBAL_PAYOUT, data.payee_id
        )

    async def disconnect(self, user_id: str) -> DisconnectResult:
        account = await self.repository.find_by_user(user_id)
        if account is None:
            return DisconnectResult(removed=False)

        previous = to_connected(account)
        removed  = await self.repository.delete(user_id)
        if removed:
            logger.info(f"[PayoutAccounts] Cuenta {previous.rail} desconectada user={user_id}")
        return DisconnectResult(removed=removed, previous=previous if removed else None)

    # ------------------------------------------------------------------ #
    #  Pasos comunes                                                      #
    # ------------------------------------------------------------------ #

    async def _preflight(self, user_id: str, rail: PayoutRail):
        existing = await self.repository.find_by_user(user_id)

        if existing is not None and existing.rail != rail.value:
            raise ConflictError(
                "Ya tienes otro método de cobro conectado. "
                "Desconéctalo antes de conectar uno nuevo."
            )

        enabled = await self.config.get_enabled_rails()
        if rail not in enabled:
            raise RailDisabledError(f"{RAIL_NAMES[rail]} payouts are not enabled.")

        return existing

    async def _connect_with_identifier(
        self, user_id: str, rail: PayoutRail, identifier: str
    ) -> ConnectResult:
        existing = await self._preflight(user_id, rail)

        if existing is None:
            return await self._create(user_id, rail, identifier)

        if (
            existing.account_identifier == identifier
            and existing.status == AccountStatus.ACTIVE.value
        ):
            return ConnectResult(account=to_connected(existing), created=False)

        account = await self.repository.update(
            user_id,
            rail.value,
            account_identifier = identifier,
            status             = AccountStatus.ACTIVE.value,
        )
        if account is None:
            # El usuario desconectó o cambió de rail entre la lectura y la escritura
            raise ConflictError()

        logger.info(f"[PayoutAccounts] Cuenta {rail.value} actualizada user={user_id}")
        return ConnectResult(account=to_connected(account), created=False)

    async def _create(
        self, user_id: str, rail: PayoutRail, identifier: Optional[str]
    ) -> ConnectResult:
        account = await self.repository.create(
            user_id            = user_id,
            rail               = rail.value,
            account_identifier = identifier,
            status             = AccountStatus.ACTIVE.value,
        )
        logger.info(f"[PayoutAccounts] Cuenta {rail.value} conectada user={user_id}")
        return ConnectResult(account=to_connected(account), created=True)
