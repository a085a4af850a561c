"""
bank_transfer.py
----------------
Rail de transferencia bancaria (ACH) vía el API JSON del procesador.

El cuerpo es un createTransactionRequest con la cuenta destino armada
desde el identificador guardado "routing:account:nombre".

Particularidades del proveedor:
  - Responde HTTP 200 incluso en errores: el resultado real está en
    messages.resultCode ("Ok" | "Error").
  - El JSON de respuesta viene precedido por un BOM UTF-8.
  - refId admite como máximo 20 caracteres → se usa un hash corto de
    la idempotency key.

Llegada estimada: 5 días hábiles.
"""

import hashlib
import json
from typing import Optional

import httpx

from app.core.config_provider import RailCredentials
from app.core.exceptions import ExternalTransferError
from app.domain.schemas import PayoutRail
from app.services.rails.base import RailAdapter, TransferRequest, format_amount

PRODUCTION_API_URL = "https://api.authorize.net/xml/v1/request.api"
SANDBOX_API_URL    = "https://apitest.authorize.net/xml/v1/request.api"

REF_ID_MAX_LENGTH  = 20


def ref_id_for(idempotency_key: str) -> str:
    return hashlib.sha256(idempotency_key.encode()).hexdigest()[:REF_ID_MAX_LENGTH]


def split_identifier(identifier: str, user_id: str) -> tuple[str, str, str]:
    parts = identifier.split(":", 2)
    routing = parts[0] if len(parts) > 0 else ""
    account = parts[1] if len(parts) > 1 else ""
    name    = parts[2] if len(parts) > 2 and parts[2] else f"User {user_id}"
    return routing, account, name


class BankTransferRail(RailAdapter):
    rail                  = PayoutRail.BANK_TRANSFER
    credential_schema     = {
        "api_login_id":    ("clientId", "BANK_TRANSFER_API_LOGIN_ID"),
        "transaction_key": ("secret",   "BANK_TRANSFER_TRANSACTION_KEY"),
    }
    mode_env              = "BANK_TRANSFER_MODE"
    arrival_business_days = 5

    async def _send(
        self,
        client:      httpx.AsyncClient,
        request:     TransferRequest,
        credentials: RailCredentials,
    ) -> Optional[str]:
        url = PRODUCTION_API_URL if credentials.mode == "production" else SANDBOX_API_URL
        routing, account, name = split_identifier(
            request.account_identifier, request.user_id
        )
        ref_id = ref_id_for(request.idempotency_key)

        response = await client.post(
            url,
            json={
                "createTransactionRequest": {
                    "merchantAuthentication": {
                        "name":           credentials.values["api_login_id"],
                        "transactionKey": credentials.values["transaction_key"],
                    },
                    "refId": ref_id,
                    "transactionRequest": {
                        "transactionType": "refundTransaction",
                        "amount":          format_amount(request.amount_cents),
                        "payment": {
                            "bankAccount": {
                                "accountType":   "checking",
                                "routingNumber": routing,
                                "accountNumber": account,
                                "nameOnAccount": name,
                            }
                        },
                    },
                }
            },
        )
        if response.is_error:
            raise ExternalTransferError(
                f"transferencia bancaria rechazada (HTTP {response.status_code})"
            )

        try:
            result = json.loads(response.content.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise ExternalTransferError("respuesta malformada del proveedor")
        if not isinstance(result, dict):
            raise ExternalTransferError("respuesta malformada del proveedor")

        messages = result.get("messages") or {}
        if messages.get("resultCode") != "Ok":
            detail = (messages.get("message") or [{}])[0].get("text")
            raise ExternalTransferError(detail or "transferencia bancaria fallida")

        transaction = result.get("transactionResponse") or {}
        return transaction.get("transId") or ref_id
