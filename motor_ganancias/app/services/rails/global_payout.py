"""
global_payout.py
----------------
Rail de payouts globales hacia un payee registrado en el programa de la
plataforma.

POST {base}/{program_id}/payouts con Basic auth (username:password).
client_reference_id = idempotency key → el proveedor rechaza un segundo
payout con la misma referencia.

Llegada estimada: 3 días hábiles.
"""

from typing import Optional

import httpx

from app.core.config_provider import RailCredentials
from app.core.exceptions import ExternalTransferError
from app.domain.schemas import PayoutRail
from app.services.rails.base import (
    RailAdapter,
    TransferRequest,
    error_detail,
    format_amount,
)

PRODUCTION_API_URL = "https://api.payoneer.com/v2/programs"
SANDBOX_API_URL    = "https://api.sandbox.payoneer.com/v2/programs"


class GlobalPayoutRail(RailAdapter):
    rail                  = PayoutRail.GLOBAL_PAYOUT
    credential_schema     = {
        "program_id": ("clientId",       "GLOBAL_PAYOUT_PROGRAM_ID"),
        "username":   ("publishableKey", "GLOBAL_PAYOUT_USERNAME"),
        "password":   ("secret",         "GLOBAL_PAYOUT_PASSWORD"),
    }
    mode_env              = "GLOBAL_PAYOUT_MODE"
    arrival_business_days = 3

    async def _send(
        self,
        client:      httpx.AsyncClient,
        request:     TransferRequest,
        credentials: RailCredentials,
    ) -> Optional[str]:
        base = PRODUCTION_API_URL if credentials.mode == "production" else SANDBOX_API_URL

        response = await client.post(
            f"{base}/{credentials.values['program_id']}/payouts",
            auth=(credentials.values["username"], credentials.values["password"]),
            json={
                "payee_id":            request.account_identifier,
                "amount":              format_amount(request.amount_cents),
                "currency":            request.currency,
                "client_reference_id": request.idempotency_key,
                "description":         f"Payout for user {request.user_id}",
            },
        )
        if response.is_error:
            raise ExternalTransferError(
                error_detail(response, ("description",))
                or f"payout rechazado (HTTP {response.status_code})"
            )

        return self._json(response).get("payout_id") or request.idempotency_key
