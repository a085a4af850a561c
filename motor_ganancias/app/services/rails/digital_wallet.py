"""
digital_wallet.py
-----------------
Rail de billetera digital (payouts por email del receptor).

Flujo en dos llamadas:
  1. POST /v1/oauth2/token          → access token (Basic client_id:secret)
  2. POST /v1/payments/payouts      → lote de un solo item
     sender_batch_id = idempotency key, así un reintento del mismo día
     es rechazado por el proveedor como lote duplicado.

Sandbox vs live según el modo de las credenciales.
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

LIVE_API_URL    = "https://api-m.paypal.com"
SANDBOX_API_URL = "https://api-m.sandbox.paypal.com"


class DigitalWalletRail(RailAdapter):
    rail                  = PayoutRail.DIGITAL_WALLET
    credential_schema     = {
        "client_id":     ("clientId", "DIGITAL_WALLET_CLIENT_ID"),
        "client_secret": ("secret",   "DIGITAL_WALLET_CLIENT_SECRET"),
    }
    mode_env              = "DIGITAL_WALLET_MODE"
    arrival_business_days = 3

    @staticmethod
    def base_url(credentials: RailCredentials) -> str:
        return LIVE_API_URL if credentials.mode == "production" else SANDBOX_API_URL

    async def _access_token(
        self, client: httpx.AsyncClient, credentials: RailCredentials
    ) -> str:
        response = await client.post(
            f"{self.base_url(credentials)}/v1/oauth2/token",
            auth=(credentials.values["client_id"], credentials.values["client_secret"]),
            data={"grant_type": "client_credentials"},
        )
        if response.is_error:
            raise ExternalTransferError("no se pudo autenticar con la billetera digital")

        token = self._json(response).get("access_token")
        if not token:
            raise ExternalTransferError("la billetera digital no entregó access token")
        return token

    async def _send(
        self,
        client:      httpx.AsyncClient,
        request:     TransferRequest,
        credentials: RailCredentials,
    ) -> Optional[str]:
        token = await self._access_token(client, credentials)

        response = await client.post(
            f"{self.base_url(credentials)}/v1/payments/payouts",
            headers={"Authorization": f"Bearer {token}"},
            json={
                "sender_batch_header": {
                    "sender_batch_id": request.idempotency_key,
                    "email_subject":   "You have a payout!",
                    "email_message":   "You have received a payout from your network earnings.",
                },
                "items": [
                    {
                        "recipient_type": "EMAIL",
                        "amount": {
                            "value":    format_amount(request.amount_cents),
                            "currency": request.currency,
                        },
                        "receiver":       request.account_identifier,
                        "note":           f"Payout for user {request.user_id}",
                        "sender_item_id": request.user_id,
                    }
                ],
            },
        )
        if response.is_error:
            raise ExternalTransferError(
                error_detail(response, ("message",))
                or f"payout rechazado (HTTP {response.status_code})"
            )

        header = self._json(response).get("batch_header") or {}
        return header.get("payout_batch_id")
