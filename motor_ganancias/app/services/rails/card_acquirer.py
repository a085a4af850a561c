"""
card_acquirer.py
----------------
Rail del adquirente de tarjetas: transferencia desde la cuenta de la
plataforma hacia la cuenta conectada del usuario (acct_...).

POST {CARD_ACQUIRER_API_URL}/v1/transfers
  - form-urlencoded
  - Authorization: Bearer <secret>
  - Idempotency-Key: payout_{user}_{amount}_{día}

Con una key ya usada el proveedor responde 200 con la respuesta original
y el header Idempotent-Replayed: true. Eso se trata como duplicado.

Llegada estimada: 2 días hábiles.
"""

from typing import Optional

import httpx

from app.core.config import settings
from app.core.config_provider import RailCredentials
from app.core.exceptions import ExternalTransferError
from app.domain.schemas import PayoutRail
from app.services.rails.base import RailAdapter, TransferRequest, error_detail


class CardAcquirerRail(RailAdapter):
    rail                  = PayoutRail.CARD_ACQUIRER
    credential_schema     = {"secret_key": ("secret", "CARD_ACQUIRER_SECRET_KEY")}
    arrival_business_days = 2

    async def _send(
        self,
        client:      httpx.AsyncClient,
        request:     TransferRequest,
        credentials: RailCredentials,
    ) -> Optional[str]:
        response = await client.post(
            f"{settings.CARD_ACQUIRER_API_URL.rstrip('/')}/v1/transfers",
            headers={
                "Authorization":   f"Bearer {credentials.values['secret_key']}",
                "Idempotency-Key": request.idempotency_key,
            },
            data={
                "amount":              str(request.amount_cents),
                "currency":            request.currency.lower(),
                "destination":         request.account_identifier,
                "description":         f"Payout for user {request.user_id}",
                "metadata[user_id]":   request.user_id,
                "metadata[source]":    "network_earnings",
            },
        )
        if response.is_error:
            raise ExternalTransferError(
                error_detail(response, ("error", "message"))
                or f"transferencia rechazada (HTTP {response.status_code})"
            )
        # Key reutilizada: el proveedor devuelve la respuesta cacheada sin mover dinero
        if response.headers.get("Idempotent-Replayed", "").lower() == "true":
            raise ExternalTransferError("transferencia duplicada (idempotency key ya usada)")
        return self._json(response).get("id")
