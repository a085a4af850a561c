"""
charge_lookup.py
----------------
Consulta de cargos en el API del adquirente de tarjetas.

Los eventos de fraude (disputas, early fraud warnings, reviews) solo
traen el id del cargo; el usuario dueño está en metadata del cargo.

  GET {CARD_ACQUIRER_API_URL}/v1/charges/{charge_id}

Mismas credenciales que el rail card_acquirer. Timeout estricto: si el
API no responde o falla, retorna None y el ingestor descarta el evento.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from app.core.config import settings
from app.core.config_provider import ConfigurationProvider
from app.domain.schemas import PayoutRail
from app.services.rails.card_acquirer import CardAcquirerRail

logger = logging.getLogger(__name__)


@dataclass
class ChargeInfo:
    id:           str
    user_id:      Optional[str]
    customer:     Optional[str]
    amount_cents: Optional[int]
    currency:     Optional[str]


def user_id_from_metadata(metadata: Optional[dict]) -> Optional[str]:
    """El checkout guarda el dueño como user_id o userId según la versión."""
    if not metadata:
        return None
    value = metadata.get("user_id") or metadata.get("userId")
    return str(value) if value else None


class ChargeLookupClient:

    def __init__(
        self,
        config:    ConfigurationProvider,
        timeout:   float = settings.CHARGE_LOOKUP_TIMEOUT_SEC,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config    = config
        self.timeout   = timeout
        self.transport = transport

    async def get_charge(self, charge_id: str) -> Optional[ChargeInfo]:
        if not charge_id:
            return None

        credentials = await self.config.get_rail_credentials(
            PayoutRail.CARD_ACQUIRER, CardAcquirerRail.credential_schema
        )
        secret_key = credentials.values.get("secret_key")
        if not secret_key:
            logger.error("[ChargeLookup] Credenciales del adquirente no configuradas")
            return None

        url = f"{settings.CARD_ACQUIRER_API_URL.rstrip('/')}/v1/charges/{charge_id}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.get(
                    url, headers={"Authorization": f"Bearer {secret_key}"}
                )
                response.raise_for_status()
                data = response.json()

        except httpx.TimeoutException:
            logger.warning(f"[ChargeLookup] Timeout consultando cargo {charge_id}")
            return None
        except Exception as e:
            logger.error(f"[ChargeLookup] Error consultando cargo {charge_id}: {e}")
            return None

        if not isinstance(data, dict):
            return None

        return ChargeInfo(
            id           = str(data.get("id") or charge_id),
            user_id      = user_id_from_metadata(data.get("metadata")),
            customer     = data.get("customer"),
            amount_cents = data.get("amount"),
            currency     = data.get("currency"),
        )
