"""
base.py
-------
Contrato común de los adaptadores de rail (mecanismos externos de payout).

Cada rail implementa:
  - credential_schema    → qué credenciales necesita y de dónde salen
  - _send()              → la llamada HTTP propia del proveedor
  - arrival_business_days → días hábiles estimados hasta la acreditación

Lo común vive aquí:
  - validate_credentials() → NotConfiguredError si falta alguna
  - build_request()        → arma la solicitud con su idempotency key
  - transfer()             → ejecuta _send() y calcula la llegada estimada

Idempotency key:
    payout_{user_id}_{amount_cents}_{YYYY-MM-DD}
Dos intentos del mismo usuario, por el mismo monto, el mismo día
producen la misma key → el proveedor reconoce el duplicado.

Errores: cualquier problema del proveedor (HTTP != 2xx, timeout,
respuesta malformada) se lanza como ExternalTransferError con la razón
cruda. El PayoutProcessor le agrega el prefijo "Payout failed:".
"""

import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import AsyncIterator, Optional

import httpx

from app.core.config import settings
from app.core.config_provider import ConfigurationProvider, CredentialSchema, RailCredentials
from app.core.exceptions import ExternalTransferError, NotConfiguredError
from app.domain.schemas import PayoutRail

logger = logging.getLogger(__name__)


@dataclass
class TransferRequest:
    user_id:            str
    account_identifier: str
    amount_cents:       int
    currency:           str
    idempotency_key:    str
    requested_at:       datetime


@dataclass
class TransferResult:
    external_id:       str
    estimated_arrival: datetime


def build_idempotency_key(user_id: str, amount_cents: int, day: date) -> str:
    return f"payout_{user_id}_{amount_cents}_{day.isoformat()}"


def add_business_days(start: datetime, days: int) -> datetime:
    """Suma días hábiles (lunes a viernes) conservando la hora."""
    current   = start
    remaining = days
    while remaining > 0:
        current += timedelta(days=1)
        if current.weekday() < 5:
            remaining -= 1
    return current


def format_amount(amount_cents: int) -> str:
    """Centavos → "12.34" sin pasar por float."""
    return f"{amount_cents // 100}.{amount_cents % 100:02d}"


def error_detail(response: httpx.Response, *paths: tuple[str, ...]) -> Optional[str]:
    """Extrae el primer mensaje de error presente en el JSON del proveedor."""
    try:
        data = response.json()
    except (json.JSONDecodeError, ValueError):
        return None
    for path in paths:
        node = data
        for key in path:
            if isinstance(node, dict):
                node = node.get(key)
            elif isinstance(node, list) and isinstance(key, int) and len(node) > key:
                node = node[key]
            else:
                node = None
                break
        if isinstance(node, str) and node:
            return node
    return None


class RailAdapter(ABC):
    rail:                  PayoutRail
    credential_schema:     CredentialSchema
    mode_env:              Optional[str] = None
    arrival_business_days: int = 3

    def __init__(
        self,
        config:    ConfigurationProvider,
        timeout:   float = settings.PAYOUT_TIMEOUT_SEC,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config    = config
        self.timeout   = timeout
        self.transport = transport

    async def validate_credentials(self) -> RailCredentials:
        credentials = await self.config.get_rail_credentials(
            self.rail, self.credential_schema, self.mode_env
        )
        missing = credentials.missing()
        if missing:
            logger.error(
                f"[Rail:{self.rail.value}] Credenciales faltantes: {', '.join(missing)}"
            )
            raise NotConfiguredError(
                f"Las credenciales del rail {self.rail.value} no están configuradas."
            )
        return credentials

    def build_request(
        self,
        user_id:            str,
        account_identifier: str,
        amount_cents:       int,
        currency:           str,
        now:                Optional[datetime] = None,
    ) -> TransferRequest:
        now = now or datetime.now(timezone.utc)
        return TransferRequest(
            user_id            = user_id,
            account_identifier = account_identifier,
            amount_cents       = amount_cents,
            currency           = currency,
            idempotency_key    = build_idempotency_key(user_id, amount_cents, now.date()),
            requested_at       = now,
        )

    async def transfer(
        self, request: TransferRequest, credentials: RailCredentials
    ) -> TransferResult:
        try:
            async with self._client() as client:
                external_id = await self._send(client, request, credentials)
        except httpx.TimeoutException:
            raise ExternalTransferError(
                f"{self.rail.value} no respondió en {self.timeout:.0f}s"
            )
        except httpx.HTTPError as e:
            raise ExternalTransferError(f"error de red con {self.rail.value}: {e}")

        if not external_id:
            raise ExternalTransferError(
                f"{self.rail.value} respondió sin identificador de transferencia"
            )

        logger.info(
            f"[Rail:{self.rail.value}] Transferencia aceptada — "
            f"user={request.user_id}  amount={request.amount_cents}  "
            f"external_id={external_id}"
        )
        return TransferResult(
            external_id       = str(external_id),
            estimated_arrival = add_business_days(
                request.requested_at, self.arrival_business_days
            ),
        )

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport
        ) as client:
            yield client

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError):
            raise ExternalTransferError("respuesta malformada del proveedor")
        if not isinstance(data, dict):
            raise ExternalTransferError("respuesta malformada del proveedor")
        return data

    @abstractmethod
    async def _send(
        self,
        client:      httpx.AsyncClient,
        request:     TransferRequest,
        credentials: RailCredentials,
    ) -> Optional[str]:
        """Ejecuta la transferencia y retorna el id externo."""
