"""
settings_repository.py
----------------------
Lectura de la configuración de plataforma guardada por los admins:
  - payout_settings → modo de pago y mínimo de payout
  - rail_gateways   → rails activos y sus credenciales

Solo lectura. ConfigurationProvider decide qué hacer cuando la tabla
está vacía o la consulta falla (fallback a variables de entorno).
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.models import PayoutSettings, RailGateway


class SettingsRepository:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_payout_settings(self) -> Optional[PayoutSettings]:
        result = await self.db.execute(select(PayoutSettings).limit(1))
        return result.scalar_one_or_none()

    async def get_active_gateway(self, rail: str) -> Optional[RailGateway]:
        result = await self.db.execute(
            select(RailGateway).where(
                RailGateway.rail == rail,
                RailGateway.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def list_active_payout_rails(self) -> list[str]:
        result = await self.db.execute(
            select(RailGateway.rail).where(
                RailGateway.is_active.is_(True),
                RailGateway.functionality.in_(("payout", "both")),
            )
        )
        return list(result.scalars().all())
