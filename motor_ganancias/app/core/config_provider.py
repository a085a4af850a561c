"""
config_provider.py
------------------
Única fuente de configuración de plataforma para el motor de ganancias.

Combina dos orígenes:
  1. Base de datos (payout_settings, rail_gateways) → lo que configuran
     los administradores desde el panel.
  2. Settings (variables de entorno / .env) → respaldo cuando la tabla
     está vacía, el rail no tiene fila activa o la consulta falla.

No cachea nada a nivel de módulo: cada llamada lee el estado actual,
así un cambio de credenciales o de modo de pago aplica al siguiente
payout sin reiniciar el proceso.

Credenciales por rail:
  Cada adaptador declara su esquema como
      {"campo_normalizado": ("clave_en_gateway", "VARIABLE_DE_ENTORNO")}
  En modo test la clave del gateway se busca con prefijo "test"
  (ej. "secret" → "testSecret").
"""

import logging
from dataclasses import dataclass, field

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import NotConfiguredError
from app.domain.schemas import PaymentMode, PayoutRail

logger = logging.getLogger(__name__)

CredentialSchema = dict[str, tuple[str, str]]


@dataclass
class RailCredentials:
    rail:   PayoutRail
    mode:   str                        # "test" | "production"
    values: dict[str, str] = field(default_factory=dict)

    def missing(self) -> list[str]:
        return [name for name, value in self.values.items() if not value]


def _test_key(key: str) -> str:
    return f"test{key[:1].upper()}{key[1:]}"


class ConfigurationProvider:

    def __init__(self, repository, app_settings: Settings | None = None) -> None:
        self.repository = repository
        self.settings   = app_settings or default_settings

    # ------------------------------------------------------------------ #
    #  Modo de pago y límites                                             #
    # ------------------------------------------------------------------ #

    async def get_payment_mode(self) -> PaymentMode:
        fallback = PaymentMode(self.settings.PAYMENT_MODE)
        try:
            row = await self.repository.get_payout_settings()
        except Exception as e:
            logger.error(f"[Config] Error leyendo payout_settings: {e}")
            return fallback

        if row is None or not row.payment_mode:
            return fallback
        try:
            return PaymentMode(row.payment_mode)
        except ValueError:
            logger.warning(f"[Config] payment_mode desconocido: {row.payment_mode}")
            return fallback

    async def get_minimum_payout_cents(self) -> int:
        floor = self.settings.MIN_AUTO_PAYOUT_CENTS
        try:
            row = await self.repository.get_payout_settings()
        except Exception as e:
            logger.error(f"[Config] Error leyendo mínimo de payout: {e}")
            return floor

        if row is None or row.default_amount_cents is None:
            return floor
        return max(int(row.default_amount_cents), floor)

    def get_maximum_payout_cents(self) -> int:
        return self.settings.MAX_AUTO_PAYOUT_CENTS

    # ------------------------------------------------------------------ #
    #  Rails                                                              #
    # ------------------------------------------------------------------ #

    def _fallback_rails(self) -> set[PayoutRail]:
        rails = set()
        for value in self.settings.PAYOUT_FALLBACK_RAILS:
            try:
                rails.add(PayoutRail(value))
            except ValueError:
                logger.warning(f"[Config] Rail de respaldo desconocido: {value}")
        return rails

    async def get_enabled_rails(self) -> set[PayoutRail]:
        """
        Rails activos con funcionalidad de payout en DB ∪ rails de respaldo
        del entorno. Si la DB falla y no hay respaldo, no se puede decidir.
        """
        fallback = self._fallback_rails()
        try:
            stored = await self.repository.list_active_payout_rails()
        except Exception as e:
            logger.error(f"[Config] Error leyendo rail_gateways: {e}")
            if fallback:
                return fallback
            raise NotConfiguredError(
                "No se pudo determinar qué métodos de cobro están habilitados."
            )

        enabled = set(fallback)
        for value in stored:
            try:
                enabled.add(PayoutRail(value))
            except ValueError:
                continue
        return enabled

    async def get_rail_credentials(
        self,
        rail:     PayoutRail,
        schema:   CredentialSchema,
        mode_env: str | None = None,
    ) -> RailCredentials:
        try:
            gateway = await self.repository.get_active_gateway(rail.value)
        except Exception as e:
            logger.error(f"[Config] Error leyendo credenciales de {rail.value}: {e}")
            gateway = None

        if gateway is not None:
            stored = gateway.credentials or {}
            mode   = "test" if stored.get("mode") == "test" else "production"
            values = {
                name: str(stored.get(_test_key(key) if mode == "test" else key) or "")
                for name, (key, _env) in schema.items()
            }
            return RailCredentials(rail=rail, mode=mode, values=values)

        # Respaldo: variables de entorno
        env_mode = getattr(self.settings, mode_env, None) if mode_env else None
        mode     = "production" if env_mode in (None, "live", "production") else "test"
        values   = {
            name: str(getattr(self.settings, env, None) or "")
            for name, (_key, env) in schema.items()
        }
        return RailCredentials(rail=rail, mode=mode, values=values)
