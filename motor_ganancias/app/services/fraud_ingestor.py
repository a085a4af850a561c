"""
fraud_ingestor.py
-----------------
Convierte eventos de fraude del procesador de pagos en alertas internas
y, cuando la evidencia es fuerte, en bloqueos automáticos.

Eventos soportados (ya verificados por el receptor de webhooks):
  charge.dispute.*              → process_dispute
  radar.early_fraud_warning.*   → process_early_fraud_warning
  review.*                      → process_review
  charge.failed                 → process_failed_charge
Cualquier otro tipo se ignora.

Tabla de niveles propia del ingestor (distinta a la del motor de riesgo):
  crítico ≥ 0.8 · alto ≥ 0.6 · medio ≥ 0.4 · bajo

Bloqueo automático:
  disputa                → solo si el nivel es crítico
  early fraud warning    → siempre
  review                 → abierta y score ≥ 0.6
  cargo fallido          → nunca

Un evento re-entregado (mismo tipo + mismo id de objeto) no genera una
segunda alerta ni un segundo bloqueo.

Nada de lo que pase aquí debe tumbar la entrega del webhook: los fallos
se loggean y el handler retorna.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from app.core.config import settings
from app.domain.schemas import FraudEvent, RiskLevel
from app.services.charge_lookup import user_id_from_metadata

logger = logging.getLogger(__name__)

# ── Scores por tipo de evento ─────────────────────────────────────────
DISPUTE_HIGH_RISK_REASONS   = {"fraudulent", "unauthorized"}
DISPUTE_MEDIUM_RISK_REASONS = {"product_not_received", "product_unacceptable"}
REVIEW_HIGH_RISK_REASONS    = {"rule", "manual"}
FAILED_CHARGE_INDICATORS    = ("card_declined", "fraudulent", "stolen_card", "lost_card")

EARLY_FRAUD_WARNING_SCORE   = 0.95
FAILED_CHARGE_SCORE         = 0.7
REVIEW_BLOCK_MIN_SCORE      = 0.6


def ingestor_level_for(score: float) -> RiskLevel:
    if score >= 0.8:
        return RiskLevel.CRITICAL
    if score >= 0.6:
        return RiskLevel.HIGH
    if score >= 0.4:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def dispute_score(reason: Optional[str]) -> float:
    if reason in DISPUTE_HIGH_RISK_REASONS:
        return 0.9
    if reason in DISPUTE_MEDIUM_RISK_REASONS:
        return 0.6
    return 0.4


def review_score(reason: Optional[str]) -> float:
    return 0.8 if reason in REVIEW_HIGH_RISK_REASONS else 0.5


def is_suspicious_decline(failure_code: str, failure_message: str) -> bool:
    message = failure_message.lower()
    return any(
        indicator in failure_code or indicator in message
        for indicator in FAILED_CHARGE_INDICATORS
    )


class FraudAlertIngestor:

    def __init__(
        self,
        alerts,
        blacklist,
        charges,
        notifier=None,
        admin_emails: Optional[list[str]] = None,
    ):
        self.alerts       = alerts
        self.blacklist    = blacklist
        self.charges      = charges
        self.notifier     = notifier
        self.admin_emails = (
            admin_emails if admin_emails is not None else settings.FRAUD_ALERT_EMAILS
        )

    async def ingest(self, event: FraudEvent) -> bool:
        """Enruta el evento a su handler. Retorna False si el tipo no aplica."""
        if event.type.startswith("charge.dispute."):
            handler = self.process_dispute
        elif event.type.startswith("radar.early_fraud_warning."):
            handler = self.process_early_fraud_warning
        elif event.type.startswith("review."):
            handler = self.process_review
        elif event.type == "charge.failed":
            handler = self.process_failed_charge
        else:
            logger.debug(f"[FraudIngest] Evento ignorado: {event.type}")
            return False

        try:
            await handler(event)
        except Exception as e:
            logger.error(f"[FraudIngest] Error procesando {event.type} ({event.id}): {e}")
        return True

    # ------------------------------------------------------------------ #
    #  Handlers                                                           #
    # ------------------------------------------------------------------ #

    async def process_dispute(self, event: FraudEvent) -> None:
        dispute   = event.data.object
        charge_id = dispute.get("charge")
        reason    = dispute.get("reason")

        logger.info(
            f"[FraudIngest] Disputa {dispute.get('id')} — charge={charge_id}  "
            f"reason={reason}  status={dispute.get('status')}"
        )
        if await self._already_ingested(event, dispute):
            return

        user_id = await self._resolve_user(charge_id)
        if not user_id:
            return

        score = dispute_score(reason)
        level = ingestor_level_for(score)
        await self._create_alert(
            event   = event,
            user_id = user_id,
            score   = score,
            level   = level,
            factor  = {
                "type":        "chargeback",
                "severity":    level.value,
                "description": f"Chargeback initiated: {reason}",
            },
            stats   = {
                "reason":   reason,
                "status":   dispute.get("status"),
                "metadata": {
                    "dispute_id": dispute.get("id"),
                    "charge_id":  charge_id,
                    "amount":     dispute.get("amount"),
                    "currency":   dispute.get("currency"),
                },
            },
            object_id = dispute.get("id"),
        )

        if level == RiskLevel.CRITICAL:
            await self._block(
                user_id  = user_id,
                reason   = f"Chargeback crítico: {reason}",
                source   = "dispute",
                metadata = {
                    "dispute_id": dispute.get("id"),
                    "charge_id":  charge_id,
                    "amount":     dispute.get("amount"),
                },
            )

    async def process_early_fraud_warning(self, event: FraudEvent) -> None:
        warning    = event.data.object
        charge_id  = warning.get("charge")
        fraud_type = warning.get("fraud_type")

        logger.warning(
            f"[FraudIngest] Early fraud warning {warning.get('id')} — "
            f"charge={charge_id}  fraud_type={fraud_type}"
        )
        if await self._already_ingested(event, warning):
            return

        user_id = await self._resolve_user(charge_id)
        if not user_id:
            return

        await self._create_alert(
            event   = event,
            user_id = user_id,
            score   = EARLY_FRAUD_WARNING_SCORE,
            level   = RiskLevel.CRITICAL,
            factor  = {
                "type":        "early_fraud_warning",
                "severity":    RiskLevel.CRITICAL.value,
                "description": f"Early fraud warning from card network: {fraud_type}",
            },
            stats   = {
                "reason":   fraud_type,
                "metadata": {
                    "warning_id": warning.get("id"),
                    "charge_id":  charge_id,
                    "fraud_type": fraud_type,
                },
            },
            object_id = warning.get("id"),
        )

        await self._block(
            user_id  = user_id,
            reason   = f"Early Fraud Warning: {fraud_type}",
            source   = "early_fraud_warning",
            metadata = {
                "warning_id": warning.get("id"),
                "charge_id":  charge_id,
                "fraud_type": fraud_type,
            },
        )

    async def process_review(self, event: FraudEvent) -> None:
        review    = event.data.object
        charge_id = review.get("charge")
        reason    = review.get("reason")
        opened    = bool(review.get("open", review.get("opened", False)))

        logger.info(
            f"[FraudIngest] Review {review.get('id')} — charge={charge_id}  "
            f"reason={reason}  open={opened}"
        )
        if not charge_id:
            logger.warning(f"[FraudIngest] Review {review.get('id')} sin cargo asociado")
            return
        if await self._already_ingested(event, review):
            return

        user_id = await self._resolve_user(charge_id)
        if not user_id:
            return

        score = review_score(reason)
        level = ingestor_level_for(score)
        await self._create_alert(
            event   = event,
            user_id = user_id,
            score   = score,
            level   = level,
            factor  = {
                "type":        "radar_review",
                "severity":    level.value,
                "description": f"Transaction flagged for review: {reason}",
            },
            stats   = {
                "reason":     reason,
                "status":     "open" if opened else "closed",
                "ip_address": review.get("ip_address"),
                "ip_country": (review.get("ip_address_location") or {}).get("country"),
                "metadata": {
                    "review_id": review.get("id"),
                    "charge_id": charge_id,
                    "reason":    reason,
                    "opened":    opened,
                },
            },
            object_id = review.get("id"),
        )

        if opened and score >= REVIEW_BLOCK_MIN_SCORE:
            await self._block(
                user_id  = user_id,
                reason   = f"Review de fraude: {reason}",
                source   = "review",
                metadata = {
                    "review_id": review.get("id"),
                    "charge_id": charge_id,
                    "reason":    reason,
                },
            )

    async def process_failed_charge(self, event: FraudEvent) -> None:
        charge          = event.data.object
        failure_code    = charge.get("failure_code") or ""
        failure_message = charge.get("failure_message") or ""

        if not is_suspicious_decline(failure_code, failure_message):
            return

        logger.warning(
            f"[FraudIngest] Cargo fallido sospechoso {charge.get('id')} — "
            f"code={failure_code}"
        )
        if await self._already_ingested(event, charge):
            return

        user_id = user_id_from_metadata(charge.get("metadata"))
        if not user_id:
            user_id = await self._resolve_user(charge.get("id"))
        if not user_id:
            return

        await self._create_alert(
            event   = event,
            user_id = user_id,
            score   = FAILED_CHARGE_SCORE,
            level   = ingestor_level_for(FAILED_CHARGE_SCORE),
            factor  = {
                "type":        "failed_charge",
                "severity":    ingestor_level_for(FAILED_CHARGE_SCORE).value,
                "description": f"Suspicious charge failure: {failure_code}",
            },
            stats   = {
                "reason":   failure_code,
                "status":   "failed",
                "metadata": {
                    "charge_id":       charge.get("id"),
                    "failure_code":    failure_code,
                    "failure_message": failure_message,
                    "amount":          charge.get("amount"),
                    "currency":        charge.get("currency"),
                },
            },
            object_id = charge.get("id"),
        )

    # ------------------------------------------------------------------ #
    #  Pasos comunes                                                      #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _external_id(event: FraudEvent, obj: dict) -> Optional[str]:
        return obj.get("id") or event.id

    async def _already_ingested(self, event: FraudEvent, obj: dict) -> bool:
        external_id = self._external_id(event, obj)
        if not external_id:
            return False
        try:
            exists = await self.alerts.exists_for_event(event.type, external_id)
        except Exception as e:
            logger.error(f"[FraudIngest] Error verificando duplicado {external_id}: {e}")
            return False
        if exists:
            logger.info(f"[FraudIngest] Evento ya procesado: {event.type} {external_id}")
        return exists

    async def _resolve_user(self, charge_id: Optional[str]) -> Optional[str]:
        if not charge_id:
            logger.warning("[FraudIngest] Evento sin cargo asociado")
            return None

        charge = await self.charges.get_charge(charge_id)
        if charge is None:
            logger.warning(f"[FraudIngest] Cargo no encontrado: {charge_id}")
            return None
        if not charge.user_id:
            logger.warning(f"[FraudIngest] Cargo {charge_id} sin user_id en metadata")
            return None
        return charge.user_id

    async def _create_alert(
        self,
        event:     FraudEvent,
        user_id:   str,
        score:     float,
        level:     RiskLevel,
        factor:    dict,
        stats:     dict,
        object_id: Optional[str],
    ) -> bool:
        external_id = object_id or event.id
        fraud_stats = {
            "event_type":        event.type,
            "external_event_id": external_id,
            "detected_at":       datetime.fromtimestamp(event.created, tz=timezone.utc).isoformat(),
            **{k: v for k, v in stats.items() if v is not None},
        }
        try:
            await self.alerts.create(
                user_id           = user_id,
                risk_score        = score,
                risk_level        = level.value,
                risk_factors      = [factor],
                fraud_stats       = fraud_stats,
                event_type        = event.type,
                external_event_id = external_id,
            )
        except Exception as e:
            logger.error(f"[FraudIngest] Error creando alerta para {user_id}: {e}")
            return False

        logger.warning(
            f"[FraudIngest] Alerta creada — user={user_id}  "
            f"score={score:.2f}  level={level.value}  event={event.type}"
        )
        return True

    async def _block(self, user_id: str, reason: str, source: str, metadata: dict) -> None:
        created = await self.blacklist.add(
            user_id  = user_id,
            reason   = reason,
            metadata = metadata,
            source   = source,
        )
        if not created or self.notifier is None:
            return

        try:
            await self.notifier.send_fraud_block_alert(
                recipients = self.admin_emails,
                user_id    = user_id,
                reason     = reason,
                source     = source,
                metadata   = metadata,
            )
        except Exception as e:
            logger.error(f"[FraudIngest] Error notificando bloqueo de {user_id}: {e}")
