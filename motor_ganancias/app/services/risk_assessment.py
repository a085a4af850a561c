"""
risk_assessment.py
------------------
Evaluación de riesgo previa a un cobro.

Decide si una transacción requiere autenticación fuerte (3D Secure / SCA)
sumando factores independientes:

  Factor            Fuente                        Score máx
  ────────────────  ────────────────────────────  ─────────
  Monto             params.amount_cents           0.40
  Historial         blacklist + alertas 30 días   1.00 (blacklist)
  Geografía         params.country_code           0.30
  Velocidad         wallet_transactions 1 hora    0.60
  Antigüedad        user_profiles.created_at      0.40

El score final es la suma recortada a 1.0. Un usuario en blacklist
recibe 1.0 (crítico) sin evaluar los factores restantes.

Degradación controlada: si una consulta falla, el factor no se omite
sino que aporta un score moderado ("no se pudo verificar"). El motor
nunca lanza excepción por un fallo de infraestructura.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from app.domain.schemas import (
    RiskAssessmentParams,
    RiskAssessmentResult,
    RiskFactor,
    RiskLevel,
)

logger = logging.getLogger(__name__)

# ── Umbrales de monto (centavos USD) ─────────────────────────────────
AMOUNT_HIGH_CENTS     = 100_000    # $1000
AMOUNT_MEDIUM_CENTS   = 50_000     # $500
AMOUNT_MODERATE_CENTS = 10_000     # $100

# ── Geografía ─────────────────────────────────────────────────────────
HIGH_RISK_COUNTRIES   = {"NG", "GH", "PK", "BD", "ID", "VN"}
MEDIUM_RISK_COUNTRIES = {"IN", "BR", "RU", "CN", "TR"}

# ── Ventanas ──────────────────────────────────────────────────────────
ALERT_WINDOW    = timedelta(days=30)
VELOCITY_WINDOW = timedelta(hours=1)

VELOCITY_CRITICAL = 10
VELOCITY_HIGH     = 5

# ── Niveles de este motor ─────────────────────────────────────────────
# El ingestor de eventos de fraude usa su propia tabla (0.8 / 0.6 / 0.4).
LEVEL_CRITICAL = 0.7
LEVEL_HIGH     = 0.4
LEVEL_MEDIUM   = 0.2

RECOMMENDATION_STRONG_AUTH = (
    "Require 3D Secure / Strong Customer Authentication (SCA) for this transaction"
)
RECOMMENDATIONS = {
    RiskLevel.CRITICAL: "Block transaction and flag for manual review",
    RiskLevel.HIGH:     "Require additional verification before processing",
    RiskLevel.MEDIUM:   "Monitor transaction closely and consider additional checks",
    RiskLevel.LOW:      "Process transaction normally",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def risk_level_for(score: float) -> RiskLevel:
    if score >= LEVEL_CRITICAL:
        return RiskLevel.CRITICAL
    if score >= LEVEL_HIGH:
        return RiskLevel.HIGH
    if score >= LEVEL_MEDIUM:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class RiskAssessmentEngine:
    """
    Uso:
        engine = RiskAssessmentEngine(RiskSignalsRepository(db))
        result = await engine.assess_risk(params)
        if result.requires_strong_auth:
            ...  # forzar 3DS en el checkout
    """

    def __init__(self, signals, clock: Callable[[], datetime] = _utcnow):
        self.signals = signals
        self.clock   = clock

    async def assess_risk(self, params: RiskAssessmentParams) -> RiskAssessmentResult:
        now     = self.clock()
        factors = [self._amount_factor(params.amount_cents)]

        if params.user_id:
            history = await self._history_factor(params.user_id, now)
            if history.type == "blacklisted_user":
                logger.warning(f"[Risk] Usuario en blacklist: {params.user_id}")
                return self._result(
                    score   = 1.0,
                    factors = [f for f in factors if f.score > 0] + [history],
                    params  = params,
                )
            factors.append(history)

        if params.country_code:
            factors.append(self._geo_factor(params.country_code))

        # Una sola AsyncSession por request: las consultas van en serie
        if params.user_id:
            factors.append(await self._velocity_factor(params.user_id, now))
            factors.append(await self._account_age_factor(params.user_id, now))

        listed = [f for f in factors if f.score > 0]
        score  = min(round(sum(f.score for f in listed), 4), 1.0)
        return self._result(score=score, factors=listed, params=params)

    # ------------------------------------------------------------------ #
    #  Resultado                                                          #
    # ------------------------------------------------------------------ #

    def _result(
        self,
        score:   float,
        factors: list[RiskFactor],
        params:  RiskAssessmentParams,
    ) -> RiskAssessmentResult:
        level       = risk_level_for(score)
        strong_auth = self._requires_strong_auth(level, params.amount_cents)

        if level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            logger.info(
                f"[Risk] user={params.user_id}  amount={params.amount_cents}  "
                f"score={score:.2f}  level={level.value}"
            )

        return RiskAssessmentResult(
            risk_score           = score,
            risk_level           = level,
            risk_factors         = factors,
            requires_strong_auth = strong_auth,
            recommendation       = (
                RECOMMENDATION_STRONG_AUTH if strong_auth else RECOMMENDATIONS[level]
            ),
        )

    @staticmethod
    def _requires_strong_auth(level: RiskLevel, amount_cents: int) -> bool:
        if level in (RiskLevel.CRITICAL, RiskLevel.HIGH):
            return True
        if amount_cents >= AMOUNT_MEDIUM_CENTS:
            return True
        return level == RiskLevel.MEDIUM and amount_cents >= AMOUNT_MODERATE_CENTS

    # ------------------------------------------------------------------ #
    #  Factores                                                           #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _amount_factor(amount_cents: int) -> RiskFactor:
        shown = f"${amount_cents / 100:.2f}"
        if amount_cents >= AMOUNT_HIGH_CENTS:
            return RiskFactor(
                type="high_amount", severity=RiskLevel.HIGH, score=0.4,
                description=f"Transaction amount is very high ({shown})",
            )
        if amount_cents >= AMOUNT_MEDIUM_CENTS:
            return RiskFactor(
                type="medium_amount", severity=RiskLevel.MEDIUM, score=0.2,
                description=f"Transaction amount is elevated ({shown})",
            )
        if amount_cents >= AMOUNT_MODERATE_CENTS:
            return RiskFactor(
                type="moderate_amount", severity=RiskLevel.LOW, score=0.1,
                description=f"Transaction amount is moderate ({shown})",
            )
        return RiskFactor(
            type="low_amount", severity=RiskLevel.LOW, score=0.0,
            description=f"Transaction amount is low ({shown})",
        )

    async def _history_factor(self, user_id: str, now: datetime) -> RiskFactor:
        try:
            if await self.signals.is_blacklisted(user_id):
                return RiskFactor(
                    type="blacklisted_user", severity=RiskLevel.CRITICAL, score=1.0,
                    description="User is blacklisted for fraud",
                )
            pending = await self.signals.count_pending_alerts(user_id, now - ALERT_WINDOW)
        except Exception as e:
            logger.error(f"[Risk] Error consultando historial de {user_id}: {e}")
            return RiskFactor(
                type="history_check_failed", severity=RiskLevel.MEDIUM, score=0.2,
                description="Unable to verify user history",
            )

        if pending > 0:
            return RiskFactor(
                type="recent_fraud_alerts", severity=RiskLevel.HIGH, score=0.5,
                description=f"User has {pending} pending fraud alert(s) in the last 30 days",
            )
        return RiskFactor(
            type="clean_history", severity=RiskLevel.LOW, score=0.0,
            description="User has clean payment history",
        )

    @staticmethod
    def _geo_factor(country_code: str) -> RiskFactor:
        if country_code in HIGH_RISK_COUNTRIES:
            return RiskFactor(
                type="high_risk_country", severity=RiskLevel.HIGH, score=0.3,
                description=f"Transaction from high-risk country ({country_code})",
            )
        if country_code in MEDIUM_RISK_COUNTRIES:
            return RiskFactor(
                type="medium_risk_country", severity=RiskLevel.MEDIUM, score=0.15,
                description=f"Transaction from medium-risk country ({country_code})",
            )
        return RiskFactor(
            type="low_risk_country", severity=RiskLevel.LOW, score=0.0,
            description=f"Transaction from low-risk country ({country_code})",
        )

    async def _velocity_factor(self, user_id: str, now: datetime) -> RiskFactor:
        try:
            count = await self.signals.count_transactions(user_id, now - VELOCITY_WINDOW)
        except Exception as e:
            logger.error(f"[Risk] Error consultando velocidad de {user_id}: {e}")
            return RiskFactor(
                type="velocity_check_failed", severity=RiskLevel.LOW, score=0.1,
                description="Unable to verify transaction velocity",
            )

        if count >= VELOCITY_CRITICAL:
            return RiskFactor(
                type="high_velocity", severity=RiskLevel.CRITICAL, score=0.6,
                description=f"{count} transactions in the last hour (possible card testing)",
            )
        if count >= VELOCITY_HIGH:
            return RiskFactor(
                type="medium_velocity", severity=RiskLevel.HIGH, score=0.3,
                description=f"{count} transactions in the last hour",
            )
        return RiskFactor(
            type="normal_velocity", severity=RiskLevel.LOW, score=0.0,
            description="Normal transaction velocity",
        )

    async def _account_age_factor(self, user_id: str, now: datetime) -> RiskFactor:
        try:
            created_at: Optional[datetime] = await self.signals.get_account_created_at(user_id)
        except Exception as e:
            logger.error(f"[Risk] Error consultando antigüedad de {user_id}: {e}")
            return RiskFactor(
                type="user_age_check_failed", severity=RiskLevel.LOW, score=0.1,
                description="Unable to verify account age",
            )

        if created_at is None:
            return RiskFactor(
                type="profile_not_found", severity=RiskLevel.HIGH, score=0.4,
                description="User profile not found",
            )

        age = now - _as_utc(created_at)
        if age < timedelta(days=1):
            return RiskFactor(
                type="very_new_user", severity=RiskLevel.HIGH, score=0.3,
                description="Account created less than 24 hours ago",
            )
        if age < timedelta(days=7):
            return RiskFactor(
                type="new_user", severity=RiskLevel.MEDIUM, score=0.15,
                description="Account created less than 7 days ago",
            )
        return RiskFactor(
            type="established_user", severity=RiskLevel.LOW, score=0.0,
            description="Established user account",
        )
