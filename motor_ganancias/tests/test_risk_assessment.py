from datetime import timedelta

import pytest

from app.domain.schemas import RiskAssessmentParams, RiskLevel
from app.services.risk_assessment import (
    RECOMMENDATION_STRONG_AUTH,
    RiskAssessmentEngine,
    risk_level_for,
)
from conftest import NOW


@pytest.fixture
def engine(signals):
    return RiskAssessmentEngine(signals, clock=lambda: NOW)


def _params(**overrides):
    data = {"amount_cents": 2_000, "currency": "usd"}
    data.update(overrides)
    return RiskAssessmentParams(**data)


def _types(result):
    return [f.type for f in result.risk_factors]


async def test_small_anonymous_payment_is_low_risk(engine):
    result = await engine.assess_risk(_params())

    assert result.risk_score == 0
    assert result.risk_level == RiskLevel.LOW
    assert result.risk_factors == []
    assert result.requires_strong_auth is False
    assert result.recommendation == "Process transaction normally"


@pytest.mark.parametrize(
    "amount, factor, score",
    [
        (100_000, "high_amount", 0.4),
        (50_000, "medium_amount", 0.2),
        (10_000, "moderate_amount", 0.1),
    ],
)
async def test_amount_tiers(engine, amount, factor, score):
    result = await engine.assess_risk(_params(amount_cents=amount))

    assert _types(result) == [factor]
    assert result.risk_score == pytest.approx(score)


async def test_blacklisted_user_is_critical_regardless_of_other_inputs(engine, signals):
    """Blacklist → 1.0 aunque el monto sea mínimo y el país de bajo riesgo."""
    signals.blacklisted.add("u1")
    signals.created_at["u1"] = NOW - timedelta(days=365)

    result = await engine.assess_risk(_params(user_id="u1", amount_cents=1, country_code="us"))

    assert result.risk_score == 1.0
    assert result.risk_level == RiskLevel.CRITICAL
    assert "blacklisted_user" in _types(result)
    assert result.requires_strong_auth is True


async def test_pending_alerts_and_high_risk_country_add_up(engine, signals):
    signals.pending_alerts["u1"] = 2
    signals.created_at["u1"] = NOW - timedelta(days=90)

    result = await engine.assess_risk(_params(user_id="u1", country_code="ng"))

    assert _types(result) == ["recent_fraud_alerts", "high_risk_country"]
    assert result.risk_score == pytest.approx(0.8)
    assert result.risk_level == RiskLevel.CRITICAL


async def test_medium_risk_country(engine):
    result = await engine.assess_risk(_params(country_code="BR"))

    assert _types(result) == ["medium_risk_country"]
    assert result.risk_score == pytest.approx(0.15)


@pytest.mark.parametrize("count, factor, score", [(10, "high_velocity", 0.6), (5, "medium_velocity", 0.3)])
async def test_velocity(engine, signals, count, factor, score):
    signals.transactions["u1"] = count
    signals.created_at["u1"] = NOW - timedelta(days=90)

    result = await engine.assess_risk(_params(user_id="u1"))

    assert _types(result) == [factor]
    assert result.risk_score == pytest.approx(score)


@pytest.mark.parametrize(
    "age, factor, score",
    [
        (timedelta(hours=3), "very_new_user", 0.3),
        (timedelta(days=3), "new_user", 0.15),
    ],
)
async def test_account_age(engine, signals, age, factor, score):
    signals.created_at["u1"] = NOW - age

    result = await engine.assess_risk(_params(user_id="u1"))

    assert _types(result) == [factor]
    assert result.risk_score == pytest.approx(score)


async def test_missing_profile_counts_as_high_risk(engine):
    result = await engine.assess_risk(_params(user_id="ghost"))

    assert _types(result) == ["profile_not_found"]
    assert result.risk_level == RiskLevel.HIGH
    assert result.requires_strong_auth is True


async def test_lookup_failures_degrade_instead_of_raising(engine, signals):
    signals.failing = {"history", "velocity", "age"}

    result = await engine.assess_risk(_params(user_id="u1"))

    assert _types(result) == [
        "history_check_failed",
        "velocity_check_failed",
        "user_age_check_failed",
    ]
    assert result.risk_score == pytest.approx(0.4)
    assert result.risk_level == RiskLevel.HIGH


async def test_score_is_clipped_to_one(engine, signals):
    signals.pending_alerts["u1"] = 1
    signals.transactions["u1"] = 12

    result = await engine.assess_risk(
        _params(user_id="u1", amount_cents=150_000, country_code="PK")
    )

    assert result.risk_score == 1.0


async def test_medium_level_with_moderate_amount_requires_strong_auth(engine):
    """0.1 (monto) + 0.15 (país) = 0.25 → medio, y el monto es ≥ $100."""
    result = await engine.assess_risk(_params(amount_cents=10_000, country_code="TR"))

    assert result.risk_level == RiskLevel.MEDIUM
    assert result.requires_strong_auth is True
    assert result.recommendation == RECOMMENDATION_STRONG_AUTH


async def test_medium_level_with_small_amount_is_only_monitored(engine, signals):
    signals.failing = {"history"}
    signals.created_at["u1"] = NOW - timedelta(days=90)

    result = await engine.assess_risk(_params(user_id="u1", amount_cents=5_000))

    assert result.risk_level == RiskLevel.MEDIUM
    assert result.requires_strong_auth is False
    assert result.recommendation == "Monitor transaction closely and consider additional checks"


def test_level_boundaries():
    assert risk_level_for(0.7) == RiskLevel.CRITICAL
    assert risk_level_for(0.69) == RiskLevel.HIGH
    assert risk_level_for(0.4) == RiskLevel.HIGH
    assert risk_level_for(0.2) == RiskLevel.MEDIUM
    assert risk_level_for(0.19) == RiskLevel.LOW
