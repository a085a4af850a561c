"""
dependencies.py
---------------
Dependencias de FastAPI: una sesión de base de datos por request y los
servicios del motor construidos sobre ella.

Los tests reemplazan get_payout_processor, get_account_manager, etc.
con app.dependency_overrides para trabajar con fakes en memoria.
"""

from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config_provider import ConfigurationProvider
from app.infrastructure.cache.payout_lock import PayoutLock
from app.infrastructure.cache.redis_client import redis_manager
from app.infrastructure.database.fraud_repository import (
    BlacklistRepository,
    FraudAlertRepository,
)
from app.infrastructure.database.ledger_repository import LedgerRepository
from app.infrastructure.database.payout_repository import (
    PayoutAccountRepository,
    PayoutPreferenceRepository,
    PayoutTransactionRepository,
)
from app.infrastructure.database.risk_signals_repository import RiskSignalsRepository
from app.infrastructure.database.session import AsyncSessionLocal
from app.infrastructure.database.settings_repository import SettingsRepository
from app.infrastructure.database.wallet_repository import WalletRepository
from app.infrastructure.messaging.email_service import email_service
from app.services.blacklist_service import BlacklistService
from app.services.charge_lookup import ChargeLookupClient
from app.services.fraud_ingestor import FraudAlertIngestor
from app.services.payout_accounts import PayoutAccountManager
from app.services.payout_processor import PayoutProcessor
from app.services.rails.dispatch import build_rail_table
from app.services.risk_assessment import RiskAssessmentEngine

# ── Sesión de base de datos ───────────────────────────────────────────

async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    session = AsyncSessionLocal()
    try:
        yield session
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


# ── Servicios ─────────────────────────────────────────────────────────

def get_config_provider(
    db: AsyncSession = Depends(get_db_session),
) -> ConfigurationProvider:
    return ConfigurationProvider(SettingsRepository(db))


def get_risk_engine(
    db: AsyncSession = Depends(get_db_session),
) -> RiskAssessmentEngine:
    return RiskAssessmentEngine(RiskSignalsRepository(db))


def get_fraud_ingestor(
    db:     AsyncSession          = Depends(get_db_session),
    config: ConfigurationProvider = Depends(get_config_provider),
) -> FraudAlertIngestor:
    return FraudAlertIngestor(
        alerts    = FraudAlertRepository(db),
        blacklist = BlacklistService(BlacklistRepository(db)),
        charges   = ChargeLookupClient(config),
        notifier  = email_service,
    )


def get_account_manager(
    db:     AsyncSession          = Depends(get_db_session),
    config: ConfigurationProvider = Depends(get_config_provider),
) -> PayoutAccountManager:
    return PayoutAccountManager(PayoutAccountRepository(db), config)


def get_payout_processor(
    db:     AsyncSession          = Depends(get_db_session),
    config: ConfigurationProvider = Depends(get_config_provider),
) -> PayoutProcessor:
    return PayoutProcessor(
        ledger       = LedgerRepository(db),
        accounts     = PayoutAccountRepository(db),
        preferences  = PayoutPreferenceRepository(db),
        transactions = PayoutTransactionRepository(db),
        wallets      = WalletRepository(db),
        blacklist    = BlacklistService(BlacklistRepository(db)),
        config       = config,
        lock         = PayoutLock(redis_manager.client),
        rails        = build_rail_table(config),
    )
