"""
Fakes en memoria para los repositorios, el lock y los rails.
Reproducen la semántica de las consultas reales (débito condicional,
unicidad por user_id) sin PostgreSQL ni Redis.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Optional

import httpx
import pytest

from app.core.config import Settings
from app.core.config_provider import ConfigurationProvider, RailCredentials
from app.core.exceptions import ConflictError, ExternalTransferError, NotConfiguredError
from app.domain.schemas import PayoutRail
from app.services.blacklist_service import BlacklistService
from app.services.payout_accounts import PayoutAccountManager
from app.services.payout_processor import PayoutProcessor
from app.services.rails.base import RailAdapter

# Lunes
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

ALL_RAILS = [r.value for r in PayoutRail]


# ─────────────────────────────────────────────────────────────────────
# Repositorios
# ─────────────────────────────────────────────────────────────────────

class FakeLedger:
    def __init__(self):
        self.balances: dict[str, int] = {}
        self.debits: list[tuple[str, int]] = []

    async def get_available(self, user_id):
        return self.balances.get(user_id, 0)

    async def debit(self, user_id, amount_cents):
        if amount_cents <= 0:
            raise ValueError("amount")
        if self.balances.get(user_id, 0) < amount_cents:
            return None
        self.balances[user_id] -= amount_cents
        self.debits.append((user_id, amount_cents))
        return self.balances[user_id]


class FakeAccountRepository:
    def __init__(self):
        self.accounts: dict[str, SimpleNamespace] = {}

    async def find_by_user(self, user_id):
        return self.accounts.get(user_id)

    async def create(self, user_id, rail, account_identifier, status):
        if user_id in self.accounts:
            raise ConflictError()
        account = SimpleNamespace(
            user_id=user_id,
            rail=rail,
            account_identifier=account_identifier,
            status=status,
            created_at=NOW,
            updated_at=NOW,
        )
        self.accounts[user_id] = account
        return account

    async def update(self, user_id, rail, **fields):
        account = self.accounts.get(user_id)
        if account is None or account.rail != rail:
            return None
        for key, value in fields.items():
            setattr(account, key, value)
        return account

    async def delete(self, user_id):
        return self.accounts.pop(user_id, None) is not None


class FakePreferenceRepository:
    def __init__(self):
        self.thresholds: dict[str, int] = {}

    async def find_threshold(self, user_id):
        return self.thresholds.get(user_id)

    async def upsert_threshold(self, user_id, threshold_cents):
        self.thresholds[user_id] = threshold_cents


class FakeTransactionRepository:
    def __init__(self):
        self.records: list[dict] = []
        self.fail = False

    async def create(self, **fields):
        if self.fail:
            raise RuntimeError("db down")
        self.records.append(fields)
        return SimpleNamespace(**fields)


class FakeWalletRepository:
    def __init__(self, ledger: FakeLedger):
        self.ledger = ledger
        self.balances: dict[str, int] = {}
        self.transactions: list[dict] = []

    async def move_from_earnings(self, user_id, amount_cents, meta):
        remaining = await self.ledger.debit(user_id, amount_cents)
        if remaining is None:
            return None
        self.balances[user_id] = self.balances.get(user_id, 0) + amount_cents
        self.transactions.append(
            {"user_id": user_id, "amount_cents": amount_cents, "kind": "sale_commission", "meta": meta}
        )
        return remaining, self.balances[user_id]


class FakeBlacklistRepository:
    def __init__(self):
        self.entries: dict[str, SimpleNamespace] = {}

    async def find(self, user_id):
        return self.entries.get(user_id)

    async def insert(self, user_id, reason, fraud_type, notes, blocked_by):
        if user_id in self.entries:
            return False
        self.entries[user_id] = SimpleNamespace(
            user_id=user_id, reason=reason, fraud_type=fraud_type,
            notes=notes, blocked_by=blocked_by,
        )
        return True


class FakeAlertRepository:
    def __init__(self):
        self.alerts: list[dict] = []

    async def exists_for_event(self, event_type, external_event_id):
        return any(
            a["event_type"] == event_type and a["external_event_id"] == external_event_id
            for a in self.alerts
        )

    async def create(self, **fields):
        fields.setdefault("status", "pending")
        self.alerts.append(fields)
        return SimpleNamespace(**fields)


class FakeSettingsRepository:
    def __init__(self):
        self.payout_settings: Optional[SimpleNamespace] = None
        self.gateways: dict[str, SimpleNamespace] = {}
        self.fail = False

    async def get_payout_settings(self):
        if self.fail:
            raise RuntimeError("db down")
        return self.payout_settings

    async def get_active_gateway(self, rail):
        if self.fail:
            raise RuntimeError("db down")
        gateway = self.gateways.get(rail)
        return gateway if gateway is not None and gateway.is_active else None

    async def list_active_payout_rails(self):
        if self.fail:
            raise RuntimeError("db down")
        return [
            g.rail for g in self.gateways.values()
            if g.is_active and g.functionality in ("payout", "both")
        ]


class FakeSignals:
    def __init__(self):
        self.blacklisted: set[str] = set()
        self.pending_alerts: dict[str, int] = {}
        self.transactions: dict[str, int] = {}
        self.created_at: dict[str, datetime] = {}
        self.failing: set[str] = set()

    def _maybe_fail(self, name):
        if name in self.failing:
            raise RuntimeError(f"{name} unavailable")

    async def is_blacklisted(self, user_id):
        self._maybe_fail("history")
        return user_id in self.blacklisted

    async def count_pending_alerts(self, user_id, since):
        self._maybe_fail("history")
        return self.pending_alerts.get(user_id, 0)

    async def count_transactions(self, user_id, since):
        self._maybe_fail("velocity")
        return self.transactions.get(user_id, 0)

    async def get_account_created_at(self, user_id):
        self._maybe_fail("age")
        return self.created_at.get(user_id)


# ─────────────────────────────────────────────────────────────────────
# Lock y rails
# ─────────────────────────────────────────────────────────────────────

class FakeLock:
    def __init__(self):
        self.held: set[str] = set()
        self.acquired = 0

    @asynccontextmanager
    async def hold(self, user_id):
        if user_id in self.held:
            raise ConflictError("Ya hay un payout en curso para este usuario.")
        self.held.add(user_id)
        self.acquired += 1
        try:
            yield
        finally:
            self.held.discard(user_id)


class CachingAcquirer:
    """
    Handler de MockTransport que responde como el adquirente de tarjetas:
    una Idempotency-Key repetida recibe la respuesta original cacheada con
    Idempotent-Replayed: true, sin crear otra transferencia.
    """

    def __init__(self):
        self.cache: dict[str, dict] = {}
        self.created = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        key = request.headers["Idempotency-Key"]
        if key in self.cache:
            return httpx.Response(200, json=self.cache[key], headers={"Idempotent-Replayed": "true"})
        self.created += 1
        self.cache[key] = {"id": f"tr_{self.created}"}
        return httpx.Response(200, json=self.cache[key])


class FakeRail(RailAdapter):
    """
    Rail que se comporta como un proveedor con idempotencia: una segunda
    solicitud con la misma key es rechazada.
    """
    rail                  = PayoutRail.CARD_ACQUIRER
    credential_schema     = {}
    arrival_business_days = 2

    def __init__(self, config=None, rail: PayoutRail = PayoutRail.CARD_ACQUIRER, days: int = 2):
        super().__init__(config)
        self.rail                  = rail
        self.arrival_business_days = days
        self.seen_keys: set[str]   = set()
        self.requests              = []
        self.error: Optional[Exception] = None
        self.missing_credentials   = False

    async def validate_credentials(self):
        if self.missing_credentials:
            raise NotConfiguredError()
        return RailCredentials(rail=self.rail, mode="test", values={"secret_key": "sk_test"})

    async def _send(self, client, request, credentials):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if request.idempotency_key in self.seen_keys:
            raise ExternalTransferError("duplicate idempotency key")
        self.seen_keys.add(request.idempotency_key)
        return f"tr_{len(self.seen_keys)}"


# ─────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def app_settings():
    return Settings(_env_file=None, PAYOUT_FALLBACK_RAILS=ALL_RAILS, FRAUD_ALERT_EMAILS=[])


@pytest.fixture
def settings_repo():
    return FakeSettingsRepository()


@pytest.fixture
def config(settings_repo, app_settings):
    return ConfigurationProvider(settings_repo, app_settings)


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def accounts():
    return FakeAccountRepository()


@pytest.fixture
def preferences():
    return FakePreferenceRepository()


@pytest.fixture
def transactions():
    return FakeTransactionRepository()


@pytest.fixture
def wallets(ledger):
    return FakeWalletRepository(ledger)


@pytest.fixture
def blacklist_repo():
    return FakeBlacklistRepository()


@pytest.fixture
def alerts():
    return FakeAlertRepository()


@pytest.fixture
def signals():
    return FakeSignals()


@pytest.fixture
def lock():
    return FakeLock()


@pytest.fixture
def rails():
    return {rail: FakeRail(rail=rail) for rail in PayoutRail}


@pytest.fixture
def manager(accounts, config):
    return PayoutAccountManager(accounts, config)


@pytest.fixture
def processor(ledger, accounts, preferences, transactions, wallets, blacklist_repo, config, lock, rails):
    return PayoutProcessor(
        ledger       = ledger,
        accounts     = accounts,
        preferences  = preferences,
        transactions = transactions,
        wallets      = wallets,
        blacklist    = BlacklistService(blacklist_repo),
        config       = config,
        lock         = lock,
        rails        = rails,
        clock        = lambda: NOW,
        timeout      = 1.0,
    )
