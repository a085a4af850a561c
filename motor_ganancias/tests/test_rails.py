import base64
import json
from datetime import datetime, timezone
from types import SimpleNamespace
from urllib.parse import parse_qs

import httpx
import pytest

from app.core.config import Settings
from app.core.config_provider import ConfigurationProvider
from app.core.exceptions import ExternalTransferError, NotConfiguredError
from app.domain.schemas import PayoutRail
from app.services.charge_lookup import ChargeLookupClient, user_id_from_metadata
from app.services.rails.bank_transfer import BankTransferRail, ref_id_for, split_identifier
from app.services.rails.base import add_business_days, build_idempotency_key, format_amount
from app.services.rails.card_acquirer import CardAcquirerRail
from app.services.rails.digital_wallet import SANDBOX_API_URL, DigitalWalletRail
from app.services.rails.dispatch import build_rail_table
from app.services.rails.global_payout import PRODUCTION_API_URL, GlobalPayoutRail
from conftest import NOW, CachingAcquirer, FakeSettingsRepository


class Recorder:
    """Handler de MockTransport que guarda las solicitudes recibidas."""

    def __init__(self, responder):
        self.responder = responder
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)


def _provider(gateways=None, **env):
    repo = FakeSettingsRepository()
    for rail, credentials in (gateways or {}).items():
        repo.gateways[rail] = SimpleNamespace(
            rail=rail, is_active=True, functionality="both", credentials=credentials
        )
    return ConfigurationProvider(repo, Settings(_env_file=None, **env))


def _basic(user, password):
    return "Basic " + base64.b64encode(f"{user}:{password}".encode()).decode()


async def _run(adapter, identifier, amount=1_200):
    credentials = await adapter.validate_credentials()
    request = adapter.build_request("u1", identifier, amount, "USD", now=NOW)
    return await adapter.transfer(request, credentials)


# ── Utilidades ────────────────────────────────────────────────────────

def test_idempotency_key_format():
    assert build_idempotency_key("u1", 1_200, NOW.date()) == "payout_u1_1200_2026-10-19"


def test_business_days_skip_weekend():
    friday = datetime(2026, 10, 23, 9, 30, tzinfo=timezone.utc)

    assert add_business_days(friday, 2) == datetime(2026, 10, 27, 9, 30, tzinfo=timezone.utc)
    assert add_business_days(friday, 5) == datetime(2026, 10, 30, 9, 30, tzinfo=timezone.utc)


def test_format_amount():
    assert format_amount(1_200) == "12.00"
    assert format_amount(5) == "0.05"
    assert format_amount(123_456) == "1234.56"


def test_bank_identifier_split():
    assert split_identifier("021000021:123456789:Ana López", "u1") == (
        "021000021", "123456789", "Ana López",
    )
    assert split_identifier("021000021:123456789", "u1")[2] == "User u1"


def test_rail_table_covers_every_rail():
    table = build_rail_table(_provider())

    assert set(table) == set(PayoutRail)
    assert isinstance(table[PayoutRail.BANK_TRANSFER], BankTransferRail)


# ── card_acquirer ─────────────────────────────────────────────────────

async def test_card_acquirer_transfer():
    handler = Recorder(lambda r: httpx.Response(200, json={"id": "tr_123"}))
    adapter = CardAcquirerRail(
        _provider(CARD_ACQUIRER_SECRET_KEY="sk_env"), transport=httpx.MockTransport(handler)
    )

    result = await _run(adapter, "acct_abc")

    assert result.external_id == "tr_123"
    assert result.estimated_arrival == datetime(2026, 10, 21, 12, 0, tzinfo=timezone.utc)

    sent = handler.requests[0]
    assert sent.url.path == "/v1/transfers"
    assert sent.headers["Authorization"] == "Bearer sk_env"
    assert sent.headers["Idempotency-Key"] == "payout_u1_1200_2026-10-19"
    form = parse_qs(sent.content.decode())
    assert form["amount"] == ["1200"]
    assert form["currency"] == ["usd"]
    assert form["destination"] == ["acct_abc"]
    assert form["metadata[user_id]"] == ["u1"]


async def test_card_acquirer_error_message_is_surfaced():
    handler = Recorder(
        lambda r: httpx.Response(400, json={"error": {"message": "Insufficient funds in platform account"}})
    )
    adapter = CardAcquirerRail(
        _provider(CARD_ACQUIRER_SECRET_KEY="sk_env"), transport=httpx.MockTransport(handler)
    )

    with pytest.raises(ExternalTransferError) as exc:
        await _run(adapter, "acct_abc")

    assert exc.value.message == "Insufficient funds in platform account"


async def test_card_acquirer_replayed_key_is_a_duplicate():
    acquirer = CachingAcquirer()
    adapter = CardAcquirerRail(
        _provider(CARD_ACQUIRER_SECRET_KEY="sk_env"), transport=httpx.MockTransport(acquirer)
    )

    first = await _run(adapter, "acct_abc")
    with pytest.raises(ExternalTransferError) as exc:
        await _run(adapter, "acct_abc")

    assert first.external_id == "tr_1"
    assert "duplicada" in exc.value.message
    assert acquirer.created == 1


async def test_card_acquirer_uses_test_secret_from_store():
    handler = Recorder(lambda r: httpx.Response(200, json={"id": "tr_1"}))
    config = _provider(
        {"card_acquirer": {"mode": "test", "secret": "sk_live", "testSecret": "sk_test"}},
        CARD_ACQUIRER_SECRET_KEY="sk_env",
    )
    adapter = CardAcquirerRail(config, transport=httpx.MockTransport(handler))

    await _run(adapter, "acct_abc")

    assert handler.requests[0].headers["Authorization"] == "Bearer sk_test"


async def test_missing_credentials_never_reach_the_network():
    handler = Recorder(lambda r: httpx.Response(200, json={"id": "tr_1"}))
    adapter = CardAcquirerRail(_provider(), transport=httpx.MockTransport(handler))

    with pytest.raises(NotConfiguredError):
        await adapter.validate_credentials()

    assert handler.requests == []


async def test_network_timeout_becomes_transfer_error():
    def timeout(request):
        raise httpx.ReadTimeout("timed out", request=request)

    adapter = CardAcquirerRail(
        _provider(CARD_ACQUIRER_SECRET_KEY="sk_env"), transport=httpx.MockTransport(timeout)
    )

    with pytest.raises(ExternalTransferError):
        await _run(adapter, "acct_abc")


async def test_response_without_id_is_an_error():
    adapter = CardAcquirerRail(
        _provider(CARD_ACQUIRER_SECRET_KEY="sk_env"),
        transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"object": "transfer"})),
    )

    with pytest.raises(ExternalTransferError):
        await _run(adapter, "acct_abc")


# ── digital_wallet ────────────────────────────────────────────────────

def _wallet_responder(request):
    if request.url.path == "/v1/oauth2/token":
        return httpx.Response(200, json={"access_token": "A21AA", "token_type": "Bearer"})
    return httpx.Response(201, json={"batch_header": {"payout_batch_id": "BATCH1", "batch_status": "PENDING"}})


async def test_digital_wallet_payout():
    handler = Recorder(_wallet_responder)
    adapter = DigitalWalletRail(
        _provider(DIGITAL_WALLET_CLIENT_ID="cid", DIGITAL_WALLET_CLIENT_SECRET="csecret"),
        transport=httpx.MockTransport(handler),
    )

    result = await _run(adapter, "ana@example.com")

    assert result.external_id == "BATCH1"
    assert result.estimated_arrival == datetime(2026, 10, 22, 12, 0, tzinfo=timezone.utc)

    token_req, payout_req = handler.requests
    assert str(token_req.url).startswith(SANDBOX_API_URL)
    assert token_req.headers["Authorization"] == _basic("cid", "csecret")
    assert payout_req.headers["Authorization"] == "Bearer A21AA"

    body = json.loads(payout_req.content)
    assert body["sender_batch_header"]["sender_batch_id"] == "payout_u1_1200_2026-10-19"
    assert body["items"][0]["amount"] == {"value": "12.00", "currency": "USD"}
    assert body["items"][0]["receiver"] == "ana@example.com"


async def test_digital_wallet_auth_failure():
    adapter = DigitalWalletRail(
        _provider(DIGITAL_WALLET_CLIENT_ID="cid", DIGITAL_WALLET_CLIENT_SECRET="bad"),
        transport=httpx.MockTransport(lambda r: httpx.Response(401, json={"error": "invalid_client"})),
    )

    with pytest.raises(ExternalTransferError):
        await _run(adapter, "ana@example.com")


# ── bank_transfer ─────────────────────────────────────────────────────

BANK_STORE = {"bank_transfer": {"mode": "test", "testClientId": "login", "testSecret": "txkey"}}


def _bom_json(payload):
    return httpx.Response(200, content=b"\xef\xbb\xbf" + json.dumps(payload).encode())


async def test_bank_transfer_parses_bom_prefixed_response():
    handler = Recorder(
        lambda r: _bom_json(
            {"transactionResponse": {"transId": "600123"}, "messages": {"resultCode": "Ok"}}
        )
    )
    adapter = BankTransferRail(_provider(BANK_STORE), transport=httpx.MockTransport(handler))

    result = await _run(adapter, "021000021:123456789:Ana López")

    assert result.external_id == "600123"
    assert result.estimated_arrival == datetime(2026, 10, 26, 12, 0, tzinfo=timezone.utc)

    body = json.loads(handler.requests[0].content)["createTransactionRequest"]
    assert body["merchantAuthentication"] == {"name": "login", "transactionKey": "txkey"}
    assert body["refId"] == ref_id_for("payout_u1_1200_2026-10-19")
    assert len(body["refId"]) == 20
    account = body["transactionRequest"]["payment"]["bankAccount"]
    assert account["routingNumber"] == "021000021"
    assert account["nameOnAccount"] == "Ana López"


async def test_bank_transfer_error_result_with_http_200():
    adapter = BankTransferRail(
        _provider(BANK_STORE),
        transport=httpx.MockTransport(
            lambda r: _bom_json(
                {"messages": {"resultCode": "Error", "message": [{"code": "E00027", "text": "The transaction was unsuccessful."}]}}
            )
        ),
    )

    with pytest.raises(ExternalTransferError) as exc:
        await _run(adapter, "021000021:123456789:Ana López")

    assert exc.value.message == "The transaction was unsuccessful."


async def test_bank_transfer_falls_back_to_ref_id():
    adapter = BankTransferRail(
        _provider(BANK_STORE),
        transport=httpx.MockTransport(lambda r: _bom_json({"messages": {"resultCode": "Ok"}})),
    )

    result = await _run(adapter, "021000021:123456789:Ana López")

    assert result.external_id == ref_id_for("payout_u1_1200_2026-10-19")


# ── global_payout ─────────────────────────────────────────────────────

async def test_global_payout_request():
    handler = Recorder(lambda r: httpx.Response(200, json={"payout_id": "PO-77"}))
    config = _provider(
        {"global_payout": {"clientId": "100200", "publishableKey": "apiuser", "secret": "apipass"}}
    )
    adapter = GlobalPayoutRail(config, transport=httpx.MockTransport(handler))

    result = await _run(adapter, "PY-1")

    assert result.external_id == "PO-77"
    sent = handler.requests[0]
    assert str(sent.url) == f"{PRODUCTION_API_URL}/100200/payouts"
    assert sent.headers["Authorization"] == _basic("apiuser", "apipass")
    body = json.loads(sent.content)
    assert body["payee_id"] == "PY-1"
    assert body["client_reference_id"] == "payout_u1_1200_2026-10-19"
    assert body["amount"] == "12.00"


async def test_global_payout_rejection():
    config = _provider(
        {"global_payout": {"clientId": "100200", "publishableKey": "apiuser", "secret": "apipass"}}
    )
    adapter = GlobalPayoutRail(
        config,
        transport=httpx.MockTransport(
            lambda r: httpx.Response(400, json={"code": 10005, "description": "Payee was not found"})
        ),
    )

    with pytest.raises(ExternalTransferError) as exc:
        await _run(adapter, "PY-404")

    assert exc.value.message == "Payee was not found"


# ── Consulta de cargos ────────────────────────────────────────────────

def test_user_id_from_metadata_accepts_both_spellings():
    assert user_id_from_metadata({"user_id": "u1"}) == "u1"
    assert user_id_from_metadata({"userId": "u2"}) == "u2"
    assert user_id_from_metadata({}) is None
    assert user_id_from_metadata(None) is None


async def test_charge_lookup_reads_owner_from_metadata():
    handler = Recorder(
        lambda r: httpx.Response(
            200,
            json={"id": "ch_1", "amount": 5_000, "currency": "usd", "customer": "cus_1", "metadata": {"userId": "u1"}},
        )
    )
    client = ChargeLookupClient(
        _provider(CARD_ACQUIRER_SECRET_KEY="sk_env"), transport=httpx.MockTransport(handler)
    )

    charge = await client.get_charge("ch_1")

    assert charge.user_id == "u1"
    assert charge.amount_cents == 5_000
    assert handler.requests[0].url.path == "/v1/charges/ch_1"


async def test_charge_lookup_failure_returns_none():
    client = ChargeLookupClient(
        _provider(CARD_ACQUIRER_SECRET_KEY="sk_env"),
        transport=httpx.MockTransport(lambda r: httpx.Response(404, json={"error": {"message": "No such charge"}})),
    )

    assert await client.get_charge("ch_missing") is None


async def test_charge_lookup_without_credentials_returns_none():
    handler = Recorder(lambda r: httpx.Response(200, json={}))
    client = ChargeLookupClient(_provider(), transport=httpx.MockTransport(handler))

    assert await client.get_charge("ch_1") is None
    assert handler.requests == []
