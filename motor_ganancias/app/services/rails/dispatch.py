"""
dispatch.py
-----------
Tabla de despacho {rail → adaptador} que usa el PayoutProcessor.
Agregar un rail nuevo = un adaptador + una entrada aquí.
"""

from typing import Optional

import httpx

from app.core.config_provider import ConfigurationProvider
from app.domain.schemas import PayoutRail
from app.services.rails.bank_transfer import BankTransferRail
from app.services.rails.base import RailAdapter
from app.services.rails.card_acquirer import CardAcquirerRail
from app.services.rails.digital_wallet import DigitalWalletRail
from app.services.rails.global_payout import GlobalPayoutRail

RAIL_ADAPTERS: dict[PayoutRail, type[RailAdapter]] = {
    PayoutRail.CARD_ACQUIRER:  CardAcquirerRail,
    PayoutRail.DIGITAL_WALLET: DigitalWalletRail,
    PayoutRail.BANK_TRANSFER:  BankTransferRail,
    PayoutRail.GLOBAL_PAYOUT:  GlobalPayoutRail,
}


def build_rail_table(
    config:    ConfigurationProvider,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[PayoutRail, RailAdapter]:
    return {
        rail: adapter(config, transport=transport)
        for rail, adapter in RAIL_ADAPTERS.items()
    }
