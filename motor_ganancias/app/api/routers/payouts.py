from typing import Any

from fastapi import APIRouter, Body, Depends, Response, status

from app.api.dependencies import get_account_manager, get_payout_processor
from app.domain.schemas import (
    AutoPayoutStatus,
    ConnectResult,
    DisconnectResult,
    PayoutAccountState,
    PayoutOutcome,
    WalletTransferResult,
)
from app.services.payout_accounts import PayoutAccountManager
from app.services.payout_processor import PayoutProcessor

router = APIRouter(prefix="/v1/payouts", tags=["Payouts"])


# ── Payouts automáticos ───────────────────────────────────────────────

@router.get("/{user_id}/status", response_model=AutoPayoutStatus)
async def get_status(
    user_id:   str,
    processor: PayoutProcessor = Depends(get_payout_processor),
) -> AutoPayoutStatus:
    return await processor.get_auto_payout_status(user_id)


@router.put("/{user_id}/threshold", response_model=AutoPayoutStatus)
async def update_threshold(
    user_id:   str,
    payload:   Any             = Body(...),
    processor: PayoutProcessor = Depends(get_payout_processor),
) -> AutoPayoutStatus:
    return await processor.update_auto_payout_threshold(user_id, payload)


@router.post("/{user_id}/auto", response_model=PayoutOutcome, response_model_exclude_none=True)
async def process_auto_payout(
    user_id:   str,
    processor: PayoutProcessor = Depends(get_payout_processor),
) -> PayoutOutcome:
    return await processor.process_auto_payout(user_id)


@router.post("/{user_id}/wallet-transfer", response_model=WalletTransferResult)
async def transfer_to_wallet(
    user_id:   str,
    payload:   Any             = Body(...),
    processor: PayoutProcessor = Depends(get_payout_processor),
) -> WalletTransferResult:
    amount = payload.get("amount_cents") if isinstance(payload, dict) else None
    return await processor.transfer_to_wallet(user_id, amount)


# ── Cuenta de cobro ───────────────────────────────────────────────────

@router.get("/{user_id}/accounts", response_model=PayoutAccountState)
async def get_account(
    user_id: str,
    manager: PayoutAccountManager = Depends(get_account_manager),
):
    return await manager.get_account(user_id)


@router.post("/{user_id}/accounts/{rail}", response_model=ConnectResult)
async def connect_account(
    user_id:  str,
    rail:     str,
    response: Response,
    payload:  Any                  = Body(None),
    manager:  PayoutAccountManager = Depends(get_account_manager),
) -> ConnectResult:
    result = await manager.connect(user_id, rail, payload)
    response.status_code = status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
    return result


@router.delete("/{user_id}/accounts", response_model=DisconnectResult)
async def disconnect_account(
    user_id: str,
    manager: PayoutAccountManager = Depends(get_account_manager),
) -> DisconnectResult:
    return await manager.disconnect(user_id)
