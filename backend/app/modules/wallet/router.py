"""Wallet API Router.

Creator-facing balance, ledger history and payout endpoints. Every amount
is in cents and comes with a R$ formatted twin.
"""

import uuid

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.modules.payment.schemas import ApiResponse
from app.modules.payment_gateway.registry import GatewayRegistry, get_gateway_registry
from app.modules.wallet.payout_service import PayoutService
from app.modules.wallet.schemas import (
    BalanceResponse,
    PayoutCreateRequest,
    PayoutListResponse,
    PayoutRequestResponse,
    PayoutResponse,
    TransactionHistoryResponse,
    TransactionItem,
    WalletSummaryResponse,
)
from app.modules.wallet.service import WalletService

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("/balance", response_model=ApiResponse[BalanceResponse])
async def get_balance(
    user_id: uuid.UUID = Header(..., alias="X-User-ID"),
    session: AsyncSession = Depends(get_session),
):
    service = WalletService(session)
    balance = await service.get_balance(user_id)
    # First access may have created the wallet
    await session.commit()
    return ApiResponse(data=BalanceResponse(**balance))


@router.get("/summary", response_model=ApiResponse[WalletSummaryResponse])
async def get_summary(
    user_id: uuid.UUID = Header(..., alias="X-User-ID"),
    session: AsyncSession = Depends(get_session),
):
    """Balance plus open payouts, lifetime earnings and lifetime payouts."""
    service = WalletService(session)
    summary = await service.get_wallet_summary(user_id)
    await session.commit()
    return ApiResponse(data=WalletSummaryResponse(
        balance=BalanceResponse(**summary["balance"]),
        pending_payouts=summary["pending_payouts"],
        total_earnings=summary["total_earnings"],
        total_payouts=summary["total_payouts"],
    ))


@router.get("/transactions", response_model=ApiResponse[TransactionHistoryResponse])
async def get_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    user_id: uuid.UUID = Header(..., alias="X-User-ID"),
    session: AsyncSession = Depends(get_session),
):
    """Ledger entries for the wallet, newest first (at most 50 per page)."""
    service = WalletService(session)
    history = await service.get_transaction_history(user_id, page=page, limit=limit)
    await session.commit()
    return ApiResponse(data=TransactionHistoryResponse(
        transactions=[TransactionItem.model_validate(e) for e in history["transactions"]],
        pagination=history["pagination"],
    ))


@router.post("/payout", response_model=ApiResponse[PayoutRequestResponse])
async def request_payout(
    data: PayoutCreateRequest,
    user_id: uuid.UUID = Header(..., alias="X-User-ID"),
    session: AsyncSession = Depends(get_session),
    registry: GatewayRegistry = Depends(get_gateway_registry),
):
    """Withdraw to the PIX key configured in the creator's profile.

    Returns 400 for an amount above the available balance or below the
    minimum, and 502 when the provider rejects the transfer (the amount is
    returned to the available balance).
    """
    service = PayoutService(session, registry)
    result = await service.request_payout(user_id, data.amount)
    return ApiResponse(data=result)


@router.get("/payouts", response_model=ApiResponse[PayoutListResponse])
async def list_payouts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    user_id: uuid.UUID = Header(..., alias="X-User-ID"),
    session: AsyncSession = Depends(get_session),
    registry: GatewayRegistry = Depends(get_gateway_registry),
):
    service = PayoutService(session, registry)
    return ApiResponse(data=await service.list_payouts(user_id, page=page, limit=limit))


@router.get("/payouts/{payout_id}", response_model=ApiResponse[PayoutResponse])
async def get_payout(
    payout_id: uuid.UUID,
    user_id: uuid.UUID = Header(..., alias="X-User-ID"),
    session: AsyncSession = Depends(get_session),
    registry: GatewayRegistry = Depends(get_gateway_registry),
):
    service = PayoutService(session, registry)
    return ApiResponse(data=await service.get_payout_details(payout_id, user_id))
