"""Pydantic schemas for wallet, ledger history and payouts."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from app.modules.payment.schemas import Pagination
from app.modules.payment_gateway.currency import format_brl


# ==================== Balance ====================

class BalanceResponse(BaseModel):
    """Wallet balance in cents."""
    available: int
    frozen: int
    total: int

    @computed_field
    @property
    def available_formatted(self) -> str:
        return format_brl(self.available)

    @computed_field
    @property
    def frozen_formatted(self) -> str:
        return format_brl(self.frozen)

    @computed_field
    @property
    def total_formatted(self) -> str:
        return format_brl(self.total)


class WalletSummaryResponse(BaseModel):
    """Balance plus payout and earnings totals."""
    balance: BalanceResponse
    pending_payouts: int
    total_earnings: int
    total_payouts: int

    @computed_field
    @property
    def pending_payouts_formatted(self) -> str:
        return format_brl(self.pending_payouts)

    @computed_field
    @property
    def total_earnings_formatted(self) -> str:
        return format_brl(self.total_earnings)

    @computed_field
    @property
    def total_payouts_formatted(self) -> str:
        return format_brl(self.total_payouts)


# ==================== Transactions ====================

class TransactionItem(BaseModel):
    """One ledger entry as shown to the creator."""
    id: uuid.UUID
    type: str
    category: str
    amount: int
    balance_after: int
    description: Optional[str] = None
    payment_id: Optional[uuid.UUID] = None
    payout_id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @computed_field
    @property
    def amount_formatted(self) -> str:
        return format_brl(self.amount)


class TransactionHistoryResponse(BaseModel):
    transactions: list[TransactionItem]
    pagination: Pagination


# ==================== Payouts ====================

class PayoutCreateRequest(BaseModel):
    """Withdraw from the available balance to the profile's PIX key."""
    amount: int = Field(..., gt=0, description="Amount in cents")


class PayoutRequestResponse(BaseModel):
    payout_id: uuid.UUID
    amount: int
    status: str
    estimated_completion_at: Optional[datetime] = None

    @computed_field
    @property
    def amount_formatted(self) -> str:
        return format_brl(self.amount)


class PayoutResponse(BaseModel):
    """Payout as shown to its owner; the PIX key is always masked."""
    id: uuid.UUID
    amount: int
    status: str
    gateway_provider: str
    masked_pix_key: str
    pix_key_type: str
    requested_at: datetime
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    @computed_field
    @property
    def amount_formatted(self) -> str:
        return format_brl(self.amount)


class PayoutListResponse(BaseModel):
    payouts: list[PayoutResponse]
    pagination: Pagination
