"""Pydantic schemas for PIX checkout and payment queries."""

import uuid
from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field, computed_field

from app.modules.payment_gateway.currency import format_brl

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Standard success envelope."""
    success: bool = True
    data: T


class Pagination(BaseModel):
    """Page metadata for list endpoints."""
    total: int
    page: int
    limit: int
    total_pages: int


# ==================== Checkout ====================

class CheckoutRequest(BaseModel):
    """Start a PIX checkout for a pack."""
    pack_id: uuid.UUID = Field(..., description="Pack being purchased")


class CheckoutPack(BaseModel):
    id: uuid.UUID
    title: str
    price: int


class CheckoutResponse(BaseModel):
    """PIX payload the buyer pays with."""
    payment_id: uuid.UUID
    qr_code: str
    qr_code_text: str
    expires_at: Optional[datetime]
    amount: int
    pack: CheckoutPack

    @computed_field
    @property
    def amount_formatted(self) -> str:
        return format_brl(self.amount)


class PaymentStatusResponse(BaseModel):
    """Current local status of a payment."""
    payment_id: uuid.UUID
    status: str
    paid_at: Optional[datetime] = None


# ==================== Listings ====================

class PaymentListItem(BaseModel):
    """Paid payment as shown to the buyer or the creator."""
    id: uuid.UUID
    pack_id: uuid.UUID
    buyer_id: uuid.UUID
    creator_id: uuid.UUID
    amount: int
    platform_fee: int
    creator_earnings: int
    status: str
    paid_at: Optional[datetime]
    available_at: Optional[datetime]
    balance_released: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @computed_field
    @property
    def amount_formatted(self) -> str:
        return format_brl(self.amount)

    @computed_field
    @property
    def creator_earnings_formatted(self) -> str:
        return format_brl(self.creator_earnings)


class PaymentListResponse(BaseModel):
    success: bool = True
    data: list[PaymentListItem]
    pagination: Pagination


def paginate(total: int, page: int, limit: int) -> dict[str, Any]:
    """Pagination block for a list response."""
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit if limit else 0,
    }
