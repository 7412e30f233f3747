"""Append-only ledger of wallet and platform money movements.

For every wallet: sum(CREDIT) - sum(DEBIT) == available + frozen.
Platform fee entries have no wallet and carry ``is_platform_entry``.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.database import Base


class LedgerEntryType(str, Enum):
    """Direction of a ledger entry."""
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class LedgerCategory(str, Enum):
    """Business reason for a ledger entry."""
    SALE = "SALE"
    PLATFORM_FEE = "PLATFORM_FEE"
    PAYOUT = "PAYOUT"
    REFUND = "REFUND"
    ADJUSTMENT = "ADJUSTMENT"
    RELEASE = "RELEASE"


class LedgerEntry(Base):
    """Immutable record of one credit or debit."""

    __tablename__ = "ledger_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    wallet_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("wallets.id"), nullable=True, index=True
    )
    is_platform_entry: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    type: Mapped[str] = mapped_column(String(10), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)

    payment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("payments.id"), nullable=True, index=True
    )
    payout_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("payouts.id"), nullable=True, index=True
    )

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    entry_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata", JSON, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("ix_ledger_entries_wallet_created", "wallet_id", "created_at"),
        Index("ix_ledger_entries_platform_category", "is_platform_entry", "category"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(id={self.id}, type={self.type}, "
            f"category={self.category}, amount={self.amount})>"
        )

    @property
    def signed_amount(self) -> int:
        return self.amount if self.type == LedgerEntryType.CREDIT.value else -self.amount
