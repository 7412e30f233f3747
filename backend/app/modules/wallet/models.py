"""Creator wallet and payout models.

Requirements:
- One wallet per creator, created lazily
- available_balance and frozen_balance never go negative (check constraints)
- Payouts are created by PayoutService and settled by webhooks or by the
  compensation step when the provider call fails
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.database import Base


class PayoutStatus(str, Enum):
    """Payout lifecycle."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Payouts still holding money in flight
OPEN_PAYOUT_STATUSES = (PayoutStatus.PENDING.value, PayoutStatus.PROCESSING.value)


class Wallet(Base):
    """Creator balance split into withdrawable and escrowed parts."""

    __tablename__ = "wallets"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, unique=True, index=True
    )

    # Cents
    available_balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    frozen_balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("available_balance >= 0", name="ck_wallets_available_non_negative"),
        CheckConstraint("frozen_balance >= 0", name="ck_wallets_frozen_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<Wallet(id={self.id}, user_id={self.user_id}, "
            f"available={self.available_balance}, frozen={self.frozen_balance})>"
        )

    @property
    def total_balance(self) -> int:
        return self.available_balance + self.frozen_balance


class Payout(Base):
    """PIX withdrawal from a creator's available balance."""

    __tablename__ = "payouts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    wallet_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("wallets.id"), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    # Provider
    gateway_provider: Mapped[str] = mapped_column(String(20), nullable=False)
    gateway_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Destination
    pix_key: Mapped[str] = mapped_column(String(255), nullable=False)
    pix_key_type: Mapped[str] = mapped_column(String(20), nullable=False)
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_document: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=PayoutStatus.PENDING.value, nullable=False, index=True
    )
    requested_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    failed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payouts_amount_positive"),
        Index("ix_payouts_gateway", "gateway_provider", "gateway_id"),
        Index("ix_payouts_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Payout(id={self.id}, amount={self.amount}, status={self.status})>"

    @property
    def is_terminal(self) -> bool:
        return self.status in (PayoutStatus.COMPLETED.value, PayoutStatus.FAILED.value)
