"""PIX payment model.

A Payment is created at checkout and afterwards only changed by webhook
processing, status reconciliation or the balance release job. Rows are
never deleted. Amounts are integer cents (BRL); timestamps are naive UTC.
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


class PaymentStatus(str, Enum):
    """Local payment lifecycle."""
    PENDING = "pending"
    PAID = "paid"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class Payment(Base):
    """PIX charge issued to a buyer for a pack."""

    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )

    # Parties
    buyer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    creator_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    pack_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("packs.id"), nullable=False, index=True
    )

    # Split (cents): creator_earnings = amount - platform_fee
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    platform_fee: Mapped[int] = mapped_column(Integer, nullable=False)
    creator_earnings: Mapped[int] = mapped_column(Integer, nullable=False)

    # Provider
    gateway_provider: Mapped[str] = mapped_column(String(20), nullable=False)
    gateway_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # PIX payload
    qr_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    qr_code_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), default=PaymentStatus.PENDING.value, nullable=False, index=True
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    expired_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Anti-fraud hold
    available_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    balance_released: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    payment_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata", JSON, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_payments_buyer_pack", "buyer_id", "pack_id"),
        Index("ix_payments_gateway", "gateway_provider", "gateway_id"),
        Index("ix_payments_release", "status", "balance_released", "available_at"),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, amount={self.amount}, status={self.status})>"

    @property
    def is_pending(self) -> bool:
        return self.status == PaymentStatus.PENDING.value

    def is_expired_at(self, now: datetime) -> bool:
        """True when the PIX code can no longer be paid."""
        return self.expires_at is not None and self.expires_at < now
