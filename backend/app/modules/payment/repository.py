"""Repository for payment database operations.

Nothing here commits: callers own the transaction.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.payment.models import Payment, PaymentStatus


class PaymentRepository:
    """Repository for payment operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Payment:
        payment = Payment(**kwargs)
        self.session.add(payment)
        await self.session.flush()
        return payment

    async def get_by_id(self, payment_id: uuid.UUID, for_update: bool = False) -> Optional[Payment]:
        stmt = select(Payment).where(Payment.id == payment_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_gateway_id(
        self,
        provider: str,
        gateway_id: str,
        for_update: bool = False,
    ) -> Optional[Payment]:
        """Get a payment by the provider's transaction id."""
        stmt = select(Payment).where(
            and_(Payment.gateway_provider == provider, Payment.gateway_id == gateway_id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_open_for_buyer_pack(
        self,
        buyer_id: uuid.UUID,
        pack_id: uuid.UUID,
    ) -> list[Payment]:
        """Pending or paid payments for (buyer, pack), newest first."""
        result = await self.session.execute(
            select(Payment)
            .where(
                and_(
                    Payment.buyer_id == buyer_id,
                    Payment.pack_id == pack_id,
                    Payment.status.in_([PaymentStatus.PENDING.value, PaymentStatus.PAID.value]),
                )
            )
            .order_by(Payment.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_paid_by_buyer(
        self,
        buyer_id: uuid.UUID,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[Payment], int]:
        return await self._list_paid(Payment.buyer_id == buyer_id, offset, limit)

    async def list_paid_by_creator(
        self,
        creator_id: uuid.UUID,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[Payment], int]:
        return await self._list_paid(Payment.creator_id == creator_id, offset, limit)

    async def _list_paid(self, owner_clause, offset: int, limit: int) -> tuple[list[Payment], int]:
        condition = and_(owner_clause, Payment.status == PaymentStatus.PAID.value)
        total = await self.session.scalar(select(func.count(Payment.id)).where(condition))
        result = await self.session.execute(
            select(Payment)
            .where(condition)
            .order_by(Payment.paid_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def get_releasable_ids(self, now: datetime, limit: int = 500) -> list[uuid.UUID]:
        """Ids of paid payments whose anti-fraud hold has elapsed."""
        result = await self.session.execute(
            select(Payment.id)
            .where(
                and_(
                    Payment.status == PaymentStatus.PAID.value,
                    Payment.balance_released.is_(False),
                    Payment.available_at <= now,
                )
            )
            .order_by(Payment.available_at)
            .limit(limit)
        )
        return list(result.scalars().all())
