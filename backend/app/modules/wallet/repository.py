"""Repository for wallet and payout database operations.

Nothing here commits: callers own the transaction.
"""

import uuid
from typing import Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.wallet.models import OPEN_PAYOUT_STATUSES, Payout, Wallet


class WalletRepository:
    """Repository for wallet operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_user_id(self, user_id: uuid.UUID, for_update: bool = False) -> Optional[Wallet]:
        """Get a creator's wallet, optionally locking the row."""
        stmt = select(Wallet).where(Wallet.user_id == user_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, wallet_id: uuid.UUID, for_update: bool = False) -> Optional[Wallet]:
        stmt = select(Wallet).where(Wallet.id == wallet_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, user_id: uuid.UUID) -> Wallet:
        """Create an empty wallet."""
        wallet = Wallet(user_id=user_id, available_balance=0, frozen_balance=0)
        self.session.add(wallet)
        await self.session.flush()
        return wallet


class PayoutRepository:
    """Repository for payout operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Payout:
        payout = Payout(**kwargs)
        self.session.add(payout)
        await self.session.flush()
        return payout

    async def get_by_id(self, payout_id: uuid.UUID, for_update: bool = False) -> Optional[Payout]:
        stmt = select(Payout).where(Payout.id == payout_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_gateway_id(
        self,
        provider: str,
        gateway_id: str,
        for_update: bool = False,
    ) -> Optional[Payout]:
        """Get a payout by the provider's transaction id."""
        stmt = select(Payout).where(
            and_(Payout.gateway_provider == provider, Payout.gateway_id == gateway_id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_user(
        self,
        user_id: uuid.UUID,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Payout], int]:
        """Get a page of a creator's payouts, newest first, with total count."""
        total = await self.session.scalar(
            select(func.count(Payout.id)).where(Payout.user_id == user_id)
        )
        result = await self.session.execute(
            select(Payout)
            .where(Payout.user_id == user_id)
            .order_by(Payout.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def sum_open_amount(self, user_id: uuid.UUID) -> int:
        """Total of payouts still pending or processing."""
        total = await self.session.scalar(
            select(func.coalesce(func.sum(Payout.amount), 0)).where(
                and_(Payout.user_id == user_id, Payout.status.in_(OPEN_PAYOUT_STATUSES))
            )
        )
        return int(total or 0)
