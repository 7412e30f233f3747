"""Repository for ledger queries.

Entries are appended through ``LedgerService.create_entry``; this module
only reads.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.ledger.models import LedgerCategory, LedgerEntry, LedgerEntryType


class LedgerRepository:
    """Repository for ledger entry operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_wallet_entries(
        self,
        wallet_id: uuid.UUID,
        limit: int = 20,
        offset: int = 0,
        entry_type: Optional[str] = None,
        category: Optional[str] = None,
    ) -> tuple[list[LedgerEntry], int]:
        """Get a page of entries for a wallet, newest first, with total count."""
        conditions = [LedgerEntry.wallet_id == wallet_id]
        if entry_type:
            conditions.append(LedgerEntry.type == entry_type)
        if category:
            conditions.append(LedgerEntry.category == category)

        total = await self.session.scalar(
            select(func.count(LedgerEntry.id)).where(and_(*conditions))
        )
        result = await self.session.execute(
            select(LedgerEntry)
            .where(and_(*conditions))
            .order_by(LedgerEntry.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def get_wallet_totals(self, wallet_id: uuid.UUID) -> tuple[int, int]:
        """Return (sum of credits, sum of debits) for a wallet."""
        result = await self.session.execute(
            select(
                func.coalesce(
                    func.sum(case((LedgerEntry.type == LedgerEntryType.CREDIT.value, LedgerEntry.amount), else_=0)),
                    0,
                ),
                func.coalesce(
                    func.sum(case((LedgerEntry.type == LedgerEntryType.DEBIT.value, LedgerEntry.amount), else_=0)),
                    0,
                ),
            ).where(LedgerEntry.wallet_id == wallet_id)
        )
        credits, debits = result.one()
        return int(credits), int(debits)

    async def sum_wallet_category(
        self,
        wallet_id: uuid.UUID,
        entry_type: LedgerEntryType,
        category: LedgerCategory,
    ) -> int:
        """Sum of amounts for one direction and category of a wallet."""
        total = await self.session.scalar(
            select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
                and_(
                    LedgerEntry.wallet_id == wallet_id,
                    LedgerEntry.type == entry_type.value,
                    LedgerEntry.category == category.value,
                )
            )
        )
        return int(total or 0)

    async def get_platform_revenue(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> tuple[int, int]:
        """Return (total platform fees, number of fee entries) in a period."""
        conditions = [
            LedgerEntry.is_platform_entry.is_(True),
            LedgerEntry.category == LedgerCategory.PLATFORM_FEE.value,
            LedgerEntry.type == LedgerEntryType.CREDIT.value,
        ]
        if start_date:
            conditions.append(LedgerEntry.created_at >= start_date)
        if end_date:
            conditions.append(LedgerEntry.created_at <= end_date)

        result = await self.session.execute(
            select(
                func.coalesce(func.sum(LedgerEntry.amount), 0),
                func.count(LedgerEntry.id),
            ).where(and_(*conditions))
        )
        total, count = result.one()
        return int(total), int(count)
