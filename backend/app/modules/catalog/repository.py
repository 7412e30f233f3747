"""Read-only access to packs and legacy purchases."""

import uuid
from typing import Optional

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.catalog.models import Pack, Purchase, PurchaseStatus


class CatalogRepository:
    """Repository for pack lookups made during checkout."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_pack(self, pack_id: uuid.UUID) -> Optional[Pack]:
        result = await self.session.execute(select(Pack).where(Pack.id == pack_id))
        return result.scalar_one_or_none()

    async def has_completed_purchase(self, buyer_id: uuid.UUID, pack_id: uuid.UUID) -> bool:
        """Check the legacy card checkout for a completed purchase."""
        result = await self.session.execute(
            select(Purchase.id)
            .where(
                and_(
                    Purchase.buyer_id == buyer_id,
                    Purchase.pack_id == pack_id,
                    Purchase.status == PurchaseStatus.COMPLETED.value,
                )
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None
