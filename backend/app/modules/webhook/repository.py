"""Repository for webhook idempotency records."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.webhook.models import WebhookEvent


class WebhookEventRepository:
    """Repository for webhook event operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, provider: str, event_id: str) -> Optional[WebhookEvent]:
        result = await self.session.execute(
            select(WebhookEvent).where(
                and_(WebhookEvent.provider == provider, WebhookEvent.event_id == event_id)
            )
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        provider: str,
        event_id: str,
        event_type: str,
        gateway_id: Optional[str],
        payload: dict[str, Any],
        processed_at: datetime,
    ) -> WebhookEvent:
        """Insert a processed event; flushes so duplicates fail here."""
        event = WebhookEvent(
            provider=provider,
            event_id=event_id,
            event_type=event_type,
            gateway_id=gateway_id,
            payload=payload,
            processed=True,
            processed_at=processed_at,
        )
        self.session.add(event)
        await self.session.flush()
        return event
