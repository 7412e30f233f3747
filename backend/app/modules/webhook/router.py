"""Webhook API Router.

One endpoint per provider: ``POST /webhooks/{provider}``. The raw body is
handed to the adapter untouched so the signature is checked over the exact
bytes the provider signed.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.exceptions import NotFoundError
from app.modules.payment_gateway.registry import GatewayRegistry, get_gateway_registry
from app.modules.webhook.service import WebhookProcessor

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/{provider}")
async def handle_webhook(
    provider: str,
    request: Request,
    session: AsyncSession = Depends(get_session),
    registry: GatewayRegistry = Depends(get_gateway_registry),
):
    """Receive a provider notification.

    Duplicates are acknowledged with ``processed: false`` so the provider
    stops retrying.
    """
    name = provider.lower()
    if not registry.is_registered(name):
        raise NotFoundError(f"Unknown payment provider: {provider}")

    raw_body = await request.body()
    signature = request.headers.get(registry.get(name).SIGNATURE_HEADER)

    processor = WebhookProcessor(session, registry)
    result = await processor.process_webhook(name, raw_body, signature)
    return {"success": True, "data": result}
