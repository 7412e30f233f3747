"""Webhook module: provider notifications and their idempotency log."""

from app.modules.webhook.models import WebhookEvent
from app.modules.webhook.repository import WebhookEventRepository

__all__ = ["WebhookEvent", "WebhookEventRepository"]
