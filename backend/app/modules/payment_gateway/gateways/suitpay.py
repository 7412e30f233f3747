"""SuitPay PIX gateway implementation.

Amounts travel as reais strings ("29.90"); webhooks are signed with
HMAC-SHA256 (hex) in the ``X-Webhook-Signature`` header.
"""

import hashlib
import logging
from datetime import datetime, timedelta
from typing import Optional

from app.modules.payment_gateway.helpers import (
    format_amount,
    normalize_document,
    parse_json_body,
    parse_timestamp,
    send_provider_request,
    to_cents,
    validate_charge_request,
    validate_payout_request,
    verify_hmac_signature,
)
from app.modules.payment_gateway.interface import (
    CreatePixChargeDTO,
    ExecutePayoutDTO,
    GatewayError,
    GatewayErrorCode,
    GatewayWebhookEvent,
    PaymentGatewayInterface,
    PaymentGatewayStatus,
    PaymentStatusResult,
    PayoutGatewayStatus,
    PayoutResult,
    PayoutStatusResult,
    PixChargeResult,
    WebhookEventType,
)

logger = logging.getLogger(__name__)


class SuitPayGateway(PaymentGatewayInterface):
    """SuitPay adapter (Bearer token auth)."""

    SIGNATURE_HEADER = "X-Webhook-Signature"

    PAYMENT_STATUS_MAP = {
        "pending": PaymentGatewayStatus.PENDING,
        "waiting": PaymentGatewayStatus.PENDING,
        "paid": PaymentGatewayStatus.PAID,
        "confirmed": PaymentGatewayStatus.PAID,
        "expired": PaymentGatewayStatus.EXPIRED,
        "cancelled": PaymentGatewayStatus.CANCELLED,
        "canceled": PaymentGatewayStatus.CANCELLED,
        "refunded": PaymentGatewayStatus.REFUNDED,
    }

    PAYOUT_STATUS_MAP = {
        "pending": PayoutGatewayStatus.PENDING,
        "processing": PayoutGatewayStatus.PROCESSING,
        "in_progress": PayoutGatewayStatus.PROCESSING,
        "completed": PayoutGatewayStatus.COMPLETED,
        "success": PayoutGatewayStatus.COMPLETED,
        "failed": PayoutGatewayStatus.FAILED,
        "error": PayoutGatewayStatus.FAILED,
    }

    EVENT_TYPE_MAP = {
        "charge.paid": WebhookEventType.PAYMENT_PAID,
        "charge.expired": WebhookEventType.PAYMENT_EXPIRED,
        "charge.cancelled": WebhookEventType.PAYMENT_CANCELLED,
        "charge.refunded": WebhookEventType.PAYMENT_REFUNDED,
        "payout.completed": WebhookEventType.PAYOUT_COMPLETED,
        "payout.failed": WebhookEventType.PAYOUT_FAILED,
        "payout.processing": WebhookEventType.PAYOUT_PROCESSING,
    }

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        base_url: str = "https://api.suitpay.app",
        timeout: float = 30.0,
    ):
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "suitpay"

    async def _make_request(
        self,
        operation: str,
        method: str,
        endpoint: str,
        data: Optional[dict] = None,
    ) -> dict:
        """Make an authenticated request to the SuitPay API."""
        return await send_provider_request(
            provider=self.name,
            operation=operation,
            method=method,
            url=f"{self._base_url}{endpoint}",
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            data=data,
            timeout=self._timeout,
        )

    async def generate_pix_charge(self, data: CreatePixChargeDTO) -> PixChargeResult:
        validate_charge_request(data, self.name)
        logger.info(f"SuitPay generate_pix_charge: external_id={data.external_id}, amount={data.amount}")

        response = await self._make_request("generate_pix_charge", "POST", "/pix/charge", {
            "value": format_amount(data.amount),
            "external_id": data.external_id,
            "description": data.description,
            "customer": {
                "name": data.customer.name,
                "email": data.customer.email,
                "document": normalize_document(data.customer.document),
            },
            "expires_in": data.expires_in_minutes * 60,
            "metadata": data.metadata or {},
        })

        expires_at = parse_timestamp(response.get("expires_at")) or (
            datetime.utcnow() + timedelta(minutes=data.expires_in_minutes)
        )
        return PixChargeResult(
            gateway_id=str(response.get("id", "")),
            qr_code=response.get("qr_code", ""),
            qr_code_text=response.get("qr_code_text") or response.get("pix_code", ""),
            expires_at=expires_at,
            status=self._map_payment_status(response.get("status")),
        )

    async def get_payment_status(self, gateway_id: str) -> PaymentStatusResult:
        response = await self._make_request("get_payment_status", "GET", f"/pix/charge/{gateway_id}")
        paid_amount = response.get("paid_amount")
        return PaymentStatusResult(
            gateway_id=str(response.get("id", gateway_id)),
            status=self._map_payment_status(response.get("status")),
            paid_at=parse_timestamp(response.get("paid_at")),
            paid_amount=to_cents(paid_amount) if paid_amount else None,
        )

    async def execute_payout(self, data: ExecutePayoutDTO) -> PayoutResult:
        validate_payout_request(data, self.name)
        logger.info(f"SuitPay execute_payout: external_id={data.external_id}, amount={data.amount}")

        response = await self._make_request("execute_payout", "POST", "/pix/payout", {
            "value": format_amount(data.amount),
            "external_id": data.external_id,
            "pix_key": data.pix_key,
            "pix_key_type": data.pix_key_type.value,
            "recipient_name": data.recipient_name,
            "recipient_document": normalize_document(data.recipient_document),
            "description": data.description,
        })

        return PayoutResult(
            gateway_id=str(response.get("id", "")),
            status=self._map_payout_status(response.get("status")),
            estimated_completion_at=parse_timestamp(response.get("estimated_at")),
        )

    async def get_payout_status(self, gateway_id: str) -> PayoutStatusResult:
        response = await self._make_request("get_payout_status", "GET", f"/pix/payout/{gateway_id}")
        return PayoutStatusResult(
            gateway_id=str(response.get("id", gateway_id)),
            status=self._map_payout_status(response.get("status")),
            completed_at=parse_timestamp(response.get("completed_at")),
            failure_reason=response.get("failure_reason"),
        )

    def validate_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        return verify_hmac_signature(
            self._webhook_secret, raw_body, signature, hashlib.sha256, self.name
        )

    def parse_webhook_event(self, raw_body: bytes) -> GatewayWebhookEvent:
        payload = parse_json_body(raw_body, self.name)

        raw_type = str(payload.get("event", ""))
        event_type = self.EVENT_TYPE_MAP.get(raw_type)
        gateway_id = payload.get("id") or payload.get("transaction_id")
        if event_type is None or not gateway_id:
            raise GatewayError(
                GatewayErrorCode.INVALID_REQUEST,
                f"Unsupported SuitPay webhook event: {raw_type or '<missing>'}",
                provider=self.name,
            )

        return GatewayWebhookEvent(
            type=event_type,
            gateway_id=str(gateway_id),
            event_id=str(payload.get("event_id") or f"{gateway_id}-{raw_type}"),
            timestamp=parse_timestamp(payload.get("timestamp")) or datetime.utcnow(),
            data=payload,
            failure_reason=payload.get("failure_reason") or payload.get("error_message"),
        )

    def _map_payment_status(self, status: Optional[str]) -> PaymentGatewayStatus:
        """Map SuitPay charge status to PaymentGatewayStatus."""
        return self.PAYMENT_STATUS_MAP.get(str(status or "").lower(), PaymentGatewayStatus.PENDING)

    def _map_payout_status(self, status: Optional[str]) -> PayoutGatewayStatus:
        """Map SuitPay payout status to PayoutGatewayStatus."""
        return self.PAYOUT_STATUS_MAP.get(str(status or "").lower(), PayoutGatewayStatus.PENDING)
