"""EzzePay PIX gateway implementation.

EzzePay works in integer cents, authenticates with an ``X-Api-Key`` header
and signs webhooks with HMAC-SHA256 (hex) in ``X-Signature``.
"""

import hashlib
import logging
from datetime import datetime, timedelta
from typing import Optional

from app.modules.payment_gateway.helpers import (
    normalize_document,
    parse_json_body,
    parse_timestamp,
    send_provider_request,
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
    PixKeyType,
    WebhookEventType,
)

logger = logging.getLogger(__name__)


class EzzePayGateway(PaymentGatewayInterface):
    """EzzePay adapter (API key auth, amounts in cents)."""

    SIGNATURE_HEADER = "X-Signature"

    PAYMENT_STATUS_MAP = {
        "PENDING": PaymentGatewayStatus.PENDING,
        "WAITING_PAYMENT": PaymentGatewayStatus.PENDING,
        "PAID": PaymentGatewayStatus.PAID,
        "CONFIRMED": PaymentGatewayStatus.PAID,
        "EXPIRED": PaymentGatewayStatus.EXPIRED,
        "CANCELLED": PaymentGatewayStatus.CANCELLED,
        "REFUNDED": PaymentGatewayStatus.REFUNDED,
    }

    PAYOUT_STATUS_MAP = {
        "PENDING": PayoutGatewayStatus.PENDING,
        "PROCESSING": PayoutGatewayStatus.PROCESSING,
        "IN_TRANSIT": PayoutGatewayStatus.PROCESSING,
        "COMPLETED": PayoutGatewayStatus.COMPLETED,
        "SUCCESS": PayoutGatewayStatus.COMPLETED,
        "FAILED": PayoutGatewayStatus.FAILED,
        "ERROR": PayoutGatewayStatus.FAILED,
        "REJECTED": PayoutGatewayStatus.FAILED,
    }

    EVENT_TYPE_MAP = {
        "PIX_RECEIVED": WebhookEventType.PAYMENT_PAID,
        "PIX_PAID": WebhookEventType.PAYMENT_PAID,
        "PIX_EXPIRED": WebhookEventType.PAYMENT_EXPIRED,
        "PIX_CANCELLED": WebhookEventType.PAYMENT_CANCELLED,
        "PIX_REFUNDED": WebhookEventType.PAYMENT_REFUNDED,
        "TRANSFER_COMPLETED": WebhookEventType.PAYOUT_COMPLETED,
        "TRANSFER_FAILED": WebhookEventType.PAYOUT_FAILED,
        "TRANSFER_PROCESSING": WebhookEventType.PAYOUT_PROCESSING,
    }

    PIX_KEY_TYPE_MAP = {
        PixKeyType.CPF: "CPF",
        PixKeyType.CNPJ: "CNPJ",
        PixKeyType.EMAIL: "EMAIL",
        PixKeyType.PHONE: "PHONE",
        PixKeyType.EVP: "EVP",
    }

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        base_url: str = "https://api.ezzepay.com.br",
        timeout: float = 30.0,
    ):
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "ezzepay"

    async def _make_request(
        self,
        operation: str,
        method: str,
        endpoint: str,
        data: Optional[dict] = None,
    ) -> dict:
        """Make an authenticated request to the EzzePay API."""
        return await send_provider_request(
            provider=self.name,
            operation=operation,
            method=method,
            url=f"{self._base_url}{endpoint}",
            headers={
                "X-Api-Key": self._api_key,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            data=data,
            timeout=self._timeout,
        )

    async def generate_pix_charge(self, data: CreatePixChargeDTO) -> PixChargeResult:
        validate_charge_request(data, self.name)
        logger.info(f"EzzePay generate_pix_charge: external_id={data.external_id}, amount={data.amount}")

        response = await self._make_request("generate_pix_charge", "POST", "/v1/pix/qrcode", {
            "amount": data.amount,
            "reference_id": data.external_id,
            "description": data.description,
            "payer": {
                "name": data.customer.name,
                "email": data.customer.email,
                "cpf_cnpj": normalize_document(data.customer.document),
            },
            "expiration_minutes": data.expires_in_minutes,
            "additional_info": data.metadata or {},
        })

        expires_at = parse_timestamp(response.get("expiration_date")) or (
            datetime.utcnow() + timedelta(minutes=data.expires_in_minutes)
        )
        return PixChargeResult(
            gateway_id=str(response.get("transaction_id", "")),
            qr_code=response.get("qrcode_base64") or response.get("qrcode", ""),
            qr_code_text=response.get("copy_paste") or response.get("emv", ""),
            expires_at=expires_at,
            status=self._map_payment_status(response.get("status")),
        )

    async def get_payment_status(self, gateway_id: str) -> PaymentStatusResult:
        response = await self._make_request(
            "get_payment_status", "GET", f"/v1/pix/transaction/{gateway_id}"
        )
        amount_paid = response.get("amount_paid")
        return PaymentStatusResult(
            gateway_id=str(response.get("transaction_id", gateway_id)),
            status=self._map_payment_status(response.get("status")),
            paid_at=parse_timestamp(response.get("paid_at")),
            paid_amount=int(amount_paid) if amount_paid is not None else None,
        )

    async def execute_payout(self, data: ExecutePayoutDTO) -> PayoutResult:
        validate_payout_request(data, self.name)
        logger.info(f"EzzePay execute_payout: external_id={data.external_id}, amount={data.amount}")

        response = await self._make_request("execute_payout", "POST", "/v1/pix/transfer", {
            "amount": data.amount,
            "reference_id": data.external_id,
            "pix_key": data.pix_key,
            "pix_key_type": self.PIX_KEY_TYPE_MAP.get(data.pix_key_type, data.pix_key_type.value.upper()),
            "receiver": {
                "name": data.recipient_name,
                "cpf_cnpj": normalize_document(data.recipient_document),
            },
            "description": data.description or "Saque",
        })

        return PayoutResult(
            gateway_id=str(response.get("transfer_id", "")),
            status=self._map_payout_status(response.get("status")),
            estimated_completion_at=parse_timestamp(response.get("estimated_completion")),
        )

    async def get_payout_status(self, gateway_id: str) -> PayoutStatusResult:
        response = await self._make_request(
            "get_payout_status", "GET", f"/v1/pix/transfer/{gateway_id}"
        )
        return PayoutStatusResult(
            gateway_id=str(response.get("transfer_id", gateway_id)),
            status=self._map_payout_status(response.get("status")),
            completed_at=parse_timestamp(response.get("completed_at")),
            failure_reason=response.get("error_message"),
        )

    def validate_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        return verify_hmac_signature(
            self._webhook_secret, raw_body, signature, hashlib.sha256, self.name
        )

    def parse_webhook_event(self, raw_body: bytes) -> GatewayWebhookEvent:
        payload = parse_json_body(raw_body, self.name)

        raw_type = str(payload.get("event_type") or payload.get("type") or "").upper()
        event_type = self.EVENT_TYPE_MAP.get(raw_type)
        gateway_id = payload.get("transaction_id") or payload.get("transfer_id")
        if event_type is None or not gateway_id:
            raise GatewayError(
                GatewayErrorCode.INVALID_REQUEST,
                f"Unsupported EzzePay webhook event: {raw_type or '<missing>'}",
                provider=self.name,
            )

        return GatewayWebhookEvent(
            type=event_type,
            gateway_id=str(gateway_id),
            event_id=str(payload.get("webhook_id") or f"{gateway_id}-{raw_type}"),
            timestamp=parse_timestamp(payload.get("created_at")) or datetime.utcnow(),
            data=payload,
            failure_reason=payload.get("error_message"),
        )

    def _map_payment_status(self, status: Optional[str]) -> PaymentGatewayStatus:
        """Map EzzePay transaction status to PaymentGatewayStatus."""
        return self.PAYMENT_STATUS_MAP.get(str(status or "").upper(), PaymentGatewayStatus.PENDING)

    def _map_payout_status(self, status: Optional[str]) -> PayoutGatewayStatus:
        """Map EzzePay transfer status to PayoutGatewayStatus."""
        return self.PAYOUT_STATUS_MAP.get(str(status or "").upper(), PayoutGatewayStatus.PENDING)
