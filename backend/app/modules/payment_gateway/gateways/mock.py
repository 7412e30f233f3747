"""Mock PIX gateway for local development.

Nothing leaves the process: charges and payouts live in memory. With
``auto_approve`` enabled, a charge reads as paid (and a payout as
completed) once ``approval_delay_seconds`` have elapsed since creation.
Webhooks accept an HMAC-SHA256 of the body or the literal
``mock-signature``.
"""

import base64
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from app.modules.payment_gateway.helpers import (
    format_amount,
    parse_json_body,
    parse_timestamp,
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

MOCK_SIGNATURE = "mock-signature"


@dataclass
class _MockCharge:
    id: str
    external_id: str
    amount: int
    status: PaymentGatewayStatus
    created_at: datetime
    expires_at: datetime
    paid_at: Optional[datetime] = None


@dataclass
class _MockPayout:
    id: str
    external_id: str
    amount: int
    status: PayoutGatewayStatus
    created_at: datetime
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None


class MockGateway(PaymentGatewayInterface):
    """In-memory adapter used when ``PAYMENT_GATEWAY=mock``."""

    SIGNATURE_HEADER = "X-Mock-Signature"

    def __init__(
        self,
        webhook_secret: str = "mock-secret",
        auto_approve: bool = False,
        approval_delay_seconds: float = 3.0,
    ):
        self._webhook_secret = webhook_secret
        self._auto_approve = auto_approve
        self._approval_delay = timedelta(seconds=approval_delay_seconds)
        self._charges: dict[str, _MockCharge] = {}
        self._payouts: dict[str, _MockPayout] = {}

    @property
    def name(self) -> str:
        return "mock"

    async def generate_pix_charge(self, data: CreatePixChargeDTO) -> PixChargeResult:
        validate_charge_request(data, self.name)

        now = datetime.utcnow()
        charge = _MockCharge(
            id=f"mock_{uuid.uuid4().hex[:16]}",
            external_id=data.external_id,
            amount=data.amount,
            status=PaymentGatewayStatus.PENDING,
            created_at=now,
            expires_at=now + timedelta(minutes=data.expires_in_minutes),
        )
        self._charges[charge.id] = charge
        logger.info(f"Mock charge {charge.id} created for {data.amount} cents")

        amount = format_amount(data.amount)
        svg = (
            '<svg xmlns="http://www.w3.org/2000/svg" width="200" height="200">'
            '<rect width="200" height="200" fill="white"/>'
            f'<text x="100" y="100" text-anchor="middle">MOCK PIX R$ {amount}</text>'
            "</svg>"
        )
        return PixChargeResult(
            gateway_id=charge.id,
            qr_code="data:image/svg+xml;base64," + base64.b64encode(svg.encode()).decode(),
            qr_code_text=(
                "00020126580014br.gov.bcb.pix0136mock-"
                f"{charge.id}52040000530398654{len(amount):02d}{amount}5802BR6304MOCK"
            ),
            expires_at=charge.expires_at,
            status=charge.status,
        )

    async def get_payment_status(self, gateway_id: str) -> PaymentStatusResult:
        charge = self._charges.get(gateway_id)
        if charge is None:
            return PaymentStatusResult(gateway_id=gateway_id, status=PaymentGatewayStatus.PENDING)

        now = datetime.utcnow()
        if charge.status == PaymentGatewayStatus.PENDING:
            if self._auto_approve and now >= charge.created_at + self._approval_delay:
                charge.status = PaymentGatewayStatus.PAID
                charge.paid_at = now
            elif now > charge.expires_at:
                charge.status = PaymentGatewayStatus.EXPIRED

        return PaymentStatusResult(
            gateway_id=charge.id,
            status=charge.status,
            paid_at=charge.paid_at,
            paid_amount=charge.amount if charge.status == PaymentGatewayStatus.PAID else None,
        )

    async def execute_payout(self, data: ExecutePayoutDTO) -> PayoutResult:
        validate_payout_request(data, self.name)

        now = datetime.utcnow()
        payout = _MockPayout(
            id=f"payout_mock_{uuid.uuid4().hex[:16]}",
            external_id=data.external_id,
            amount=data.amount,
            status=PayoutGatewayStatus.PENDING,
            created_at=now,
        )
        self._payouts[payout.id] = payout
        logger.info(f"Mock payout {payout.id} created for {data.amount} cents")

        return PayoutResult(
            gateway_id=payout.id,
            status=payout.status,
            estimated_completion_at=now + timedelta(minutes=5),
        )

    async def get_payout_status(self, gateway_id: str) -> PayoutStatusResult:
        payout = self._payouts.get(gateway_id)
        if payout is None:
            return PayoutStatusResult(gateway_id=gateway_id, status=PayoutGatewayStatus.PENDING)

        now = datetime.utcnow()
        if (
            self._auto_approve
            and payout.status == PayoutGatewayStatus.PENDING
            and now >= payout.created_at + self._approval_delay
        ):
            payout.status = PayoutGatewayStatus.COMPLETED
            payout.completed_at = now

        return PayoutStatusResult(
            gateway_id=payout.id,
            status=payout.status,
            completed_at=payout.completed_at,
            failure_reason=payout.failure_reason,
        )

    def validate_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        if not signature:
            return False
        if signature == MOCK_SIGNATURE:
            return True
        return verify_hmac_signature(self._webhook_secret, raw_body, signature, provider=self.name)

    def parse_webhook_event(self, raw_body: bytes) -> GatewayWebhookEvent:
        """Mock webhooks already use canonical names (``payment.paid`` ...)."""
        payload = parse_json_body(raw_body, self.name)

        raw_type = str(payload.get("type", ""))
        gateway_id = payload.get("gateway_id") or payload.get("gatewayId") or payload.get("id")
        try:
            event_type = WebhookEventType(raw_type)
        except ValueError as e:
            raise GatewayError(
                GatewayErrorCode.INVALID_REQUEST,
                f"Unsupported mock webhook event: {raw_type or '<missing>'}",
                provider=self.name,
            ) from e
        if not gateway_id:
            raise GatewayError(
                GatewayErrorCode.INVALID_REQUEST,
                "Mock webhook is missing gateway_id",
                provider=self.name,
            )

        return GatewayWebhookEvent(
            type=event_type,
            gateway_id=str(gateway_id),
            event_id=str(payload.get("event_id") or payload.get("eventId") or f"{gateway_id}-{raw_type}"),
            timestamp=parse_timestamp(payload.get("timestamp")) or datetime.utcnow(),
            data=payload,
            failure_reason=payload.get("failure_reason"),
        )

    def approve_payment(self, gateway_id: str) -> bool:
        """Mark a pending mock charge as paid. Returns False if not pending."""
        charge = self._charges.get(gateway_id)
        if charge is None or charge.status != PaymentGatewayStatus.PENDING:
            return False
        charge.status = PaymentGatewayStatus.PAID
        charge.paid_at = datetime.utcnow()
        logger.info(f"Mock charge {gateway_id} manually approved")
        return True

    def fail_payout(self, gateway_id: str, reason: str = "Mock failure") -> bool:
        """Mark a pending mock payout as failed. Returns False if unknown or settled."""
        payout = self._payouts.get(gateway_id)
        if payout is None or payout.status in (PayoutGatewayStatus.COMPLETED, PayoutGatewayStatus.FAILED):
            return False
        payout.status = PayoutGatewayStatus.FAILED
        payout.failure_reason = reason
        return True
