"""PIX Gateway Interface - contract every provider adapter implements.

Adapters translate canonical charge/payout requests into a provider's wire
protocol and normalize responses and webhooks back into the canonical shapes
defined here. Shared behavior (validation, amount formatting, HMAC checks,
HTTP error mapping) lives in ``helpers`` and is composed by each adapter.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class PaymentGatewayStatus(str, Enum):
    """Canonical PIX charge status."""
    PENDING = "pending"
    PAID = "paid"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PayoutGatewayStatus(str, Enum):
    """Canonical PIX payout status."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class WebhookEventType(str, Enum):
    """Canonical webhook event types."""
    PAYMENT_PAID = "payment.paid"
    PAYMENT_EXPIRED = "payment.expired"
    PAYMENT_CANCELLED = "payment.cancelled"
    PAYMENT_REFUNDED = "payment.refunded"
    PAYOUT_COMPLETED = "payout.completed"
    PAYOUT_FAILED = "payout.failed"
    PAYOUT_PROCESSING = "payout.processing"

    @property
    def is_payment_event(self) -> bool:
        return self.value.startswith("payment.")


class PixKeyType(str, Enum):
    """PIX key kinds accepted as payout destination."""
    CPF = "cpf"
    CNPJ = "cnpj"
    EMAIL = "email"
    PHONE = "phone"
    EVP = "evp"  # random key


class GatewayErrorCode(str, Enum):
    """Canonical gateway error taxonomy."""
    INVALID_REQUEST = "INVALID_REQUEST"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INVALID_PIX_KEY = "INVALID_PIX_KEY"
    TRANSACTION_NOT_FOUND = "TRANSACTION_NOT_FOUND"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    GATEWAY_UNAVAILABLE = "GATEWAY_UNAVAILABLE"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class GatewayError(Exception):
    """Raised by adapters for any provider or validation failure.

    Attributes:
        code: Canonical error code
        message: Human readable description
        provider: Adapter name that raised the error
        status_code: Provider HTTP status, when the failure came from HTTP
        details: Provider response body or validation context
    """

    def __init__(
        self,
        code: GatewayErrorCode,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Any] = None,
    ):
        self.code = code
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.details = details
        super().__init__(f"[{code.value}] {message}")


@dataclass
class CustomerInfo:
    """Payer identity sent with a PIX charge."""
    name: str
    email: str
    document: str  # CPF or CNPJ, punctuation allowed


@dataclass
class CreatePixChargeDTO:
    """Data transfer object for creating a PIX charge."""
    amount: int  # cents
    external_id: str
    description: str
    customer: CustomerInfo
    expires_in_minutes: int = 60
    metadata: Optional[dict[str, str]] = None


@dataclass
class PixChargeResult:
    """Result from PIX charge creation."""
    gateway_id: str
    qr_code: str  # base64 image or URL
    qr_code_text: str  # copy-and-paste BR Code
    expires_at: datetime
    status: PaymentGatewayStatus


@dataclass
class PaymentStatusResult:
    """Current state of a PIX charge at the provider."""
    gateway_id: str
    status: PaymentGatewayStatus
    paid_at: Optional[datetime] = None
    paid_amount: Optional[int] = None  # cents


@dataclass
class ExecutePayoutDTO:
    """Data transfer object for a PIX payout."""
    amount: int  # cents
    external_id: str
    pix_key: str
    pix_key_type: PixKeyType
    recipient_name: str
    recipient_document: str
    description: Optional[str] = None


@dataclass
class PayoutResult:
    """Result from payout submission."""
    gateway_id: str
    status: PayoutGatewayStatus
    estimated_completion_at: Optional[datetime] = None


@dataclass
class PayoutStatusResult:
    """Current state of a payout at the provider."""
    gateway_id: str
    status: PayoutGatewayStatus
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None


@dataclass
class GatewayWebhookEvent:
    """Provider webhook normalized into canonical form."""
    type: WebhookEventType
    gateway_id: str
    event_id: str
    timestamp: datetime
    data: dict[str, Any] = field(default_factory=dict)
    failure_reason: Optional[str] = None


class PaymentGatewayInterface(ABC):
    """Capability set every PIX provider adapter exposes."""

    # Header carrying the webhook signature
    SIGNATURE_HEADER: str = "X-Signature"

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier used in configuration and webhook routes."""

    @abstractmethod
    async def generate_pix_charge(self, data: CreatePixChargeDTO) -> PixChargeResult:
        """Create a PIX charge (QR code) at the provider.

        Raises:
            GatewayError: INVALID_REQUEST on bad input, or the mapped
                provider failure
        """

    @abstractmethod
    async def get_payment_status(self, gateway_id: str) -> PaymentStatusResult:
        """Fetch the current status of a PIX charge."""

    @abstractmethod
    async def execute_payout(self, data: ExecutePayoutDTO) -> PayoutResult:
        """Send a PIX transfer to the recipient's key.

        Raises:
            GatewayError: INVALID_REQUEST on bad input, or the mapped
                provider failure
        """

    @abstractmethod
    async def get_payout_status(self, gateway_id: str) -> PayoutStatusResult:
        """Fetch the current status of a payout."""

    @abstractmethod
    def validate_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        """Check the signature header against the raw, unparsed body.

        Must never raise; returns False when no secret is configured.
        """

    @abstractmethod
    def parse_webhook_event(self, raw_body: bytes) -> GatewayWebhookEvent:
        """Normalize a webhook body.

        Raises:
            GatewayError: INVALID_REQUEST when the body is unparseable or the
                event type has no canonical mapping
        """
