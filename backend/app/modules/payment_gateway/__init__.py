"""Payment Gateway Module.

Provider-agnostic PIX charges and payouts for SuitPay, EzzePay and Voluti,
plus a mock adapter for local development.
"""

from app.modules.payment_gateway.interface import (
    PaymentGatewayInterface,
    PaymentGatewayStatus,
    PayoutGatewayStatus,
    WebhookEventType,
    PixKeyType,
    GatewayError,
    GatewayErrorCode,
    CustomerInfo,
    CreatePixChargeDTO,
    PixChargeResult,
    PaymentStatusResult,
    ExecutePayoutDTO,
    PayoutResult,
    PayoutStatusResult,
    GatewayWebhookEvent,
)
from app.modules.payment_gateway.registry import (
    GatewayRegistry,
    get_gateway_registry,
    init_gateway_registry,
)
from app.modules.payment_gateway.gateways import (
    SuitPayGateway,
    EzzePayGateway,
    VolutiGateway,
    MockGateway,
)

__all__ = [
    # Interface
    "PaymentGatewayInterface",
    "PaymentGatewayStatus",
    "PayoutGatewayStatus",
    "WebhookEventType",
    "PixKeyType",
    "GatewayError",
    "GatewayErrorCode",
    "CustomerInfo",
    "CreatePixChargeDTO",
    "PixChargeResult",
    "PaymentStatusResult",
    "ExecutePayoutDTO",
    "PayoutResult",
    "PayoutStatusResult",
    "GatewayWebhookEvent",
    # Registry
    "GatewayRegistry",
    "get_gateway_registry",
    "init_gateway_registry",
    # Gateways
    "SuitPayGateway",
    "EzzePayGateway",
    "VolutiGateway",
    "MockGateway",
]
