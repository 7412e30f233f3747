"""PIX provider adapters.

Contains implementations for SuitPay, EzzePay, Voluti and an in-memory mock.
"""

from .suitpay import SuitPayGateway
from .ezzepay import EzzePayGateway
from .voluti import VolutiGateway
from .mock import MockGateway

__all__ = ["SuitPayGateway", "EzzePayGateway", "VolutiGateway", "MockGateway"]
