"""Payment module: PIX checkout, status polling and purchase listings."""

from app.modules.payment.models import Payment, PaymentStatus
from app.modules.payment.repository import PaymentRepository

__all__ = ["Payment", "PaymentStatus", "PaymentRepository"]
