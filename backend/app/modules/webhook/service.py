"""Webhook Processor for provider notifications.

Steps per delivery:
1. Resolve the adapter and verify the signature over the raw body
2. Parse into a canonical event
3. Skip events already recorded for (provider, event_id)
4. In one transaction: record the event and apply its side effects

State preconditions make out-of-order delivery safe: an event whose
precondition does not hold is logged and ignored.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BadRequestError, ErrorCodes, NotFoundError
from app.core.logging import log_financial_event
from app.core.metrics import WEBHOOK_EVENTS_TOTAL
from app.core.tracing import create_span
from app.modules.ledger.models import LedgerCategory, LedgerEntryType
from app.modules.ledger.service import LedgerService
from app.modules.payment.models import PaymentStatus
from app.modules.payment.repository import PaymentRepository
from app.modules.payment_gateway.interface import (
    GatewayError,
    GatewayWebhookEvent,
    WebhookEventType,
)
from app.modules.payment_gateway.registry import GatewayRegistry
from app.modules.wallet.models import OPEN_PAYOUT_STATUSES, PayoutStatus
from app.modules.wallet.repository import PayoutRepository, WalletRepository
from app.modules.wallet.service import WalletService
from app.modules.webhook.repository import WebhookEventRepository

logger = logging.getLogger(__name__)


class WebhookProcessor:
    """Verifies, de-duplicates and applies provider webhooks."""

    def __init__(
        self,
        session: AsyncSession,
        registry: GatewayRegistry,
        event_repo: Optional[WebhookEventRepository] = None,
        payment_repo: Optional[PaymentRepository] = None,
        payout_repo: Optional[PayoutRepository] = None,
        wallet_service: Optional[WalletService] = None,
        ledger_service: Optional[LedgerService] = None,
    ):
        self.session = session
        self.registry = registry
        self.event_repo = event_repo or WebhookEventRepository(session)
        self.payment_repo = payment_repo or PaymentRepository(session)
        self.payout_repo = payout_repo or PayoutRepository(session)
        self.wallet_service = wallet_service or WalletService(session, payment_repo=self.payment_repo)
        self.wallet_repo: WalletRepository = self.wallet_service.wallet_repo
        self.ledger = ledger_service or self.wallet_service.ledger

    async def process_webhook(
        self,
        provider_name: str,
        raw_body: bytes,
        signature: Optional[str],
    ) -> dict[str, Any]:
        """Verify and apply one webhook delivery.

        Args:
            provider_name: Provider from the route
            raw_body: Unparsed request body
            signature: Value of the provider's signature header

        Returns:
            dict with ``processed`` (False for duplicates) and a message

        Raises:
            NotFoundError: Unknown provider
            BadRequestError: Bad signature or unparseable/unsupported event
        """
        provider = provider_name.lower()
        if not self.registry.is_registered(provider):
            raise NotFoundError(f"Unknown payment provider: {provider_name}")
        gateway = self.registry.get(provider)

        if not gateway.validate_webhook_signature(raw_body, signature):
            WEBHOOK_EVENTS_TOTAL.labels(provider=provider, event_type="unknown", outcome="invalid_signature").inc()
            logger.warning(f"Rejected {provider} webhook: invalid signature")
            raise BadRequestError("Invalid webhook signature", code=ErrorCodes.INVALID_SIGNATURE)

        try:
            event = gateway.parse_webhook_event(raw_body)
        except GatewayError as e:
            WEBHOOK_EVENTS_TOTAL.labels(provider=provider, event_type="unknown", outcome="invalid").inc()
            logger.warning(f"Rejected {provider} webhook: {e.message}")
            raise BadRequestError(e.message) from e

        logger.info(
            f"Webhook received: {event.type.value} [{provider}] gateway_id={event.gateway_id}",
            extra={"provider": provider, "event_id": event.event_id, "event_type": event.type.value},
        )

        if await self.event_repo.get(provider, event.event_id):
            return self._duplicate(provider, event)

        try:
            await self.event_repo.create(
                provider=provider,
                event_id=event.event_id,
                event_type=event.type.value,
                gateway_id=event.gateway_id,
                payload=event.data,
                processed_at=datetime.utcnow(),
            )
        except IntegrityError:
            # Concurrent delivery of the same event won the insert
            await self.session.rollback()
            return self._duplicate(provider, event)

        try:
            await self._handle_event(provider, event)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            WEBHOOK_EVENTS_TOTAL.labels(provider=provider, event_type=event.type.value, outcome="error").inc()
            logger.exception(f"Webhook processing failed: {provider} {event.event_id}")
            raise

        WEBHOOK_EVENTS_TOTAL.labels(provider=provider, event_type=event.type.value, outcome="processed").inc()
        return {"processed": True, "message": "Event processed"}

    def _duplicate(self, provider: str, event: GatewayWebhookEvent) -> dict[str, Any]:
        WEBHOOK_EVENTS_TOTAL.labels(provider=provider, event_type=event.type.value, outcome="duplicate").inc()
        logger.info(f"Duplicate webhook ignored: {provider} {event.event_id}")
        return {"processed": False, "message": "Event already processed"}

    async def _handle_event(self, provider: str, event: GatewayWebhookEvent) -> None:
        handlers = {
            WebhookEventType.PAYMENT_PAID: self._handle_payment_paid,
            WebhookEventType.PAYMENT_EXPIRED: self._handle_payment_expired,
            WebhookEventType.PAYMENT_CANCELLED: self._handle_payment_cancelled,
            WebhookEventType.PAYMENT_REFUNDED: self._handle_payment_refunded,
            WebhookEventType.PAYOUT_COMPLETED: self._handle_payout_completed,
            WebhookEventType.PAYOUT_FAILED: self._handle_payout_failed,
            WebhookEventType.PAYOUT_PROCESSING: self._handle_payout_processing,
        }
        with create_span(
            f"webhook.{event.type.value}",
            attributes={"pix.provider": provider, "pix.gateway_id": event.gateway_id},
        ):
            await handlers[event.type](provider, event)

    # ==================== Payment events ====================

    async def _handle_payment_paid(self, provider: str, event: GatewayWebhookEvent) -> None:
        payment = await self.payment_repo.get_by_gateway_id(provider, event.gateway_id, for_update=True)
        if payment is None:
            logger.warning(f"Payment not found for paid event: {provider} gateway_id={event.gateway_id}")
            return
        if payment.status != PaymentStatus.PENDING.value:
            logger.warning(f"Paid event ignored, payment {payment.id} is {payment.status}")
            return

        payment.status = PaymentStatus.PAID.value
        payment.paid_at = event.timestamp
        self.session.add(payment)

        wallet = await self.wallet_service.get_or_create_wallet(payment.creator_id, for_update=True)
        await self.wallet_service.credit_frozen(self.session, wallet, payment.creator_earnings)

        await self.ledger.create_entry(
            self.session,
            entry_type=LedgerEntryType.CREDIT,
            category=LedgerCategory.SALE,
            amount=payment.creator_earnings,
            balance_after=wallet.total_balance,
            wallet_id=wallet.id,
            payment_id=payment.id,
            description=f"Sale of pack {payment.pack_id}",
            metadata={
                "frozen": True,
                "available_at": payment.available_at.isoformat() if payment.available_at else None,
            },
        )
        await self.ledger.create_entry(
            self.session,
            entry_type=LedgerEntryType.CREDIT,
            category=LedgerCategory.PLATFORM_FEE,
            amount=payment.platform_fee,
            balance_after=0,
            is_platform_entry=True,
            payment_id=payment.id,
            description=f"Platform fee for pack {payment.pack_id}",
        )

        log_financial_event(
            logger, "sale_credited", amount=payment.creator_earnings,
            payment_id=payment.id, wallet_id=wallet.id, platform_fee=payment.platform_fee,
        )

    async def _handle_payment_expired(self, provider: str, event: GatewayWebhookEvent) -> None:
        payment = await self.payment_repo.get_by_gateway_id(provider, event.gateway_id, for_update=True)
        if payment is None:
            logger.warning(f"Payment not found for expired event: {provider} gateway_id={event.gateway_id}")
            return
        if payment.status != PaymentStatus.PENDING.value:
            logger.info(f"Expired event ignored, payment {payment.id} is {payment.status}")
            return
        payment.status = PaymentStatus.EXPIRED.value
        payment.expired_at = event.timestamp
        self.session.add(payment)
        logger.info(f"Payment {payment.id} expired")

    async def _handle_payment_cancelled(self, provider: str, event: GatewayWebhookEvent) -> None:
        payment = await self.payment_repo.get_by_gateway_id(provider, event.gateway_id, for_update=True)
        if payment is None:
            logger.warning(f"Payment not found for cancelled event: {provider} gateway_id={event.gateway_id}")
            return
        if payment.status != PaymentStatus.PENDING.value:
            logger.info(f"Cancelled event ignored, payment {payment.id} is {payment.status}")
            return
        payment.status = PaymentStatus.CANCELLED.value
        self.session.add(payment)
        logger.info(f"Payment {payment.id} cancelled")

    async def _handle_payment_refunded(self, provider: str, event: GatewayWebhookEvent) -> None:
        payment = await self.payment_repo.get_by_gateway_id(provider, event.gateway_id, for_update=True)
        if payment is None:
            logger.warning(f"Payment not found for refund event: {provider} gateway_id={event.gateway_id}")
            return
        if payment.status != PaymentStatus.PAID.value:
            logger.warning(f"Refund event ignored, payment {payment.id} is {payment.status}")
            return

        payment.status = PaymentStatus.REFUNDED.value
        payment.refunded_at = event.timestamp
        self.session.add(payment)

        wallet = await self.wallet_repo.get_by_user_id(payment.creator_id, for_update=True)
        if wallet is None:
            logger.warning(f"No wallet for creator {payment.creator_id}; refund of {payment.id} not debited")
            return

        debited = await self.wallet_service.debit_for_refund(
            self.session, wallet, payment.creator_earnings, released=payment.balance_released
        )
        await self.ledger.create_entry(
            self.session,
            entry_type=LedgerEntryType.DEBIT,
            category=LedgerCategory.REFUND,
            amount=debited,
            balance_after=wallet.total_balance,
            wallet_id=wallet.id,
            payment_id=payment.id,
            description=f"Refund of pack {payment.pack_id}",
            metadata={
                "balance_released": payment.balance_released,
                "requested": payment.creator_earnings,
            },
        )
        log_financial_event(
            logger, "sale_refunded", amount=debited, payment_id=payment.id, wallet_id=wallet.id
        )

    # ==================== Payout events ====================

    async def _handle_payout_completed(self, provider: str, event: GatewayWebhookEvent) -> None:
        payout = await self.payout_repo.get_by_gateway_id(provider, event.gateway_id, for_update=True)
        if payout is None:
            logger.warning(f"Payout not found for completed event: {provider} gateway_id={event.gateway_id}")
            return
        if payout.status not in OPEN_PAYOUT_STATUSES:
            logger.warning(f"Completed event ignored, payout {payout.id} is {payout.status}")
            return
        payout.status = PayoutStatus.COMPLETED.value
        payout.completed_at = event.timestamp
        self.session.add(payout)
        log_financial_event(logger, "payout_completed", amount=payout.amount, payout_id=payout.id)

    async def _handle_payout_failed(self, provider: str, event: GatewayWebhookEvent) -> None:
        payout = await self.payout_repo.get_by_gateway_id(provider, event.gateway_id, for_update=True)
        if payout is None:
            logger.warning(f"Payout not found for failed event: {provider} gateway_id={event.gateway_id}")
            return
        if payout.is_terminal:
            logger.warning(f"Failed event ignored, payout {payout.id} is {payout.status}")
            return

        payout.status = PayoutStatus.FAILED.value
        payout.failure_reason = event.failure_reason or "Payout failed at provider"
        payout.failed_at = datetime.utcnow()
        self.session.add(payout)

        wallet = await self.wallet_repo.get_by_id(payout.wallet_id, for_update=True)
        if wallet is None:
            logger.error(f"Wallet {payout.wallet_id} missing; failed payout {payout.id} not reversed")
            return

        await self.wallet_service.credit_available(self.session, wallet, payout.amount)
        await self.ledger.create_entry(
            self.session,
            entry_type=LedgerEntryType.CREDIT,
            category=LedgerCategory.ADJUSTMENT,
            amount=payout.amount,
            balance_after=wallet.total_balance,
            wallet_id=wallet.id,
            payout_id=payout.id,
            description="Failed payout reversal",
            metadata={"reason": payout.failure_reason},
        )
        log_financial_event(
            logger, "payout_reversed", amount=payout.amount, payout_id=payout.id, wallet_id=wallet.id
        )

    async def _handle_payout_processing(self, provider: str, event: GatewayWebhookEvent) -> None:
        payout = await self.payout_repo.get_by_gateway_id(provider, event.gateway_id, for_update=True)
        if payout is None:
            logger.warning(f"Payout not found for processing event: {provider} gateway_id={event.gateway_id}")
            return
        if payout.status != PayoutStatus.PENDING.value:
            logger.info(f"Processing event ignored, payout {payout.id} is {payout.status}")
            return
        payout.status = PayoutStatus.PROCESSING.value
        self.session.add(payout)
