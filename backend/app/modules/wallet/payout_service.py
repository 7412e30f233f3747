"""Payout Service for creator PIX withdrawals.

Saga:
1. Pre-validate amount and load the PIX destination
2. SERIALIZABLE transaction, wallet row locked: re-check the balance,
   debit available, create the Payout (pending) and its ledger DEBIT
3. Call the provider with no transaction open
4. On success store the provider id (processing); on failure run the
   compensating transaction that fails the payout and credits the money back
"""

import logging
import time
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PaymentProviderError,
)
from app.core.logging import log_financial_event
from app.core.metrics import PAYOUTS_TOTAL
from app.modules.ledger.models import LedgerCategory, LedgerEntryType
from app.modules.ledger.service import LedgerService
from app.modules.payment.schemas import paginate
from app.modules.payment_gateway.interface import ExecutePayoutDTO, GatewayError
from app.modules.payment_gateway.registry import GatewayRegistry
from app.modules.wallet.models import Payout, PayoutStatus
from app.modules.wallet.repository import PayoutRepository, WalletRepository
from app.modules.wallet.schemas import (
    PayoutListResponse,
    PayoutRequestResponse,
    PayoutResponse,
)
from app.modules.wallet.service import PixRecipient, WalletService

logger = logging.getLogger(__name__)

PAYOUT_DESCRIPTION = "Creator payout"


def mask_pix_key(pix_key: Optional[str]) -> str:
    """Hide most of a PIX key for display and logs.

    e-mail ``ab***@domain``, phone ``+55 (**) *****-1234``,
    CPF ``***.***.789-**``, CNPJ ``**.***.***/****-**``,
    anything else ``abcd...wxyz``.
    """
    if not pix_key:
        return ""
    if "@" in pix_key:
        local, _, domain = pix_key.partition("@")
        return f"{local[:2]}***@{domain}"
    if pix_key.startswith("+55"):
        return f"+55 (**) *****-{pix_key[-4:]}"
    if pix_key.isdigit() and len(pix_key) == 11:
        return f"***.***.{pix_key[6:9]}-**"
    if pix_key.isdigit() and len(pix_key) == 14:
        return "**.***.***/****-**"
    return f"{pix_key[:4]}...{pix_key[-4:]}"


class PayoutService:
    """Service for creator withdrawals."""

    def __init__(
        self,
        session: AsyncSession,
        registry: GatewayRegistry,
        payout_repo: Optional[PayoutRepository] = None,
        wallet_service: Optional[WalletService] = None,
        ledger_service: Optional[LedgerService] = None,
    ):
        self.session = session
        self.registry = registry
        self.wallet_service = wallet_service or WalletService(session, payout_repo=payout_repo)
        self.payout_repo = payout_repo or self.wallet_service.payout_repo
        self.wallet_repo: WalletRepository = self.wallet_service.wallet_repo
        self.ledger = ledger_service or self.wallet_service.ledger

    async def request_payout(self, user_id: uuid.UUID, amount: int) -> PayoutRequestResponse:
        """Withdraw ``amount`` cents to the creator's PIX key.

        Raises:
            InsufficientBalanceError: amount above the available balance
            BadRequestError: below the minimum or no PIX key configured
            ConflictError: the locked re-check failed (concurrent withdrawal)
            PaymentProviderError: provider rejected the payout (already reversed)
        """
        await self.wallet_service.validate_payout_amount(user_id, amount)
        pix = await self.wallet_service.get_user_pix_info(user_id)
        gateway = self.registry.get_active()

        # End the read transaction; isolation must be set before the next one starts
        await self.session.commit()

        try:
            payout = await self._reserve_funds(user_id, amount, gateway.name, pix)
            await self.session.commit()
        except ConflictError:
            await self.session.rollback()
            PAYOUTS_TOTAL.labels(provider=gateway.name, outcome="rejected").inc()
            raise
        except DBAPIError as e:
            await self.session.rollback()
            PAYOUTS_TOTAL.labels(provider=gateway.name, outcome="rejected").inc()
            logger.warning(f"Payout reservation aborted for user {user_id}: {e}")
            raise ConflictError("Could not reserve balance for payout, please try again") from e

        try:
            result = await gateway.execute_payout(ExecutePayoutDTO(
                amount=amount,
                external_id=f"payout-{user_id}-{int(time.time() * 1000)}",
                pix_key=pix.pix_key,
                pix_key_type=pix.pix_key_type,
                recipient_name=pix.recipient_name,
                recipient_document=pix.recipient_document,
                description=PAYOUT_DESCRIPTION,
            ))
        except GatewayError as e:
            logger.error(
                f"Provider payout failed for {payout.id}: {e.code.value} {e.message}",
                extra={"payout_id": str(payout.id), "provider": gateway.name},
            )
            await self._compensate(payout.id, e.message or "Provider communication failure")
            PAYOUTS_TOTAL.labels(provider=gateway.name, outcome="failed").inc()
            raise PaymentProviderError("Could not process payout, please try again") from e

        payout.gateway_id = result.gateway_id
        payout.status = PayoutStatus.PROCESSING.value
        self.session.add(payout)
        await self.session.commit()

        PAYOUTS_TOTAL.labels(provider=gateway.name, outcome="submitted").inc()
        logger.info(f"Payout {payout.id} submitted to {gateway.name}: gateway_id={result.gateway_id}")
        return PayoutRequestResponse(
            payout_id=payout.id,
            amount=amount,
            status=payout.status,
            estimated_completion_at=result.estimated_completion_at,
        )

    async def _reserve_funds(
        self,
        user_id: uuid.UUID,
        amount: int,
        provider: str,
        pix: PixRecipient,
    ) -> Payout:
        await self.session.connection(execution_options={"isolation_level": "SERIALIZABLE"})

        wallet = await self.wallet_repo.get_by_user_id(user_id, for_update=True)
        if wallet is None:
            raise BadRequestError("Wallet not found")
        if wallet.available_balance < amount:
            raise ConflictError("Insufficient balance, please try again")

        await self.wallet_service.debit_available(self.session, wallet, amount)
        payout = await self.payout_repo.create(
            user_id=user_id,
            wallet_id=wallet.id,
            amount=amount,
            gateway_provider=provider,
            pix_key=pix.pix_key,
            pix_key_type=pix.pix_key_type.value,
            recipient_name=pix.recipient_name,
            recipient_document=pix.recipient_document,
            status=PayoutStatus.PENDING.value,
            requested_at=datetime.utcnow(),
        )
        await self.ledger.create_entry(
            self.session,
            entry_type=LedgerEntryType.DEBIT,
            category=LedgerCategory.PAYOUT,
            amount=amount,
            balance_after=wallet.total_balance,
            wallet_id=wallet.id,
            payout_id=payout.id,
            description=f"PIX payout to {pix.pix_key_type.value} {mask_pix_key(pix.pix_key)}",
        )
        log_financial_event(logger, "payout_reserved", amount=amount, payout_id=payout.id, wallet_id=wallet.id)
        return payout

    async def _compensate(self, payout_id: uuid.UUID, reason: str) -> None:
        """Fail the payout and return its amount to the available balance."""
        try:
            payout = await self.payout_repo.get_by_id(payout_id, for_update=True)
            if payout is None or payout.is_terminal:
                logger.warning(f"Payout {payout_id} not reversed: missing or already settled")
                await self.session.rollback()
                return

            payout.status = PayoutStatus.FAILED.value
            payout.failure_reason = reason
            payout.failed_at = datetime.utcnow()
            self.session.add(payout)

            wallet = await self.wallet_repo.get_by_id(payout.wallet_id, for_update=True)
            await self.wallet_service.credit_available(self.session, wallet, payout.amount)
            await self.ledger.create_entry(
                self.session,
                entry_type=LedgerEntryType.CREDIT,
                category=LedgerCategory.ADJUSTMENT,
                amount=payout.amount,
                balance_after=wallet.total_balance,
                wallet_id=wallet.id,
                payout_id=payout.id,
                description=f"Payout reversal: {reason}",
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.critical(f"Compensation failed for payout {payout_id}; manual reconciliation needed")
            raise

        log_financial_event(
            logger, "payout_reversed", amount=payout.amount, payout_id=payout.id, wallet_id=wallet.id
        )

    async def list_payouts(self, user_id: uuid.UUID, page: int = 1, limit: int = 20) -> PayoutListResponse:
        """A creator's payouts, newest first."""
        page, limit = max(page, 1), max(limit, 1)
        payouts, total = await self.payout_repo.list_by_user(user_id, (page - 1) * limit, limit)
        return PayoutListResponse(
            payouts=[self._to_response(p) for p in payouts],
            pagination=paginate(total, page, limit),
        )

    async def get_payout_details(self, payout_id: uuid.UUID, user_id: uuid.UUID) -> PayoutResponse:
        """Raises NotFoundError if missing, ForbiddenError if not the owner."""
        payout = await self.payout_repo.get_by_id(payout_id)
        if payout is None:
            raise NotFoundError("Payout not found", context={"payout_id": str(payout_id)})
        if payout.user_id != user_id:
            raise ForbiddenError("You cannot view this payout")
        return self._to_response(payout)

    @staticmethod
    def _to_response(payout: Payout) -> PayoutResponse:
        return PayoutResponse(
            id=payout.id,
            amount=payout.amount,
            status=payout.status,
            gateway_provider=payout.gateway_provider,
            masked_pix_key=mask_pix_key(payout.pix_key),
            pix_key_type=payout.pix_key_type,
            requested_at=payout.requested_at,
            completed_at=payout.completed_at,
            failed_at=payout.failed_at,
            failure_reason=payout.failure_reason,
        )
