"""Wallet Service for creator balances.

Implements:
- Lazy wallet creation and balance reads
- Summary with pending payouts and lifetime totals from the ledger
- Paginated transaction history
- Payout pre-validation and PIX destination lookup
- Release of frozen balances once the anti-fraud hold elapses

Balance mutators take the caller's session and never commit; the release
job owns its transactions (one per payment).
"""

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import BadRequestError, ErrorCodes, InsufficientBalanceError, NotFoundError
from app.core.logging import log_error, log_financial_event
from app.core.metrics import BALANCE_RELEASES_TOTAL, RELEASED_AMOUNT_CENTS_TOTAL
from app.modules.auth.repository import UserRepository
from app.modules.ledger.models import LedgerCategory, LedgerEntryType
from app.modules.ledger.repository import LedgerRepository
from app.modules.ledger.service import LedgerService
from app.modules.payment.models import PaymentStatus
from app.modules.payment.repository import PaymentRepository
from app.modules.payment_gateway.currency import format_brl
from app.modules.payment_gateway.interface import PixKeyType
from app.modules.wallet.models import Wallet
from app.modules.wallet.repository import PayoutRepository, WalletRepository

logger = logging.getLogger(__name__)

MAX_HISTORY_PAGE_SIZE = 50


@dataclass
class PixRecipient:
    """Payout destination taken from the creator's profile."""
    pix_key: str
    pix_key_type: PixKeyType
    recipient_name: str
    recipient_document: str


class WalletService:
    """Service for wallet balances and the balance release job."""

    def __init__(
        self,
        session: AsyncSession,
        wallet_repo: Optional[WalletRepository] = None,
        payout_repo: Optional[PayoutRepository] = None,
        payment_repo: Optional[PaymentRepository] = None,
        ledger_repo: Optional[LedgerRepository] = None,
        user_repo: Optional[UserRepository] = None,
        ledger_service: Optional[LedgerService] = None,
    ):
        self.session = session
        self.wallet_repo = wallet_repo or WalletRepository(session)
        self.payout_repo = payout_repo or PayoutRepository(session)
        self.payment_repo = payment_repo or PaymentRepository(session)
        self.ledger_repo = ledger_repo or LedgerRepository(session)
        self.user_repo = user_repo or UserRepository(session)
        self.ledger = ledger_service or LedgerService(
            session, ledger_repo=self.ledger_repo, wallet_repo=self.wallet_repo
        )

    # ==================== Wallet access ====================

    async def get_or_create_wallet(self, user_id: uuid.UUID, for_update: bool = False) -> Wallet:
        """Get a creator's wallet, creating an empty one on first use.

        The new row is flushed, not committed.
        """
        wallet = await self.wallet_repo.get_by_user_id(user_id, for_update=for_update)
        if wallet is None:
            wallet = await self.wallet_repo.create(user_id)
            logger.info(f"Wallet created for user {user_id}")
        return wallet

    async def get_balance(self, user_id: uuid.UUID) -> dict[str, int]:
        wallet = await self.get_or_create_wallet(user_id)
        return {
            "available": wallet.available_balance,
            "frozen": wallet.frozen_balance,
            "total": wallet.total_balance,
        }

    async def get_wallet_summary(self, user_id: uuid.UUID) -> dict[str, Any]:
        """Balance plus open payouts and lifetime earnings/payouts."""
        wallet = await self.get_or_create_wallet(user_id)
        pending_payouts = await self.payout_repo.sum_open_amount(user_id)
        total_earnings = await self.ledger_repo.sum_wallet_category(
            wallet.id, LedgerEntryType.CREDIT, LedgerCategory.SALE
        )
        total_payouts = await self.ledger_repo.sum_wallet_category(
            wallet.id, LedgerEntryType.DEBIT, LedgerCategory.PAYOUT
        )
        return {
            "balance": {
                "available": wallet.available_balance,
                "frozen": wallet.frozen_balance,
                "total": wallet.total_balance,
            },
            "pending_payouts": pending_payouts,
            "total_earnings": total_earnings,
            "total_payouts": total_payouts,
        }

    async def get_transaction_history(
        self,
        user_id: uuid.UUID,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        """Ledger entries for the creator's wallet, newest first.

        ``limit`` is capped at 50 and ``page`` starts at 1.
        """
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_HISTORY_PAGE_SIZE)

        wallet = await self.get_or_create_wallet(user_id)
        history = await self.ledger.get_wallet_history(
            wallet.id, limit=limit, offset=(page - 1) * limit
        )
        total = history["total"]
        return {
            "transactions": history["entries"],
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "total_pages": math.ceil(total / limit) if total else 0,
            },
        }

    # ==================== Payout pre-checks ====================

    async def validate_payout_amount(self, user_id: uuid.UUID, amount: int) -> None:
        """Reject payouts above the available balance or below the minimum.

        Raises:
            InsufficientBalanceError: amount > available balance
            BadRequestError: amount < MIN_PAYOUT_AMOUNT
        """
        balance = await self.get_balance(user_id)
        if amount > balance["available"]:
            raise InsufficientBalanceError(
                f"Insufficient balance. Available: {format_brl(balance['available'])}",
                context={"available": balance["available"], "requested": amount},
            )
        if amount < settings.MIN_PAYOUT_AMOUNT:
            raise BadRequestError(
                f"Minimum payout amount is {format_brl(settings.MIN_PAYOUT_AMOUNT)}",
                context={"minimum": settings.MIN_PAYOUT_AMOUNT, "requested": amount},
            )

    async def get_user_pix_info(self, user_id: uuid.UUID) -> PixRecipient:
        """Load the creator's PIX key and identity.

        Raises:
            NotFoundError: Unknown user
            BadRequestError: PIX key or document not configured
        """
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found", context={"user_id": str(user_id)})
        if not user.has_pix_key or not user.document:
            raise BadRequestError(
                "PIX key not configured. Set your PIX key in your profile settings.",
                code=ErrorCodes.PIX_KEY_NOT_CONFIGURED,
            )
        try:
            pix_key_type = PixKeyType(user.pix_key_type.lower())
        except ValueError as e:
            raise BadRequestError(
                f"Unsupported PIX key type: {user.pix_key_type}",
                code=ErrorCodes.PIX_KEY_NOT_CONFIGURED,
            ) from e
        return PixRecipient(
            pix_key=user.pix_key,
            pix_key_type=pix_key_type,
            recipient_name=user.full_name,
            recipient_document=user.document,
        )

    # ==================== Balance mutators ====================

    async def credit_frozen(self, session: AsyncSession, wallet: Wallet, amount: int) -> None:
        """Escrow sale earnings until the anti-fraud hold elapses."""
        wallet.frozen_balance += amount
        session.add(wallet)

    async def credit_available(self, session: AsyncSession, wallet: Wallet, amount: int) -> None:
        wallet.available_balance += amount
        session.add(wallet)

    async def debit_available(self, session: AsyncSession, wallet: Wallet, amount: int) -> None:
        """Remove money from the withdrawable balance.

        Raises:
            InsufficientBalanceError: amount exceeds available balance
        """
        if amount > wallet.available_balance:
            raise InsufficientBalanceError(
                f"Insufficient balance. Available: {format_brl(wallet.available_balance)}",
                context={"available": wallet.available_balance, "requested": amount},
            )
        wallet.available_balance -= amount
        session.add(wallet)

    async def move_frozen_to_available(self, session: AsyncSession, wallet: Wallet, amount: int) -> int:
        """Release up to ``amount`` from frozen; returns what was moved."""
        moved = min(amount, wallet.frozen_balance)
        wallet.frozen_balance -= moved
        wallet.available_balance += moved
        session.add(wallet)
        return moved

    async def debit_for_refund(
        self,
        session: AsyncSession,
        wallet: Wallet,
        amount: int,
        released: bool,
    ) -> int:
        """Take refunded earnings back from the wallet.

        Debits frozen when the sale was never released, available otherwise,
        and spills into the other bucket if the primary one is short. Never
        drives a balance negative; returns the amount actually debited.
        """
        if released:
            primary, secondary = "available_balance", "frozen_balance"
        else:
            primary, secondary = "frozen_balance", "available_balance"

        from_primary = min(amount, getattr(wallet, primary))
        from_secondary = min(amount - from_primary, getattr(wallet, secondary))
        setattr(wallet, primary, getattr(wallet, primary) - from_primary)
        setattr(wallet, secondary, getattr(wallet, secondary) - from_secondary)
        session.add(wallet)

        debited = from_primary + from_secondary
        if debited < amount:
            logger.warning(
                f"Refund shortfall on wallet {wallet.id}: requested={amount} debited={debited}",
                extra={"wallet_id": str(wallet.id), "shortfall": amount - debited},
            )
        return debited

    # ==================== Release job ====================

    async def release_frozen_balances(self, now: Optional[datetime] = None) -> dict[str, int]:
        """Move matured sale earnings from frozen to available.

        Each payment is released in its own transaction; a failure is logged
        and the run continues. ``balance_released`` prevents double release.

        Returns:
            Counts of released/skipped/failed payments and the amount moved
        """
        now = now or datetime.utcnow()
        payment_ids = await self.payment_repo.get_releasable_ids(now)
        # End the read transaction before the per-payment ones
        await self.session.commit()

        stats = {"released": 0, "skipped": 0, "failed": 0, "amount": 0}
        if not payment_ids:
            logger.info("No frozen balances to release")
            return stats

        logger.info(f"Releasing frozen balances for {len(payment_ids)} payments")
        for payment_id in payment_ids:
            try:
                moved = await self._release_payment(payment_id, now)
                await self.session.commit()
            except Exception as e:
                await self.session.rollback()
                stats["failed"] += 1
                BALANCE_RELEASES_TOTAL.labels(outcome="failed").inc()
                log_error(logger, f"Failed to release balance for payment {payment_id}", e,
                          payment_id=str(payment_id))
                continue

            if moved is None:
                stats["skipped"] += 1
                BALANCE_RELEASES_TOTAL.labels(outcome="skipped").inc()
            else:
                stats["released"] += 1
                stats["amount"] += moved
                BALANCE_RELEASES_TOTAL.labels(outcome="released").inc()
                RELEASED_AMOUNT_CENTS_TOTAL.inc(moved)

        logger.info(
            f"Balance release finished: released={stats['released']} "
            f"skipped={stats['skipped']} failed={stats['failed']} amount={stats['amount']}"
        )
        return stats

    async def _release_payment(self, payment_id: uuid.UUID, now: datetime) -> Optional[int]:
        """Release one payment inside the current transaction.

        Returns the amount moved, or None when the payment no longer
        qualifies (already released, refunded, or no wallet).
        """
        payment = await self.payment_repo.get_by_id(payment_id, for_update=True)
        if (
            payment is None
            or payment.balance_released
            or payment.status != PaymentStatus.PAID.value
            or payment.available_at is None
            or payment.available_at > now
        ):
            return None

        wallet = await self.wallet_repo.get_by_user_id(payment.creator_id, for_update=True)
        if wallet is None:
            logger.warning(f"No wallet for creator {payment.creator_id}; payment {payment.id} not released")
            return None

        previous_frozen = wallet.frozen_balance
        moved = await self.move_frozen_to_available(self.session, wallet, payment.creator_earnings)
        if moved < payment.creator_earnings:
            logger.warning(
                f"Frozen balance short for payment {payment.id}: "
                f"earnings={payment.creator_earnings} released={moved}"
            )
        payment.balance_released = True
        self.session.add(payment)

        # Amount 0: the wallet total does not change, funds only change bucket
        await self.ledger.create_entry(
            self.session,
            entry_type=LedgerEntryType.CREDIT,
            category=LedgerCategory.RELEASE,
            amount=0,
            balance_after=wallet.total_balance,
            wallet_id=wallet.id,
            payment_id=payment.id,
            description=f"Balance release for pack {payment.pack_id}",
            metadata={
                "previous_frozen": previous_frozen,
                "new_frozen": wallet.frozen_balance,
                "released": moved,
            },
        )
        log_financial_event(
            logger, "balance_released", amount=moved, payment_id=payment.id, wallet_id=wallet.id
        )
        return moved
