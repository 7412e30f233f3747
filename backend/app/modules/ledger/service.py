"""Ledger Service - immutable double-entry records.

``create_entry`` appends inside the caller's transaction and never
commits. The read side serves history pages, platform revenue and the
integrity check ``sum(CREDIT) - sum(DEBIT) == available + frozen``.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.modules.ledger.models import LedgerCategory, LedgerEntry, LedgerEntryType
from app.modules.ledger.repository import LedgerRepository
from app.modules.wallet.repository import WalletRepository

logger = logging.getLogger(__name__)


class LedgerService:
    """Appends and queries ledger entries."""

    def __init__(
        self,
        session: AsyncSession,
        ledger_repo: Optional[LedgerRepository] = None,
        wallet_repo: Optional[WalletRepository] = None,
    ):
        self.session = session
        self.ledger_repo = ledger_repo or LedgerRepository(session)
        self.wallet_repo = wallet_repo or WalletRepository(session)

    async def create_entry(
        self,
        session: AsyncSession,
        *,
        entry_type: LedgerEntryType,
        category: LedgerCategory,
        amount: int,
        balance_after: int,
        wallet_id: Optional[uuid.UUID] = None,
        is_platform_entry: bool = False,
        payment_id: Optional[uuid.UUID] = None,
        payout_id: Optional[uuid.UUID] = None,
        description: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> LedgerEntry:
        """Append one entry to the caller's open transaction.

        Args:
            session: Session holding the caller's transaction
            entry_type: CREDIT or DEBIT
            category: Business reason
            amount: Cents, never negative
            balance_after: Wallet total (available + frozen) after the move;
                0 for platform entries
            wallet_id: Affected wallet; None only for platform entries

        Raises:
            ValueError: On a negative amount or a wallet-less non-platform entry
        """
        if amount < 0:
            raise ValueError("Ledger amount must not be negative")
        if wallet_id is None and not is_platform_entry:
            raise ValueError("Ledger entry needs a wallet unless it is a platform entry")

        entry = LedgerEntry(
            wallet_id=wallet_id,
            is_platform_entry=is_platform_entry,
            type=entry_type.value,
            category=category.value,
            amount=amount,
            balance_after=balance_after,
            payment_id=payment_id,
            payout_id=payout_id,
            description=description,
            entry_metadata=metadata,
        )
        session.add(entry)
        await session.flush()

        logger.debug(f"Ledger entry: {entry_type.value} {category.value} {amount} cents (wallet={wallet_id})")
        return entry

    async def get_wallet_history(
        self,
        wallet_id: uuid.UUID,
        limit: int = 20,
        offset: int = 0,
        entry_type: Optional[LedgerEntryType] = None,
        category: Optional[LedgerCategory] = None,
    ) -> dict[str, Any]:
        """Page through a wallet's entries, newest first."""
        entries, total = await self.ledger_repo.get_wallet_entries(
            wallet_id,
            limit=limit,
            offset=offset,
            entry_type=entry_type.value if entry_type else None,
            category=category.value if category else None,
        )
        return {"entries": entries, "total": total, "limit": limit, "offset": offset}

    async def get_platform_revenue(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> dict[str, int]:
        """Total platform fees recorded in the period."""
        total, count = await self.ledger_repo.get_platform_revenue(start_date, end_date)
        return {"total_revenue": total, "transaction_count": count}

    async def verify_wallet_integrity(self, wallet_id: uuid.UUID) -> dict[str, Any]:
        """Compare the ledger-derived balance with the wallet's stored balance.

        Raises:
            NotFoundError: If the wallet does not exist
        """
        wallet = await self.wallet_repo.get_by_id(wallet_id)
        if not wallet:
            raise NotFoundError("Wallet not found", context={"wallet_id": str(wallet_id)})

        credits, debits = await self.ledger_repo.get_wallet_totals(wallet_id)
        calculated = credits - debits
        actual = wallet.available_balance + wallet.frozen_balance
        difference = calculated - actual

        if difference != 0:
            logger.error(
                f"Ledger mismatch for wallet {wallet_id}: ledger={calculated} wallet={actual}",
                extra={"wallet_id": str(wallet_id), "difference": difference},
            )

        return {
            "is_valid": difference == 0,
            "calculated_balance": calculated,
            "actual_balance": actual,
            "difference": difference,
        }
