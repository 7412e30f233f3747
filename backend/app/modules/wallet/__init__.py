"""Wallet module: creator balances, balance release and PIX payouts."""

from app.modules.wallet.models import OPEN_PAYOUT_STATUSES, Payout, PayoutStatus, Wallet
from app.modules.wallet.repository import PayoutRepository, WalletRepository

__all__ = [
    "Wallet",
    "Payout",
    "PayoutStatus",
    "OPEN_PAYOUT_STATUSES",
    "WalletRepository",
    "PayoutRepository",
]
