"""Ledger module: append-only record of every balance movement."""

from app.modules.ledger.models import LedgerCategory, LedgerEntry, LedgerEntryType
from app.modules.ledger.repository import LedgerRepository

__all__ = ["LedgerEntry", "LedgerEntryType", "LedgerCategory", "LedgerRepository"]
