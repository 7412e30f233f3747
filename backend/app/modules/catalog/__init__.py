"""Catalog module: packs and legacy purchases consumed by checkout."""

from app.modules.catalog.models import Pack, PackStatus, Purchase, PurchaseStatus
from app.modules.catalog.repository import CatalogRepository

__all__ = [
    "Pack",
    "PackStatus",
    "Purchase",
    "PurchaseStatus",
    "CatalogRepository",
]
