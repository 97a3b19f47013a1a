"""
Services: session-bound writers and the sale engine.

Services flush within the caller's transaction; only the SaleEngine opens
its own transaction scope.
"""

from pos_ledger.services.base import BaseService
from pos_ledger.services.catalog_service import CatalogItemInfo, CatalogService
from pos_ledger.services.inventory_accessor import InventoryAccessor
from pos_ledger.services.party_service import PartyInfo, PartyService
from pos_ledger.services.sale_engine import SaleEngine

__all__ = [
    "BaseService",
    "CatalogItemInfo",
    "CatalogService",
    "InventoryAccessor",
    "PartyInfo",
    "PartyService",
    "SaleEngine",
]
