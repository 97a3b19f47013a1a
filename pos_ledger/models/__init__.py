"""ORM models for the POS ledger."""

from pos_ledger.models.catalog_item import CatalogItem
from pos_ledger.models.party import Party, PartyType
from pos_ledger.models.sale import SaleLine, SaleTransaction

__all__ = [
    "CatalogItem",
    "Party",
    "PartyType",
    "SaleLine",
    "SaleTransaction",
]
