"""Read-only selectors over committed ledger data."""

from pos_ledger.selectors.base import BaseSelector
from pos_ledger.selectors.sale_selector import SaleSelector, to_sale_record

__all__ = ["BaseSelector", "SaleSelector", "to_sale_record"]
