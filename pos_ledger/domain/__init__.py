"""
Pure domain layer: value enums, DTOs, the clock and request validation.

Nothing in this package performs I/O or imports the ORM models.
"""

from pos_ledger.domain.clock import Clock, DeterministicClock, SystemClock
from pos_ledger.domain.dtos import (
    SaleLineRecord,
    SaleLineRequest,
    SaleRecord,
    SaleRequest,
    ValidationError,
    ValidationResult,
)
from pos_ledger.domain.sale_validator import build_sale_request
from pos_ledger.domain.values import PaymentMethod, SaleOutcome

__all__ = [
    "Clock",
    "DeterministicClock",
    "PaymentMethod",
    "SaleLineRecord",
    "SaleLineRequest",
    "SaleOutcome",
    "SaleRecord",
    "SaleRequest",
    "SystemClock",
    "ValidationError",
    "ValidationResult",
    "build_sale_request",
]
