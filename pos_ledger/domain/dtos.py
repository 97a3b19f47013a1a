"""
DTOs -- Pure domain data transfer objects for the sale pipeline.

Responsibility:
    Defines the immutable data structures that flow through a sale
    submission: SaleLineRequest / SaleRequest (validated input),
    SaleLineRecord / SaleRecord (committed output), and the
    ValidationError / ValidationResult pair produced by the request
    validator.

Architecture position:
    Domain -- pure functional core, zero I/O.  Free of ORM dependencies;
    services convert ORM rows into these records at the boundary.

Invariants enforced:
    - Totals are derived properties.  line_total = quantity * unit_price and
      total_amount = sum(line_total); neither can be set independently.
    - Records returned to callers never expose ORM entities.

Data flow:
    raw lines -> SaleRequest -> (engine) -> SaleRecord
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pos_ledger.domain.values import PaymentMethod


@dataclass(frozen=True)
class ValidationError:
    """
    A single validation error.

    Contract:
        Carries a machine-readable code, human-readable message, optional field
        path, and optional details dict.
    """

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.field is not None:
            data["field"] = self.field
        if self.details:
            data.update(self.details)
        return data


@dataclass(frozen=True)
class ValidationResult:
    """
    Result of validation.

    Guarantees:
        - errors is always a tuple (never None)
        - bool(result) == result.is_valid for convenience
    """

    is_valid: bool
    errors: tuple[ValidationError, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls) -> ValidationResult:
        """Create a successful validation result."""
        return cls(is_valid=True, errors=())

    @classmethod
    def failure(cls, *errors: ValidationError) -> ValidationResult:
        """Create a failed validation result."""
        return cls(is_valid=False, errors=tuple(errors))

    def __bool__(self) -> bool:
        return self.is_valid


@dataclass(frozen=True)
class SaleLineRequest:
    """One requested line: sell ``quantity`` of ``item_id`` at ``unit_price``."""

    item_id: UUID
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class SaleRequest:
    """
    A validated candidate sale.

    Contract:
        Produced only by ``build_sale_request``; lines are non-empty and in
        submission order.
    """

    lines: tuple[SaleLineRequest, ...]
    payment_method: PaymentMethod = PaymentMethod.CASH
    party_id: UUID | None = None

    @property
    def total_amount(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0"))

    def to_payload(self) -> dict[str, Any]:
        """Canonical dict form, hashed to detect idempotency key reuse."""
        return {
            "party_id": self.party_id,
            "payment_method": self.payment_method.value,
            "lines": [
                {
                    "item_id": line.item_id,
                    "quantity": line.quantity,
                    "unit_price": line.unit_price,
                }
                for line in self.lines
            ],
        }


@dataclass(frozen=True)
class SaleLineRecord:
    """A committed sale line."""

    line_no: int
    item_id: UUID
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class SaleRecord:
    """
    A committed, immutable sale.

    Guarantees:
        - lines are ordered by line_no (submission order).
        - total_amount always equals the sum of quantity * unit_price.
    """

    id: UUID
    party_id: UUID | None
    payment_method: PaymentMethod
    created_at: datetime
    created_by_id: UUID
    lines: tuple[SaleLineRecord, ...]
    idempotency_key: str | None = None

    @property
    def total_amount(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0"))

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation for API and CLI responses."""
        return {
            "id": str(self.id),
            "party_id": str(self.party_id) if self.party_id else None,
            "payment_method": self.payment_method.value,
            "created_at": self.created_at.isoformat(),
            "created_by_id": str(self.created_by_id),
            "total_amount": str(self.total_amount),
            "lines": [
                {
                    "line_no": line.line_no,
                    "item_id": str(line.item_id),
                    "quantity": line.quantity,
                    "unit_price": str(line.unit_price),
                    "line_total": str(line.line_total),
                }
                for line in self.lines
            ],
        }
