"""
Typed Exception Hierarchy for the POS Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the sale engine (an HTTP layer, the CLI, a till agent) must decide
between "fix the request", "adjust quantities" and "retry unchanged". That
decision is made by exception TYPE and the machine-readable ``code`` class
attribute, never by parsing messages.  Every exception also carries its
context as attributes so it survives logging and serialization.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PosLedgerError (base)
    |
    +-- NotFoundError
    |   +-- CatalogItemNotFoundError
    |   +-- PartyNotFoundError
    |   +-- SaleNotFoundError
    |
    +-- SaleError
    |   +-- InvalidSaleError
    |   +-- InsufficientStockError
    |   +-- PersistenceFailureError
    |   +-- IdempotencyConflictError
    |
    +-- CatalogError
        +-- InvalidCatalogItemError
        +-- DuplicateSkuError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                    | When Raised                    | Retry?
-----------|-------------------------|--------------------------------|---------
Not found  | CATALOG_ITEM_NOT_FOUND  | Item id not in catalog         | No
           | PARTY_NOT_FOUND         | Party id not in directory      | No
           | SALE_NOT_FOUND          | Sale id not recorded           | No
-----------|-------------------------|--------------------------------|---------
Sale       | INVALID_SALE            | Malformed request, unknown ref | No
           | INSUFFICIENT_STOCK      | Line exceeds remaining stock   | Adjust
           | PERSISTENCE_FAILURE     | Store failed during the scope  | Yes
           | IDEMPOTENCY_CONFLICT    | Key reused with other payload  | No
-----------|-------------------------|--------------------------------|---------
Catalog    | INVALID_CATALOG_ITEM    | Negative price/qty, empty name | No
           | DUPLICATE_SKU           | SKU already registered         | No

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        sale = engine.submit_sale(lines, actor_id=actor_id)
    except InsufficientStockError as e:
        return {"error": e.code, "item_id": str(e.item_id),
                "requested": e.requested, "available": e.available}
    except PersistenceFailureError:
        # Nothing was written; the identical request may be resubmitted.
        schedule_retry(lines)
"""

from typing import Any
from uuid import UUID


class PosLedgerError(Exception):
    """
    Base exception for all POS ledger errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "POS_LEDGER_ERROR"


# Lookup failures


class NotFoundError(PosLedgerError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class CatalogItemNotFoundError(NotFoundError):
    """Catalog item with given ID or SKU was not found."""

    code: str = "CATALOG_ITEM_NOT_FOUND"

    def __init__(self, item_ref: str):
        self.item_ref = item_ref
        super().__init__(f"Catalog item not found: {item_ref}")


class PartyNotFoundError(NotFoundError):
    """Party with given ID was not found."""

    code: str = "PARTY_NOT_FOUND"

    def __init__(self, party_id: str):
        self.party_id = party_id
        super().__init__(f"Party not found: {party_id}")


class SaleNotFoundError(NotFoundError):
    """Sale with given ID was not found."""

    code: str = "SALE_NOT_FOUND"

    def __init__(self, sale_id: str):
        self.sale_id = sale_id
        super().__init__(f"Sale not found: {sale_id}")


# Sale submission failures


class SaleError(PosLedgerError):
    """Base exception for sale submission errors."""

    code: str = "SALE_ERROR"


class InvalidSaleError(SaleError):
    """
    The sale request is malformed or references something that does not exist.

    Raised before any stock is touched.  ``field_errors`` holds one dict per
    problem (``{"field": ..., "message": ...}``, plus ``line_index`` when the
    problem belongs to a line).
    """

    code: str = "INVALID_SALE"

    def __init__(
        self,
        reason: str,
        field_errors: list[dict[str, Any]] | None = None,
        line_index: int | None = None,
        item_id: UUID | None = None,
    ):
        self.reason = reason
        self.field_errors = field_errors or []
        self.line_index = line_index
        self.item_id = item_id
        super().__init__(f"Invalid sale: {reason}")


class InsufficientStockError(SaleError):
    """
    A line asks for more units than remain for its catalog item.

    ``line_index`` is the 0-based position of the offending line in the
    submission, or None when raised by the inventory accessor directly.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_id: UUID,
        requested: int,
        available: int,
        line_index: int | None = None,
    ):
        self.item_id = item_id
        self.requested = requested
        self.available = available
        self.line_index = line_index
        where = f" (line {line_index})" if line_index is not None else ""
        super().__init__(
            f"Insufficient stock for item {item_id}{where}: "
            f"requested {requested}, available {available}"
        )


class PersistenceFailureError(SaleError):
    """
    The store failed while the sale scope was open.

    The scope has been rolled back; resubmitting the identical request is safe.
    """

    code: str = "PERSISTENCE_FAILURE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Sale could not be persisted: {reason}")


class IdempotencyConflictError(SaleError):
    """Idempotency key already used for a sale with a different payload."""

    code: str = "IDEMPOTENCY_CONFLICT"

    def __init__(self, idempotency_key: str, expected_hash: str, received_hash: str):
        self.idempotency_key = idempotency_key
        self.expected_hash = expected_hash
        self.received_hash = received_hash
        super().__init__(
            f"Idempotency key {idempotency_key!r} was used for a different sale: "
            f"expected {expected_hash}, received {received_hash}"
        )


# Catalog maintenance failures


class CatalogError(PosLedgerError):
    """Base exception for catalog maintenance errors."""

    code: str = "CATALOG_ERROR"


class InvalidCatalogItemError(CatalogError):
    """Catalog item attributes are invalid."""

    code: str = "INVALID_CATALOG_ITEM"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid catalog item {field}: {reason}")


class DuplicateSkuError(CatalogError):
    """SKU is already registered to another catalog item."""

    code: str = "DUPLICATE_SKU"

    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"SKU already exists: {sku}")
