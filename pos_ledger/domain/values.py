"""
Value types shared by the domain, the ORM models and the services.

Pure: no ORM, database, clock or I/O dependencies.
"""

from decimal import Decimal
from enum import Enum

# Storage bounds of MoneyType on PostgreSQL, NUMERIC(38, 9)
MAX_PRICE_DECIMAL_PLACES = 9
MAX_PRICE_INTEGER_DIGITS = 29

# Largest value a BIGINT quantity column holds
MAX_QUANTITY = 2**63 - 1


def price_storage_problem(price: Decimal) -> str | None:
    """Why a finite price does not fit MoneyType, or None when it does."""
    if price.as_tuple().exponent < -MAX_PRICE_DECIMAL_PLACES:
        return f"has more than {MAX_PRICE_DECIMAL_PLACES} decimal places"
    if price and price.adjusted() >= MAX_PRICE_INTEGER_DIGITS:
        return f"has more than {MAX_PRICE_INTEGER_DIGITS} integer digits"
    return None


class PaymentMethod(str, Enum):
    """How a sale was paid.  A closed set; CASH when the caller says nothing."""

    CASH = "cash"
    CARD = "card"
    ONLINE = "online"

    @classmethod
    def parse(cls, value: "PaymentMethod | str | None") -> "PaymentMethod":
        """
        Normalize caller input to a PaymentMethod.

        Raises:
            ValueError: If value is not one of cash, card, online.
        """
        if value is None:
            return cls.CASH
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"payment method must be a string, got {type(value).__name__}")
        return cls(value.strip().lower())


class SaleOutcome(str, Enum):
    """Terminal state of one sale submission, as reported in logs."""

    COMMITTED = "committed"
    REPLAYED = "replayed"  # idempotency key matched an earlier commit
    REJECTED = "rejected"  # invalid request or insufficient stock
    ABORTED = "aborted"  # store failure, scope rolled back
