"""SaleValidator -- Pure validation of a candidate sale's input shape."""

from collections.abc import Mapping, Sequence
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from pos_ledger.domain.dtos import (
    SaleLineRequest,
    SaleRequest,
    ValidationError,
    ValidationResult,
)
from pos_ledger.domain.values import MAX_QUANTITY, PaymentMethod, price_storage_problem
from pos_ledger.logging_config import get_logger

logger = get_logger("domain.sale_validator")


def build_sale_request(
    lines: Any,
    party_id: Any = None,
    payment_method: Any = None,
) -> tuple[SaleRequest | None, ValidationResult]:
    """
    Validate raw sale input and build a SaleRequest.

    Every line is checked and all problems are reported together.  Nothing
    here touches the store: existence of items and parties is checked later,
    inside the engine's transaction scope.

    Args:
        lines: Sequence of SaleLineRequest or mappings with item_id, quantity
            and unit_price keys.
        party_id: Optional customer UUID (or its string form).
        payment_method: Optional PaymentMethod or one of "cash", "card", "online".

    Returns:
        (request, result).  request is None iff result is not valid.
    """
    errors: list[ValidationError] = []

    parsed_party_id, party_errors = _parse_party_id(party_id)
    errors.extend(party_errors)

    method, method_errors = _parse_payment_method(payment_method)
    errors.extend(method_errors)

    parsed_lines: list[SaleLineRequest] = []
    if lines is None or (isinstance(lines, Sequence) and not isinstance(lines, str) and len(lines) == 0):
        errors.append(ValidationError(
            code="EMPTY_SALE",
            message="Sale must have at least one line",
            field="lines",
        ))
    elif isinstance(lines, str) or not isinstance(lines, Sequence):
        errors.append(ValidationError(
            code="INVALID_LINES",
            message=f"lines must be a list, got {type(lines).__name__}",
            field="lines",
        ))
    else:
        for index, raw in enumerate(lines):
            line, line_errors = _parse_line(index, raw)
            errors.extend(line_errors)
            if line is not None:
                parsed_lines.append(line)

    if errors:
        logger.info(
            "sale_request_invalid",
            extra={
                "error_count": len(errors),
                "error_codes": [e.code for e in errors],
            },
        )
        return None, ValidationResult.failure(*errors)

    request = SaleRequest(
        lines=tuple(parsed_lines),
        payment_method=method,
        party_id=parsed_party_id,
    )
    return request, ValidationResult.success()


def _parse_party_id(value: Any) -> tuple[UUID | None, list[ValidationError]]:
    if value is None:
        return None, []
    try:
        return _to_uuid(value), []
    except (TypeError, ValueError, AttributeError):
        return None, [ValidationError(
            code="INVALID_PARTY_ID",
            message=f"party_id is not a valid UUID: {value!r}",
            field="party_id",
        )]


def _parse_payment_method(value: Any) -> tuple[PaymentMethod, list[ValidationError]]:
    try:
        return PaymentMethod.parse(value), []
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        return PaymentMethod.CASH, [ValidationError(
            code="INVALID_PAYMENT_METHOD",
            message=f"payment_method must be one of {allowed}, got {value!r}",
            field="payment_method",
        )]


def _parse_line(index: int, raw: Any) -> tuple[SaleLineRequest | None, list[ValidationError]]:
    """Validate one line; returns the parsed line only when it has no errors."""
    details = {"line_index": index}

    if isinstance(raw, SaleLineRequest):
        item_id, quantity, unit_price = raw.item_id, raw.quantity, raw.unit_price
    elif isinstance(raw, Mapping):
        item_id = raw.get("item_id")
        quantity = raw.get("quantity")
        unit_price = raw.get("unit_price")
    else:
        return None, [ValidationError(
            code="INVALID_LINE",
            message=f"line must be a mapping or SaleLineRequest, got {type(raw).__name__}",
            field=f"lines[{index}]",
            details=details,
        )]

    errors: list[ValidationError] = []

    parsed_item_id: UUID | None = None
    try:
        parsed_item_id = _to_uuid(item_id)
    except (TypeError, ValueError, AttributeError):
        errors.append(ValidationError(
            code="INVALID_ITEM_ID",
            message=f"item_id is not a valid UUID: {item_id!r}",
            field=f"lines[{index}].item_id",
            details=details,
        ))

    # bool is an int subclass; True is not a quantity
    if (
        not isinstance(quantity, int)
        or isinstance(quantity, bool)
        or not 0 < quantity <= MAX_QUANTITY
    ):
        errors.append(ValidationError(
            code="INVALID_QUANTITY",
            message=f"quantity must be an integer from 1 to {MAX_QUANTITY}, got {quantity!r}",
            field=f"lines[{index}].quantity",
            details=details,
        ))

    parsed_price, price_error = _parse_price(unit_price)
    if price_error is not None:
        errors.append(ValidationError(
            code="INVALID_UNIT_PRICE",
            message=price_error,
            field=f"lines[{index}].unit_price",
            details=details,
        ))

    if errors:
        return None, errors

    return SaleLineRequest(
        item_id=parsed_item_id,
        quantity=quantity,
        unit_price=parsed_price,
    ), []


def _parse_price(value: Any) -> tuple[Decimal | None, str | None]:
    """Accept Decimal, int or numeric string.  Floats are rejected outright."""
    if isinstance(value, bool) or isinstance(value, float) or value is None:
        return None, f"unit_price must be a Decimal, int or numeric string, got {value!r}"

    if isinstance(value, Decimal):
        price = value
    elif isinstance(value, (int, str)):
        try:
            price = Decimal(value)
        except InvalidOperation:
            return None, f"unit_price is not numeric: {value!r}"
    else:
        return None, f"unit_price must be a Decimal, int or numeric string, got {type(value).__name__}"

    if not price.is_finite():
        return None, f"unit_price must be finite, got {value!r}"
    if price < 0:
        return None, f"unit_price must be non-negative, got {value!r}"
    problem = price_storage_problem(price)
    if problem is not None:
        return None, f"unit_price {problem}: {value!r}"
    return price, None


def _to_uuid(value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        return UUID(value.strip())
    raise TypeError(f"expected UUID or str, got {type(value).__name__}")
