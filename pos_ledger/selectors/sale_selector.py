"""
Module: pos_ledger.selectors.sale_selector
Responsibility: Read access to committed sales, returned as SaleRecord DTOs.
Architecture position: Selectors.  Also supplies ``to_sale_record``, the single
    ORM-to-DTO conversion used by the sale engine for committed and replayed
    sales.

Invariants enforced:
    - Only committed sales are visible: a header is written in the same
      transaction as its lines, so a reader never sees one without the other.
    - created_at is always returned timezone-aware in UTC.  SQLite drops the
      offset on storage; naive values read back are UTC by construction.

Failure modes:
    - SaleNotFoundError from get_sale() when the id is unknown.
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select

from pos_ledger.domain.dtos import SaleLineRecord, SaleRecord
from pos_ledger.domain.values import PaymentMethod
from pos_ledger.exceptions import SaleNotFoundError
from pos_ledger.models.sale import SaleTransaction
from pos_ledger.selectors.base import BaseSelector


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_sale_record(sale: SaleTransaction) -> SaleRecord:
    """Convert a SaleTransaction (with its lines loaded) to a SaleRecord."""
    return SaleRecord(
        id=sale.id,
        party_id=sale.party_id,
        payment_method=PaymentMethod(sale.payment_method),
        created_at=_as_utc(sale.created_at),
        created_by_id=sale.created_by_id,
        lines=tuple(
            SaleLineRecord(
                line_no=line.line_no,
                item_id=line.item_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
            )
            for line in sorted(sale.lines, key=lambda l: l.line_no)
        ),
        idempotency_key=sale.idempotency_key,
    )


class SaleSelector(BaseSelector[SaleTransaction]):
    """Read-only queries over committed sales."""

    def get_sale(self, sale_id: UUID) -> SaleRecord:
        """
        Load one sale with its lines.

        Raises:
            SaleNotFoundError: If no sale has this id.
        """
        sale = self.session.get(SaleTransaction, sale_id)
        if sale is None:
            raise SaleNotFoundError(str(sale_id))
        return to_sale_record(sale)

    def find_by_idempotency_key(self, idempotency_key: str) -> SaleTransaction | None:
        """Sale committed under idempotency_key, or None."""
        stmt = select(SaleTransaction).where(
            SaleTransaction.idempotency_key == idempotency_key
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def list_sales(self, limit: int | None = None) -> list[SaleRecord]:
        """All sales, newest first, optionally capped at ``limit``."""
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be non-negative, got {limit}")

        stmt = select(SaleTransaction).order_by(
            SaleTransaction.created_at.desc(),
            SaleTransaction.id.desc(),
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [to_sale_record(sale) for sale in self.session.execute(stmt).scalars()]
