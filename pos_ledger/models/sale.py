"""
Module: pos_ledger.models.sale
Responsibility: ORM persistence for committed sales (header + ordered lines).
Architecture position: Models.  May import from db/base.py and domain/values.py.

Invariants enforced:
    - A SaleTransaction is written in the same transaction as all of its
      SaleLines and all of the matching stock decrements, so readers never see
      a header without its lines.
    - Totals are derived, never stored: line_total = quantity * unit_price and
      total_amount = sum(line_total).  There is no column that could diverge.
    - idempotency_key is unique when present (uq_sale_idempotency).
    - quantity > 0 and unit_price is carried per line (ck_sale_line_quantity).
    - Sales are immutable once committed; no service updates or deletes them.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pos_ledger.db.base import Base, UUIDString
from pos_ledger.domain.values import PaymentMethod


class SaleTransaction(Base):
    """
    Sale header -- the aggregate root of one till transaction.

    Contract:
        created_at is the commit timestamp taken from the engine's clock.
        created_by_id is the actor supplied by the (already authorized) caller.
    """

    __tablename__ = "sale_transactions"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_sale_idempotency"),
        Index("idx_sale_created_at", "created_at"),
        Index("idx_sale_party", "party_id"),
    )

    # Optional customer; None for walk-in sales
    party_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("parties.id"),
        nullable=True,
    )

    payment_method: Mapped[PaymentMethod] = mapped_column(
        String(10),
        nullable=False,
        default=PaymentMethod.CASH,
    )

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
    )

    created_by_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    # Client-supplied retry token and the hash of the request it was used for
    idempotency_key: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    payload_hash: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    lines: Mapped[list["SaleLine"]] = relationship(
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleLine.line_no",
        lazy="selectin",
    )

    @property
    def total_amount(self) -> Decimal:
        """Sum of line totals, recomputed on every read."""
        return sum((line.line_total for line in self.lines), Decimal("0"))

    def __repr__(self) -> str:
        return f"<SaleTransaction {self.id} lines={len(self.lines)}>"


class SaleLine(Base):
    """
    One item/quantity/price entry of a sale, in submission order.

    Contract:
        unit_price is the price the caller submitted, not the catalog price at
        the time of sale.
    """

    __tablename__ = "sale_lines"

    __table_args__ = (
        UniqueConstraint("sale_id", "line_no", name="uq_sale_line_no"),
        CheckConstraint("quantity > 0", name="ck_sale_line_quantity"),
        Index("idx_sale_line_item", "item_id"),
    )

    sale_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sale_transactions.id"),
        nullable=False,
    )

    # 0-based position in the submitted request
    line_no: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("catalog_items.id"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    unit_price: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    sale: Mapped[SaleTransaction] = relationship(back_populates="lines")

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price

    def __repr__(self) -> str:
        return f"<SaleLine {self.line_no}: {self.item_id} x{self.quantity}>"
