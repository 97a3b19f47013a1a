"""
Module: pos_ledger.models.catalog_item
Responsibility: ORM persistence for stocked catalog items and their on-hand
    quantity -- the shared counter that every sale decrements.
Architecture position: Models.  May import from db/base.py only.

Invariants enforced:
    - quantity_on_hand >= 0.  The inventory accessor's conditional UPDATE keeps
      committed sales from overdrawing it; ck_catalog_quantity_non_negative
      rejects any other write path that tries.
    - sku is unique (uq_catalog_sku).

Failure modes:
    - IntegrityError on duplicate sku or on a negative quantity written
      outside the accessor.
"""

from decimal import Decimal

from sqlalchemy import CheckConstraint, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pos_ledger.db.base import TrackedBase


class CatalogItem(TrackedBase):
    """
    A stocked item that can be sold.

    Contract:
        unit_price is the reference price shown at the till.  A sale line
        carries its own price, so changing unit_price never rewrites history.
        quantity_on_hand is mutated only through the inventory accessor.
    """

    __tablename__ = "catalog_items"

    __table_args__ = (
        UniqueConstraint("sku", name="uq_catalog_sku"),
        CheckConstraint(
            "quantity_on_hand >= 0",
            name="ck_catalog_quantity_non_negative",
        ),
        Index("idx_catalog_name", "name"),
    )

    # Business identifier printed on shelf labels
    sku: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    unit_price: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    quantity_on_hand: Mapped[int] = mapped_column(
        nullable=False,
        default=0,
    )

    category: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<CatalogItem {self.sku}: {self.name} qty={self.quantity_on_hand}>"
