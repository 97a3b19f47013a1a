"""
Module: pos_ledger.models.party
Responsibility: ORM persistence for the customers and suppliers a sale may be
    associated with.  Sales reference a party by id only.
Architecture position: Models.  May import from db/base.py only.
"""

from enum import Enum

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from pos_ledger.db.base import TrackedBase


class PartyType(str, Enum):
    """Classification of party types."""

    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class Party(TrackedBase):
    """
    External entity the pharmacy or shop transacts with.

    Non-goals:
        - No credit, loyalty or contact-validation rules; the sale engine only
          checks that a referenced party exists.
    """

    __tablename__ = "parties"

    __table_args__ = (
        Index("idx_party_type", "party_type"),
    )

    party_type: Mapped[PartyType] = mapped_column(
        String(20),
        nullable=False,
        default=PartyType.CUSTOMER,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    phone: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    address: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Party {self.id}: {self.name} ({PartyType(self.party_type).value})>"
