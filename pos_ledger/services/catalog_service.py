"""
Service layer for catalog maintenance.

Creates stocked items, receives deliveries and updates reference prices.
Stock changes go through the InventoryAccessor so the non-negative
quantity rule has one enforcement point.

Returns CatalogItemInfo DTOs instead of ORM entities.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from pos_ledger.domain.values import price_storage_problem
from pos_ledger.exceptions import (
    CatalogItemNotFoundError,
    DuplicateSkuError,
    InvalidCatalogItemError,
)
from pos_ledger.logging_config import get_logger
from pos_ledger.models.catalog_item import CatalogItem
from pos_ledger.services.base import BaseService
from pos_ledger.services.inventory_accessor import InventoryAccessor

logger = get_logger("services.catalog")


@dataclass(frozen=True)
class CatalogItemInfo:
    """Immutable DTO for catalog item data."""

    id: UUID
    sku: str
    name: str
    unit_price: Decimal
    quantity_on_hand: int
    category: str | None

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "sku": self.sku,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "quantity_on_hand": self.quantity_on_hand,
            "category": self.category,
        }


class CatalogService(BaseService[CatalogItem]):
    """
    Service for managing catalog items.

    All public methods return CatalogItemInfo DTOs, not ORM entities.
    """

    def _to_dto(self, item: CatalogItem) -> CatalogItemInfo:
        return CatalogItemInfo(
            id=item.id,
            sku=item.sku,
            name=item.name,
            unit_price=item.unit_price,
            quantity_on_hand=item.quantity_on_hand,
            category=item.category,
        )

    def _get_by_id(self, item_id: UUID) -> CatalogItem:
        """Get item by ID, refreshed from the database, raising if not found."""
        item = self.session.get(CatalogItem, item_id, populate_existing=True)
        if item is None:
            raise CatalogItemNotFoundError(str(item_id))
        return item

    def get_by_id(self, item_id: UUID) -> CatalogItemInfo:
        """
        Get item by ID.

        Raises:
            CatalogItemNotFoundError: If item doesn't exist.
        """
        return self._to_dto(self._get_by_id(item_id))

    def get_by_sku(self, sku: str) -> CatalogItemInfo:
        """
        Get item by SKU.

        Raises:
            CatalogItemNotFoundError: If no item carries this SKU.
        """
        stmt = (
            select(CatalogItem)
            .where(CatalogItem.sku == sku)
            .execution_options(populate_existing=True)
        )
        item = self.session.execute(stmt).scalar_one_or_none()
        if item is None:
            raise CatalogItemNotFoundError(sku)
        return self._to_dto(item)

    def create_item(
        self,
        sku: str,
        name: str,
        unit_price: Decimal,
        actor_id: UUID,
        quantity_on_hand: int = 0,
        category: str | None = None,
    ) -> CatalogItemInfo:
        """
        Register a new catalog item.

        Args:
            sku: Unique shelf code.
            name: Display name.
            unit_price: Reference price (Decimal, non-negative).
            actor_id: UUID of user/actor creating the item.
            quantity_on_hand: Opening stock (non-negative).
            category: Optional grouping label.

        Raises:
            InvalidCatalogItemError: On empty sku/name, bad price or quantity.
            DuplicateSkuError: If the sku is already registered.
        """
        sku = (sku or "").strip()
        name = (name or "").strip()
        if not sku:
            raise InvalidCatalogItemError("sku", "must not be empty")
        if not name:
            raise InvalidCatalogItemError("name", "must not be empty")
        _check_price(unit_price)
        if not isinstance(quantity_on_hand, int) or isinstance(quantity_on_hand, bool):
            raise InvalidCatalogItemError("quantity_on_hand", "must be an integer")
        if quantity_on_hand < 0:
            raise InvalidCatalogItemError("quantity_on_hand", "must not be negative")

        existing = self.session.execute(
            select(CatalogItem.id).where(CatalogItem.sku == sku)
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateSkuError(sku)

        item = CatalogItem(
            sku=sku,
            name=name,
            unit_price=unit_price,
            quantity_on_hand=quantity_on_hand,
            category=category,
            created_by_id=actor_id,
        )
        try:
            with self.session.begin_nested():
                self.session.add(item)
                self.session.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent create of the same sku
            raise DuplicateSkuError(sku) from exc

        logger.info(
            "catalog_item_created",
            extra={
                "item_id": str(item.id),
                "sku": sku,
                "quantity_on_hand": quantity_on_hand,
            },
        )
        return self.get_by_id(item.id)

    def receive_stock(self, item_id: UUID, quantity: int, actor_id: UUID) -> CatalogItemInfo:
        """
        Add a delivery of ``quantity`` units to the item's stock.

        Raises:
            InvalidCatalogItemError: If quantity is not a positive integer.
            CatalogItemNotFoundError: If item doesn't exist.
        """
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise InvalidCatalogItemError("quantity", f"must be a positive integer, got {quantity!r}")

        new_quantity = InventoryAccessor(self.session).apply_delta(item_id, quantity)
        logger.info(
            "stock_received",
            extra={
                "item_id": str(item_id),
                "quantity": quantity,
                "quantity_on_hand": new_quantity,
                "received_by": str(actor_id),
            },
        )
        item = self._get_by_id(item_id)
        item.updated_by_id = actor_id
        self.session.flush()
        return self._to_dto(item)

    def update_price(self, item_id: UUID, unit_price: Decimal, actor_id: UUID) -> CatalogItemInfo:
        """
        Change the reference price.  Committed sale lines keep their own price.

        Raises:
            InvalidCatalogItemError: If the price is invalid.
            CatalogItemNotFoundError: If item doesn't exist.
        """
        _check_price(unit_price)
        item = self._get_by_id(item_id)
        old_price = item.unit_price
        item.unit_price = unit_price
        item.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "catalog_price_updated",
            extra={
                "item_id": str(item_id),
                "old_price": str(old_price),
                "new_price": str(unit_price),
            },
        )
        return self._to_dto(item)


def _check_price(unit_price: Decimal) -> None:
    if not isinstance(unit_price, Decimal):
        raise InvalidCatalogItemError(
            "unit_price", f"must be a Decimal, got {type(unit_price).__name__}"
        )
    if not unit_price.is_finite() or unit_price < 0:
        raise InvalidCatalogItemError("unit_price", f"must be a finite non-negative amount, got {unit_price}")
    problem = price_storage_problem(unit_price)
    if problem is not None:
        raise InvalidCatalogItemError("unit_price", f"{problem}, got {unit_price}")
