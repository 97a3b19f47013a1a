"""
InventoryAccessor -- Atomic read and conditional update of on-hand stock.

Responsibility:
    The only write path for ``CatalogItem.quantity_on_hand``.  Reads the
    current quantity of one item and applies a signed delta to it without a
    read-then-write window.

Architecture position:
    Services -- leaf collaborator of the sale engine and catalog service.
    Works inside the caller's transaction scope; flush-only, never commits.

Invariants enforced:
    - quantity_on_hand never goes negative.  apply_delta is a single
      ``UPDATE ... SET q = q + :delta WHERE id = :id AND q + :delta >= 0``.
      On PostgreSQL the UPDATE takes the row lock and re-checks the WHERE
      clause against the latest committed row, so two concurrent decrements
      cannot both pass on the same stock.

Failure modes:
    - CatalogItemNotFoundError: no row with that id.
    - InsufficientStockError: the delta would overdraw the item.  requested
      is ``-delta`` and available is the quantity seen after the failed UPDATE.
"""

from uuid import UUID

from sqlalchemy import select, update

from pos_ledger.exceptions import CatalogItemNotFoundError, InsufficientStockError
from pos_ledger.logging_config import get_logger
from pos_ledger.models.catalog_item import CatalogItem
from pos_ledger.services.base import BaseService

logger = get_logger("services.inventory_accessor")


class InventoryAccessor(BaseService[CatalogItem]):
    """
    Stock counter access for one session.

    Contract:
        Reads observe uncommitted writes made earlier in the same session.
        Queries target the quantity column directly so a stale ORM identity
        map can never answer in place of the database.
    """

    def get_quantity(self, item_id: UUID) -> int:
        """
        Current on-hand quantity of item_id.

        Raises:
            CatalogItemNotFoundError: If the item does not exist.
        """
        quantity = self._read_quantity(item_id)
        if quantity is None:
            raise CatalogItemNotFoundError(str(item_id))
        return quantity

    def apply_delta(self, item_id: UUID, delta: int) -> int:
        """
        Add delta (negative for a sale, positive for a receipt) to the item.

        Returns:
            The quantity on hand after the update.

        Raises:
            ValueError: If delta is not an integer.
            CatalogItemNotFoundError: If the item does not exist.
            InsufficientStockError: If the result would be negative.
        """
        if not isinstance(delta, int) or isinstance(delta, bool):
            raise ValueError(f"delta must be an integer, got {delta!r}")

        stmt = (
            update(CatalogItem)
            .where(
                CatalogItem.id == item_id,
                CatalogItem.quantity_on_hand + delta >= 0,
            )
            .values(quantity_on_hand=CatalogItem.quantity_on_hand + delta)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)

        if result.rowcount == 0:
            current = self._read_quantity(item_id)
            if current is None:
                raise CatalogItemNotFoundError(str(item_id))
            logger.info(
                "stock_delta_refused",
                extra={
                    "item_id": str(item_id),
                    "delta": delta,
                    "available": current,
                },
            )
            raise InsufficientStockError(
                item_id=item_id,
                requested=-delta,
                available=current,
            )

        new_quantity = self._read_quantity(item_id)
        logger.info(
            "stock_delta_applied",
            extra={
                "item_id": str(item_id),
                "delta": delta,
                "quantity_on_hand": new_quantity,
            },
        )
        return new_quantity

    def _read_quantity(self, item_id: UUID) -> int | None:
        stmt = select(CatalogItem.quantity_on_hand).where(CatalogItem.id == item_id)
        return self.session.execute(stmt).scalar_one_or_none()
