"""
Inventory ledger.

The ledger is the only component that changes stock. Every mutation is
one read followed by one conditional write keyed on the version that was
read, so two tasks racing for the last unit can never both win: the
slower write finds a newer version and fails with
ConcurrentModificationError.

The ledger makes a single attempt per call. Retrying a lost race is the
caller's decision (see :func:`fulfillment.retry.retry_on_conflict`).
"""

from __future__ import annotations

import logging

from fulfillment.config import FulfillmentConfig
from fulfillment.exceptions import InsufficientStockError, InventoryNotFoundError
from fulfillment.models import InventoryRecord
from fulfillment.observability import (
    ATTR_PRODUCT_ID,
    ATTR_QUANTITY,
    Tracer,
    create_tracer,
)
from fulfillment.retry import bounded
from fulfillment.stores.interface import FulfillmentStore

logger = logging.getLogger(__name__)


def _check_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise TypeError(f"quantity must be an int, got {type(quantity).__name__}")
    if quantity <= 0:
        raise ValueError(f"quantity must be positive, got {quantity}")


class InventoryLedger:
    """
    Reserve, release and restock product inventory.

    Example:
        >>> ledger = InventoryLedger(store)
        >>> await ledger.restock(product_id=1, quantity=5)
        5
        >>> await ledger.reserve(product_id=1, quantity=2)
        3
    """

    def __init__(
        self,
        store: FulfillmentStore,
        config: FulfillmentConfig | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the ledger.

        Args:
            store: Store holding the inventory rows
            config: Deadline settings (defaults if None)
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable tracing (default True).
                Ignored if tracer is explicitly provided.
        """
        self._store = store
        self._config = config or FulfillmentConfig()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def store(self) -> FulfillmentStore:
        return self._store

    async def get_record(self, product_id: int) -> InventoryRecord | None:
        return await bounded(
            self._store.get_inventory(product_id),
            self._config.operation_timeout,
            "get_inventory",
        )

    async def get_available(self, product_id: int) -> int:
        """Units that can be reserved right now (0 if the product was never stocked)."""
        record = await self.get_record(product_id)
        return record.available_quantity if record else 0

    async def reserve(self, product_id: int, quantity: int) -> int:
        """
        Take ``quantity`` units out of available stock.

        Returns:
            The available quantity after the reservation

        Raises:
            InsufficientStockError: If fewer than ``quantity`` units are
                available (nothing changes)
            ConcurrentModificationError: If another writer changed the row
                between the read and the write
            ValueError: If ``quantity`` is not positive
        """
        _check_quantity(quantity)
        with self._tracer.span(
            "fulfillment.ledger.reserve",
            {ATTR_PRODUCT_ID: product_id, ATTR_QUANTITY: quantity},
        ):
            record = await self.get_record(product_id)
            available = record.available_quantity if record else 0
            if record is None or available < quantity:
                logger.debug(
                    "Insufficient stock for product %d",
                    product_id,
                    extra={
                        "product_id": product_id,
                        "requested": quantity,
                        "available": available,
                    },
                )
                raise InsufficientStockError(product_id, quantity, available)

            written = await self._write(record, available - quantity)
            logger.debug(
                "Reserved %d of product %d",
                quantity,
                product_id,
                extra={
                    "product_id": product_id,
                    "quantity": quantity,
                    "remaining": written.available_quantity,
                    "version": written.version,
                },
            )
            return written.available_quantity

    async def release(self, product_id: int, quantity: int) -> int:
        """
        Return ``quantity`` units to available stock.

        Used to compensate a reservation and when an order is cancelled or
        refunded. There is no upper bound: callers release only what they
        reserved.

        Returns:
            The available quantity after the release

        Raises:
            InventoryNotFoundError: If the product has no inventory row
            ConcurrentModificationError: If another writer changed the row
                between the read and the write
        """
        _check_quantity(quantity)
        with self._tracer.span(
            "fulfillment.ledger.release",
            {ATTR_PRODUCT_ID: product_id, ATTR_QUANTITY: quantity},
        ):
            record = await self.get_record(product_id)
            if record is None:
                raise InventoryNotFoundError(product_id)

            written = await self._write(record, record.available_quantity + quantity)
            logger.debug(
                "Released %d of product %d",
                quantity,
                product_id,
                extra={
                    "product_id": product_id,
                    "quantity": quantity,
                    "available": written.available_quantity,
                    "version": written.version,
                },
            )
            return written.available_quantity

    async def restock(self, product_id: int, quantity: int) -> int:
        """
        Add new stock for a product, creating its row on first stock.

        Returns:
            The available quantity after restocking

        Raises:
            ConcurrentModificationError: If another writer changed (or
                created) the row first
        """
        _check_quantity(quantity)
        with self._tracer.span(
            "fulfillment.ledger.restock",
            {ATTR_PRODUCT_ID: product_id, ATTR_QUANTITY: quantity},
        ):
            record = await self.get_record(product_id)
            if record is None:
                written = await bounded(
                    self._store.insert_inventory(product_id, quantity),
                    self._config.operation_timeout,
                    "insert_inventory",
                )
            else:
                written = await self._write(record, record.available_quantity + quantity)

            logger.info(
                "Restocked product %d",
                product_id,
                extra={
                    "product_id": product_id,
                    "quantity": quantity,
                    "available": written.available_quantity,
                },
            )
            return written.available_quantity

    async def _write(self, record: InventoryRecord, new_quantity: int) -> InventoryRecord:
        return await bounded(
            self._store.compare_and_set_inventory(
                record.product_id, record.version, new_quantity
            ),
            self._config.operation_timeout,
            "compare_and_set_inventory",
        )


__all__ = ["InventoryLedger"]
