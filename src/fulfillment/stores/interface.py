"""
Fulfillment store interface.

The store is the single consistent data store behind the core. It keeps
inventory rows, orders with their items, and payments, and every write it
accepts is conditional on the version the writer read.

This module provides:
- FulfillmentStore: Abstract base class for store implementations

Version discipline shared by every implementation:

- Rows are created at version 1.
- A conditional write names the version it expects, stores ``expected + 1``
  and raises ConcurrentModificationError when the stored version differs.
- ``update_order_and_payment`` checks both versions and writes both rows in
  one transaction, or writes nothing.
"""

from abc import ABC, abstractmethod
from uuid import UUID

from fulfillment.models import InventoryRecord, Order, Payment


class FulfillmentStore(ABC):
    """
    Abstract base class for fulfillment stores.

    Implementations must be safe to share between concurrent asyncio tasks.
    They never hold a lock across calls: serialization of competing writers
    comes from the version column alone.
    """

    # Inventory

    @abstractmethod
    async def get_inventory(self, product_id: int) -> InventoryRecord | None:
        """
        Read the inventory row for a product.

        Returns:
            The row, or None if the product was never stocked
        """
        pass

    @abstractmethod
    async def insert_inventory(self, product_id: int, quantity: int) -> InventoryRecord:
        """
        Create the inventory row for a product at version 1.

        Raises:
            ConcurrentModificationError: If a row already exists (another
                writer created it first)
        """
        pass

    @abstractmethod
    async def compare_and_set_inventory(
        self,
        product_id: int,
        expected_version: int,
        new_quantity: int,
    ) -> InventoryRecord:
        """
        Overwrite a product's available quantity if its version is unchanged.

        Args:
            product_id: Product whose row is written
            expected_version: Version the caller read
            new_quantity: Quantity to store (must be >= 0)

        Returns:
            The written row, at ``expected_version + 1``

        Raises:
            ConcurrentModificationError: If the stored version differs
            InventoryNotFoundError: If the row does not exist
        """
        pass

    # Orders and payments

    @abstractmethod
    async def insert_order(self, order: Order, payment: Payment) -> None:
        """
        Persist a new order, its items and its payment in one transaction.

        Raises:
            ValueError: If the payment does not belong to the order
            StorageError: If the order or payment id is already taken
        """
        pass

    @abstractmethod
    async def get_order(self, order_id: UUID) -> Order | None:
        pass

    @abstractmethod
    async def get_payment(self, order_id: UUID) -> Payment | None:
        """Get the payment belonging to an order."""
        pass

    @abstractmethod
    async def list_orders(self, user_id: int, limit: int, offset: int = 0) -> list[Order]:
        """
        Get a page of a user's orders, newest first.

        Args:
            user_id: Customer whose orders are listed
            limit: Page size
            offset: Number of orders to skip
        """
        pass

    @abstractmethod
    async def update_order_and_payment(
        self,
        order: Order,
        payment: Payment,
    ) -> tuple[Order, Payment]:
        """
        Write an order and its payment together.

        ``order.version`` and ``payment.version`` are the versions the caller
        read; both must still be current. Items are never rewritten.

        Returns:
            The written pair, each at its version + 1

        Raises:
            ConcurrentModificationError: If either version changed (nothing
                is written)
            OrderNotFoundError: If the order does not exist
            PaymentNotFoundError: If the payment does not exist
        """
        pass


__all__ = ["FulfillmentStore"]
