"""
In-memory fulfillment store implementation.

Useful for testing and development. Not suitable for production
as all rows are lost when the process terminates.
"""

import asyncio
from datetime import UTC, datetime
from uuid import UUID

from fulfillment.exceptions import (
    ConcurrentModificationError,
    InventoryNotFoundError,
    OrderNotFoundError,
    PaymentNotFoundError,
    StorageError,
)
from fulfillment.models import InventoryRecord, Order, Payment
from fulfillment.observability import (
    ATTR_EXPECTED_VERSION,
    ATTR_ORDER_ID,
    ATTR_PRODUCT_ID,
    Tracer,
    create_tracer,
)
from fulfillment.stores.interface import FulfillmentStore


class InMemoryFulfillmentStore(FulfillmentStore):
    """
    In-memory implementation of the fulfillment store.

    Rows live in dictionaries keyed like the persisted layout: inventory by
    product id, orders by id, payments by order id.

    Thread-safety:
        Each call holds an asyncio lock for its own duration only, so a
        read followed by a conditional write can still lose a version race
        to another task, exactly as with a real database.

    Example:
        >>> store = InMemoryFulfillmentStore()
        >>> record = await store.insert_inventory(product_id=1, quantity=5)
        >>> record.version
        1
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize an empty in-memory store.

        Args:
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable tracing (default True).
                Ignored if tracer is explicitly provided.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._inventory: dict[int, InventoryRecord] = {}
        self._orders: dict[UUID, Order] = {}
        self._payments: dict[UUID, Payment] = {}
        self._lock: asyncio.Lock = asyncio.Lock()

    async def get_inventory(self, product_id: int) -> InventoryRecord | None:
        async with self._lock:
            return self._inventory.get(product_id)

    async def insert_inventory(self, product_id: int, quantity: int) -> InventoryRecord:
        with self._tracer.span(
            "inmemory_store.insert_inventory",
            {ATTR_PRODUCT_ID: product_id},
        ):
            async with self._lock:
                existing = self._inventory.get(product_id)
                if existing is not None:
                    raise ConcurrentModificationError(
                        "inventory", product_id, 0, existing.version
                    )
                record = InventoryRecord(product_id=product_id, available_quantity=quantity)
                self._inventory[product_id] = record
                return record

    async def compare_and_set_inventory(
        self,
        product_id: int,
        expected_version: int,
        new_quantity: int,
    ) -> InventoryRecord:
        with self._tracer.span(
            "inmemory_store.compare_and_set_inventory",
            {ATTR_PRODUCT_ID: product_id, ATTR_EXPECTED_VERSION: expected_version},
        ):
            async with self._lock:
                current = self._inventory.get(product_id)
                if current is None:
                    raise InventoryNotFoundError(product_id)
                if current.version != expected_version:
                    raise ConcurrentModificationError(
                        "inventory", product_id, expected_version, current.version
                    )
                record = InventoryRecord(
                    product_id=product_id,
                    available_quantity=new_quantity,
                    version=current.version + 1,
                    updated_at=datetime.now(UTC),
                )
                self._inventory[product_id] = record
                return record

    async def insert_order(self, order: Order, payment: Payment) -> None:
        if payment.order_id != order.id:
            raise ValueError(f"Payment {payment.id} does not belong to order {order.id}")

        with self._tracer.span("inmemory_store.insert_order", {ATTR_ORDER_ID: str(order.id)}):
            async with self._lock:
                if order.id in self._orders:
                    raise StorageError(f"Order {order.id} already exists")
                if any(p.id == payment.id for p in self._payments.values()):
                    raise StorageError(f"Payment {payment.id} already exists")
                self._orders[order.id] = order
                self._payments[order.id] = payment

    async def get_order(self, order_id: UUID) -> Order | None:
        async with self._lock:
            return self._orders.get(order_id)

    async def get_payment(self, order_id: UUID) -> Payment | None:
        async with self._lock:
            return self._payments.get(order_id)

    async def list_orders(self, user_id: int, limit: int, offset: int = 0) -> list[Order]:
        async with self._lock:
            orders = [o for o in self._orders.values() if o.user_id == user_id]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders[offset : offset + limit]

    async def update_order_and_payment(
        self,
        order: Order,
        payment: Payment,
    ) -> tuple[Order, Payment]:
        with self._tracer.span(
            "inmemory_store.update_order_and_payment",
            {ATTR_ORDER_ID: str(order.id), ATTR_EXPECTED_VERSION: order.version},
        ):
            async with self._lock:
                current_order = self._orders.get(order.id)
                if current_order is None:
                    raise OrderNotFoundError(order.id)
                current_payment = self._payments.get(order.id)
                if current_payment is None or current_payment.id != payment.id:
                    raise PaymentNotFoundError(order.id)
                if current_order.version != order.version:
                    raise ConcurrentModificationError(
                        "order", order.id, order.version, current_order.version
                    )
                if current_payment.version != payment.version:
                    raise ConcurrentModificationError(
                        "payment", payment.id, payment.version, current_payment.version
                    )

                new_order = order.model_copy(update={"version": order.version + 1})
                new_payment = payment.model_copy(update={"version": payment.version + 1})
                self._orders[order.id] = new_order
                self._payments[order.id] = new_payment
                return new_order, new_payment

    async def clear(self) -> None:
        """
        Remove every row from the store.

        Useful for resetting state between tests.
        """
        async with self._lock:
            self._inventory.clear()
            self._orders.clear()
            self._payments.clear()


__all__ = ["InMemoryFulfillmentStore"]
