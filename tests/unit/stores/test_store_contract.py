"""
Behavioural tests every FulfillmentStore implementation must pass.

Runs against the in-memory store and the SQLite store (when aiosqlite is
installed). Covers:
- Inventory insert and compare-and-set
- Atomic order + payment insertion
- Coupled order/payment updates with version checks
- Paged order listing
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
import pytest_asyncio

from fulfillment.exceptions import (
    ConcurrentModificationError,
    InventoryNotFoundError,
    OrderNotFoundError,
    StorageError,
)
from fulfillment.models import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus
from fulfillment.state import apply_payment_outcome, transition_order
from fulfillment.stores.in_memory import InMemoryFulfillmentStore
from fulfillment.stores.interface import FulfillmentStore
from tests.conftest import AIOSQLITE_AVAILABLE
from tests.fixtures import inr


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def any_store(request: pytest.FixtureRequest) -> AsyncGenerator[FulfillmentStore, None]:
    """Provide each store implementation in turn."""
    if request.param == "memory":
        yield InMemoryFulfillmentStore(enable_tracing=False)
        return

    if not AIOSQLITE_AVAILABLE:
        pytest.skip("aiosqlite not installed")

    from fulfillment.stores.sqlite import SQLiteFulfillmentStore

    async with SQLiteFulfillmentStore(":memory:", wal_mode=False, enable_tracing=False) as store:
        await store.initialize()
        yield store


def new_order(
    user_id: int = 7,
    method: PaymentMethod = PaymentMethod.COD,
    created_at: datetime | None = None,
) -> tuple[Order, Payment]:
    order = Order.create(user_id, [(1, 2, inr("250.00")), (2, 1, inr("99.50"))])
    if created_at is not None:
        order = order.model_copy(update={"created_at": created_at})
    order = transition_order(order, OrderStatus.AWAITING_PAYMENT)
    return order, Payment.initiate(order, method)


class TestInventoryRows:
    """Tests for inventory rows."""

    @pytest.mark.asyncio
    async def test_missing_row_is_none(self, any_store: FulfillmentStore):
        assert await any_store.get_inventory(1) is None

    @pytest.mark.asyncio
    async def test_insert_creates_version_one(self, any_store: FulfillmentStore):
        record = await any_store.insert_inventory(1, 5)
        assert record.version == 1
        assert record.available_quantity == 5

        stored = await any_store.get_inventory(1)
        assert stored is not None
        assert stored.available_quantity == 5
        assert stored.version == 1

    @pytest.mark.asyncio
    async def test_second_insert_conflicts(self, any_store: FulfillmentStore):
        await any_store.insert_inventory(1, 5)
        with pytest.raises(ConcurrentModificationError):
            await any_store.insert_inventory(1, 3)
        stored = await any_store.get_inventory(1)
        assert stored is not None
        assert stored.available_quantity == 5

    @pytest.mark.asyncio
    async def test_compare_and_set_increments_version(self, any_store: FulfillmentStore):
        await any_store.insert_inventory(1, 5)
        record = await any_store.compare_and_set_inventory(1, expected_version=1, new_quantity=3)
        assert record.version == 2
        assert record.available_quantity == 3

        stored = await any_store.get_inventory(1)
        assert stored is not None
        assert (stored.available_quantity, stored.version) == (3, 2)

    @pytest.mark.asyncio
    async def test_stale_version_conflicts(self, any_store: FulfillmentStore):
        await any_store.insert_inventory(1, 5)
        await any_store.compare_and_set_inventory(1, 1, 4)

        with pytest.raises(ConcurrentModificationError) as exc_info:
            await any_store.compare_and_set_inventory(1, 1, 0)

        assert exc_info.value.expected_version == 1
        assert exc_info.value.actual_version == 2
        stored = await any_store.get_inventory(1)
        assert stored is not None
        assert stored.available_quantity == 4

    @pytest.mark.asyncio
    async def test_compare_and_set_on_missing_row(self, any_store: FulfillmentStore):
        with pytest.raises(InventoryNotFoundError):
            await any_store.compare_and_set_inventory(99, 1, 1)

    @pytest.mark.asyncio
    async def test_negative_quantity_rejected(self, any_store: FulfillmentStore):
        await any_store.insert_inventory(1, 5)
        with pytest.raises(ValueError):
            await any_store.compare_and_set_inventory(1, 1, -1)


class TestOrderRows:
    """Tests for order and payment rows."""

    @pytest.mark.asyncio
    async def test_insert_and_read_back(self, any_store: FulfillmentStore):
        order, payment = new_order()
        await any_store.insert_order(order, payment)

        stored = await any_store.get_order(order.id)
        assert stored is not None
        assert stored.id == order.id
        assert stored.status is OrderStatus.AWAITING_PAYMENT
        assert stored.total_amount == inr("599.50")
        assert [(i.product_id, i.quantity, i.unit_price) for i in stored.items] == [
            (1, 2, inr("250.00")),
            (2, 1, inr("99.50")),
        ]

        stored_payment = await any_store.get_payment(order.id)
        assert stored_payment is not None
        assert stored_payment.id == payment.id
        assert stored_payment.status is PaymentStatus.INITIATED
        assert stored_payment.amount == stored.total_amount

    @pytest.mark.asyncio
    async def test_missing_order(self, any_store: FulfillmentStore):
        assert await any_store.get_order(uuid4()) is None
        assert await any_store.get_payment(uuid4()) is None

    @pytest.mark.asyncio
    async def test_duplicate_order_rejected(self, any_store: FulfillmentStore):
        order, payment = new_order()
        await any_store.insert_order(order, payment)
        with pytest.raises(StorageError):
            await any_store.insert_order(order, Payment.initiate(order, PaymentMethod.COD))

    @pytest.mark.asyncio
    async def test_payment_of_other_order_rejected(self, any_store: FulfillmentStore):
        order, _ = new_order()
        _, other_payment = new_order()
        with pytest.raises(ValueError):
            await any_store.insert_order(order, other_payment)
        assert await any_store.get_order(order.id) is None


class TestCoupledUpdate:
    """Tests for update_order_and_payment."""

    @pytest.mark.asyncio
    async def test_writes_both_and_bumps_versions(self, any_store: FulfillmentStore):
        order, payment = new_order(method=PaymentMethod.ONLINE)
        await any_store.insert_order(order, payment)

        paid_order, paid_payment = apply_payment_outcome(
            order, payment, PaymentStatus.SUCCESS, transaction_id="pay_1"
        )
        saved_order, saved_payment = await any_store.update_order_and_payment(
            paid_order, paid_payment
        )
        assert saved_order.version == 2
        assert saved_payment.version == 2

        stored_order = await any_store.get_order(order.id)
        stored_payment = await any_store.get_payment(order.id)
        assert stored_order is not None and stored_payment is not None
        assert stored_order.status is OrderStatus.PAID
        assert stored_order.version == 2
        assert stored_payment.status is PaymentStatus.SUCCESS
        assert stored_payment.transaction_id == "pay_1"
        assert stored_payment.version == 2

    @pytest.mark.asyncio
    async def test_stale_write_changes_nothing(self, any_store: FulfillmentStore):
        order, payment = new_order()
        await any_store.insert_order(order, payment)

        await any_store.update_order_and_payment(
            *apply_payment_outcome(order, payment, PaymentStatus.SUCCESS)
        )
        stale = apply_payment_outcome(order, payment, PaymentStatus.FAILED)
        with pytest.raises(ConcurrentModificationError):
            await any_store.update_order_and_payment(*stale)

        stored_order = await any_store.get_order(order.id)
        stored_payment = await any_store.get_payment(order.id)
        assert stored_order is not None and stored_payment is not None
        assert stored_order.status is OrderStatus.PAID
        assert stored_payment.status is PaymentStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_stale_payment_version_rolls_back_order(self, any_store: FulfillmentStore):
        order, payment = new_order()
        await any_store.insert_order(order, payment)

        new_o, new_p = apply_payment_outcome(order, payment, PaymentStatus.SUCCESS)
        stale_payment = new_p.model_copy(update={"version": 5})
        with pytest.raises(ConcurrentModificationError) as exc_info:
            await any_store.update_order_and_payment(new_o, stale_payment)
        assert exc_info.value.entity == "payment"

        stored_order = await any_store.get_order(order.id)
        assert stored_order is not None
        assert stored_order.status is OrderStatus.AWAITING_PAYMENT
        assert stored_order.version == 1

    @pytest.mark.asyncio
    async def test_missing_order(self, any_store: FulfillmentStore):
        order, payment = new_order()
        with pytest.raises(OrderNotFoundError):
            await any_store.update_order_and_payment(order, payment)


class TestListOrders:
    """Tests for list_orders."""

    @pytest.mark.asyncio
    async def test_newest_first_and_paged(self, any_store: FulfillmentStore):
        base = datetime(2026, 1, 1, tzinfo=UTC)
        placed = []
        for minutes in (0, 10, 20):
            order, payment = new_order(created_at=base + timedelta(minutes=minutes))
            await any_store.insert_order(order, payment)
            placed.append(order.id)
        other, other_payment = new_order(user_id=8)
        await any_store.insert_order(other, other_payment)

        first_page = await any_store.list_orders(7, limit=2)
        second_page = await any_store.list_orders(7, limit=2, offset=2)

        assert [o.id for o in first_page] == [placed[2], placed[1]]
        assert [o.id for o in second_page] == [placed[0]]
        assert all(o.items for o in first_page)

    @pytest.mark.asyncio
    async def test_unknown_user(self, any_store: FulfillmentStore):
        assert await any_store.list_orders(12345, limit=10) == []


class TestConcurrentWriters:
    """Tests for racing compare-and-set writers."""

    @pytest.mark.asyncio
    async def test_only_one_writer_per_version_wins(self, any_store: FulfillmentStore):
        await any_store.insert_inventory(1, 10)

        results = await asyncio.gather(
            *(any_store.compare_and_set_inventory(1, 1, 10 - n) for n in range(1, 6)),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, BaseException)]
        losers = [r for r in results if isinstance(r, ConcurrentModificationError)]
        assert len(winners) == 1
        assert len(losers) == 4
        stored = await any_store.get_inventory(1)
        assert stored is not None
        assert stored.version == 2
