"""Unit tests for OrderOrchestrator queries and administration."""

from uuid import uuid4

import pytest

from fulfillment.exceptions import OrderNotFoundError, PaymentNotFoundError
from fulfillment.models import CartSnapshot
from fulfillment.orders.orchestrator import OrderOrchestrator


class TestLookups:
    """Tests for get_order and get_payment."""

    @pytest.mark.asyncio
    async def test_missing_order(self, orchestrator: OrderOrchestrator):
        order_id = uuid4()
        with pytest.raises(OrderNotFoundError) as exc_info:
            await orchestrator.get_order(order_id)
        assert exc_info.value.order_id == order_id

    @pytest.mark.asyncio
    async def test_missing_payment(self, orchestrator: OrderOrchestrator):
        with pytest.raises(PaymentNotFoundError):
            await orchestrator.get_payment(uuid4())


class TestListOrders:
    """Tests for list_orders."""

    @pytest.mark.asyncio
    async def test_newest_first_and_paged(self, orchestrator: OrderOrchestrator):
        await orchestrator.restock(1, 10)
        placed = [
            await orchestrator.place_order(CartSnapshot.of(7, [(1, 1)])) for _ in range(3)
        ]
        await orchestrator.place_order(CartSnapshot.of(8, [(1, 1)]))

        orders = await orchestrator.list_orders(7)
        assert {o.id for o in orders} == {o.id for o in placed}
        assert [o.created_at for o in orders] == sorted(
            (o.created_at for o in orders), reverse=True
        )

        page = await orchestrator.list_orders(7, limit=2, offset=2)
        assert len(page) == 1

    @pytest.mark.asyncio
    async def test_unknown_user(self, orchestrator: OrderOrchestrator):
        assert await orchestrator.list_orders(404) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, -1, 101])
    async def test_limit_bounds(self, orchestrator: OrderOrchestrator, limit):
        with pytest.raises(ValueError, match="limit"):
            await orchestrator.list_orders(7, limit=limit)

    @pytest.mark.asyncio
    async def test_negative_offset(self, orchestrator: OrderOrchestrator):
        with pytest.raises(ValueError, match="offset"):
            await orchestrator.list_orders(7, offset=-1)


class TestStockAdministration:
    """Tests for restock and get_available_stock."""

    @pytest.mark.asyncio
    async def test_restock_accumulates(self, orchestrator: OrderOrchestrator):
        assert await orchestrator.restock(1, 2) == 2
        assert await orchestrator.restock(1, 3) == 5
        assert await orchestrator.get_available_stock(1) == 5

    @pytest.mark.asyncio
    async def test_unstocked_product(self, orchestrator: OrderOrchestrator):
        assert await orchestrator.get_available_stock(99) == 0

    @pytest.mark.asyncio
    async def test_restock_rejects_non_positive(self, orchestrator: OrderOrchestrator):
        with pytest.raises(ValueError):
            await orchestrator.restock(1, 0)
