"""
Unit tests for domain models.

Tests for:
- CartSnapshot construction
- Order invariants (items, totals, currency)
- Payment invariants
"""

from uuid import uuid4

import pytest
from pydantic import ValidationError

from fulfillment.exceptions import CurrencyMismatchError
from fulfillment.models import (
    CartSnapshot,
    InventoryRecord,
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
)
from fulfillment.money import Money
from tests.fixtures import inr


class TestCartSnapshot:
    """Tests for CartSnapshot."""

    def test_of_builds_lines(self):
        cart = CartSnapshot.of(user_id=7, lines=[(1, 2), (2, 1)])
        assert cart.user_id == 7
        assert [(line.product_id, line.quantity) for line in cart.lines] == [(1, 2), (2, 1)]
        assert not cart.is_empty

    def test_empty_cart(self):
        assert CartSnapshot(user_id=7).is_empty

    def test_rejects_non_positive_quantity(self):
        with pytest.raises(ValidationError):
            CartSnapshot.of(user_id=7, lines=[(1, 0)])


class TestInventoryRecord:
    """Tests for InventoryRecord."""

    def test_defaults_to_version_one(self):
        assert InventoryRecord(product_id=1, available_quantity=3).version == 1

    def test_rejects_negative_quantity(self):
        with pytest.raises(ValidationError):
            InventoryRecord(product_id=1, available_quantity=-1)


class TestOrder:
    """Tests for the Order aggregate."""

    def test_create_computes_total(self):
        order = Order.create(7, [(1, 2, inr("250.00")), (2, 1, inr("99.50"))])
        assert order.total_amount == inr("599.50")
        assert order.status is OrderStatus.CREATED
        assert order.version == 1
        assert all(item.order_id == order.id for item in order.items)

    def test_create_keeps_given_id(self):
        order_id = uuid4()
        assert Order.create(7, [(1, 1, inr("1.00"))], order_id=order_id).id == order_id

    def test_create_rejects_empty_lines(self):
        with pytest.raises(ValueError):
            Order.create(7, [])

    def test_create_rejects_mixed_currencies(self):
        with pytest.raises(CurrencyMismatchError):
            Order.create(7, [(1, 1, inr("1.00")), (2, 1, Money.of("1.00", "USD"))])

    def test_rejects_total_that_disagrees_with_items(self):
        order_id = uuid4()
        item = OrderItem(order_id=order_id, product_id=1, quantity=2, unit_price=inr("5.00"))
        with pytest.raises(ValidationError):
            Order(id=order_id, user_id=7, items=(item,), total_amount=inr("9.99"))

    def test_rejects_item_from_another_order(self):
        item = OrderItem(order_id=uuid4(), product_id=1, quantity=1, unit_price=inr("5.00"))
        with pytest.raises(ValidationError):
            Order(id=uuid4(), user_id=7, items=(item,), total_amount=inr("5.00"))

    def test_line_total(self):
        item = OrderItem(order_id=uuid4(), product_id=1, quantity=3, unit_price=inr("0.10"))
        assert item.line_total == inr("0.30")

    def test_currency(self):
        assert Order.create(7, [(1, 1, inr("1.00"))]).currency == "INR"


class TestPayment:
    """Tests for the Payment model."""

    def test_initiate_copies_order_total(self):
        order = Order.create(7, [(1, 2, inr("250.00"))])
        payment = Payment.initiate(order, PaymentMethod.COD)
        assert payment.order_id == order.id
        assert payment.amount == order.total_amount
        assert payment.status is PaymentStatus.INITIATED
        assert payment.transaction_id is None

    def test_cod_cannot_carry_transaction_id(self):
        with pytest.raises(ValidationError):
            Payment(
                id=uuid4(),
                order_id=uuid4(),
                method=PaymentMethod.COD,
                amount=inr("1.00"),
                transaction_id="pay_123",
            )

    def test_online_can_carry_transaction_id(self):
        payment = Payment(
            id=uuid4(),
            order_id=uuid4(),
            method=PaymentMethod.ONLINE,
            amount=inr("1.00"),
            transaction_id="pay_123",
        )
        assert payment.transaction_id == "pay_123"
