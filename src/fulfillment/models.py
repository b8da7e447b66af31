"""
Domain models for order fulfillment.

All models are frozen pydantic models. State changes never mutate a model
in place; the state machines in :mod:`fulfillment.state` return updated
copies and the stores persist them with an optimistic version check.

This module provides:
- OrderStatus, PaymentStatus, PaymentMethod: lifecycle enums
- InventoryRecord: available quantity per product with a version stamp
- CartLine, CartSnapshot: the read-only cart handed to the core
- OrderItem, Order: the order aggregate with immutable line items
- Payment: one-to-one payment record for an order
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Self
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fulfillment.exceptions import CurrencyMismatchError
from fulfillment.money import Money


def _utcnow() -> datetime:
    return datetime.now(UTC)


class OrderStatus(Enum):
    """Lifecycle states of an order."""

    CREATED = "CREATED"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(Enum):
    """Lifecycle states of a payment."""

    INITIATED = "INITIATED"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod(Enum):
    """
    How the customer pays.

    Values:
        COD: Cash on delivery, confirmed out of band
        ONLINE: Charged through a payment gateway
    """

    COD = "COD"
    ONLINE = "ONLINE"


class InventoryRecord(BaseModel):
    """
    Stock row for one product.

    Attributes:
        product_id: Product this row belongs to
        available_quantity: Units that can still be reserved (never negative)
        version: Optimistic locking stamp, incremented on every write
        updated_at: When the row was last written
    """

    model_config = ConfigDict(frozen=True)

    product_id: int
    available_quantity: int = Field(..., ge=0)
    version: int = Field(default=1, ge=1)
    updated_at: datetime = Field(default_factory=_utcnow)


class CartLine(BaseModel):
    """One (product, quantity) pair from the cart."""

    model_config = ConfigDict(frozen=True)

    product_id: int
    quantity: int = Field(..., gt=0)


class CartSnapshot(BaseModel):
    """
    Cart contents at the moment the customer checks out.

    The snapshot is produced by the cart component and is read-only to
    the core.

    Example:
        >>> cart = CartSnapshot.of(user_id=7, lines=[(1, 2), (2, 1)])
        >>> cart.is_empty
        False
    """

    model_config = ConfigDict(frozen=True)

    user_id: int
    lines: tuple[CartLine, ...] = ()

    @classmethod
    def of(cls, user_id: int, lines: list[tuple[int, int]]) -> CartSnapshot:
        """Build a snapshot from ``(product_id, quantity)`` tuples."""
        return cls(
            user_id=user_id,
            lines=tuple(CartLine(product_id=p, quantity=q) for p, q in lines),
        )

    @property
    def is_empty(self) -> bool:
        return len(self.lines) == 0


class OrderItem(BaseModel):
    """
    A line item with the unit price captured at placement time.

    The price is a snapshot and is never recomputed from the catalog.
    """

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    product_id: int
    quantity: int = Field(..., gt=0)
    unit_price: Money

    @property
    def line_total(self) -> Money:
        return self.unit_price.times(self.quantity)


class Order(BaseModel):
    """
    Order aggregate.

    Invariants checked on every construction:
    - at least one item, and every item belongs to this order
    - every item is priced in ``total_amount.currency``
    - ``total_amount`` equals the sum of the line totals

    Attributes:
        id: Order identifier
        user_id: Customer who placed the order
        items: Immutable line items in placement order
        total_amount: Sum of all line totals
        status: Current lifecycle state
        version: Optimistic locking stamp
        created_at: When the order was built
        updated_at: When the order last changed state
    """

    model_config = ConfigDict(frozen=True)

    id: UUID
    user_id: int
    items: tuple[OrderItem, ...]
    total_amount: Money
    status: OrderStatus = OrderStatus.CREATED
    version: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _check_totals(self) -> Self:
        if not self.items:
            raise ValueError("An order must contain at least one item")
        currency = self.total_amount.currency
        for item in self.items:
            if item.order_id != self.id:
                raise ValueError(f"Item for product {item.product_id} belongs to another order")
            if item.unit_price.currency != currency:
                raise CurrencyMismatchError(currency, item.unit_price.currency)
        expected = Money.sum((item.line_total for item in self.items), currency)
        if expected.amount != self.total_amount.amount:
            raise ValueError(
                f"Order total {self.total_amount} does not match line items ({expected})"
            )
        return self

    @classmethod
    def create(
        cls,
        user_id: int,
        lines: list[tuple[int, int, Money]],
        order_id: UUID | None = None,
    ) -> Order:
        """
        Build a new order in CREATED from ``(product_id, quantity, unit_price)``.

        The total is computed here, so callers cannot hand in a total that
        disagrees with the items.

        Raises:
            CurrencyMismatchError: If the lines are priced in different currencies
            ValueError: If ``lines`` is empty
        """
        if not lines:
            raise ValueError("An order must contain at least one item")
        order_id = order_id or uuid4()
        items = tuple(
            OrderItem(order_id=order_id, product_id=product_id, quantity=quantity, unit_price=price)
            for product_id, quantity, price in lines
        )
        currency = items[0].unit_price.currency
        total = Money.sum((item.line_total for item in items), currency)
        return cls(id=order_id, user_id=user_id, items=items, total_amount=total)

    @property
    def currency(self) -> str:
        return self.total_amount.currency


class Payment(BaseModel):
    """
    Payment record for exactly one order.

    Attributes:
        id: Payment identifier
        order_id: Owning order (unique across payments)
        method: COD or ONLINE
        status: Current lifecycle state
        amount: Always equal to the owning order's total
        transaction_id: Gateway reference, only ever set for ONLINE payments
        failure_reason: Why the payment failed, when it did
        version: Optimistic locking stamp
    """

    model_config = ConfigDict(frozen=True)

    id: UUID
    order_id: UUID
    method: PaymentMethod
    status: PaymentStatus = PaymentStatus.INITIATED
    amount: Money
    transaction_id: str | None = None
    failure_reason: str | None = None
    version: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _check_transaction_id(self) -> Self:
        if self.transaction_id is not None and self.method is not PaymentMethod.ONLINE:
            raise ValueError("Only ONLINE payments carry a transaction id")
        return self

    @classmethod
    def initiate(cls, order: Order, method: PaymentMethod) -> Payment:
        """Open an INITIATED payment for the full order total."""
        return cls(
            id=uuid4(),
            order_id=order.id,
            method=method,
            amount=order.total_amount,
        )


__all__ = [
    "OrderStatus",
    "PaymentStatus",
    "PaymentMethod",
    "InventoryRecord",
    "CartLine",
    "CartSnapshot",
    "OrderItem",
    "Order",
    "Payment",
]
