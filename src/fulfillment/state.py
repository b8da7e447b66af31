"""
Order and payment state machines.

Transitions are pure functions: they validate the move against the
transition table and return an updated copy. Persisting the copy (with an
optimistic version check) is the store's job.

Order:
    CREATED -> AWAITING_PAYMENT -> PAID -> REFUNDED
                               \\-> CANCELLED

Payment:
    INITIATED -> SUCCESS -> REFUNDED
              \\-> FAILED

A payment transition that changes what the customer sees on the order is
coupled to an order transition. ``apply_payment_outcome`` validates both
moves before returning either aggregate, so there is no way to build an
order marked PAID next to a payment that is not SUCCESS.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from fulfillment.exceptions import InvalidOrderStateTransitionError, PaymentMethodError
from fulfillment.models import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.CREATED: frozenset({OrderStatus.AWAITING_PAYMENT}),
    OrderStatus.AWAITING_PAYMENT: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.INITIATED: frozenset({PaymentStatus.SUCCESS, PaymentStatus.FAILED}),
    PaymentStatus.SUCCESS: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}


@dataclass(frozen=True)
class PaymentOutcome:
    """
    What a payment transition implies for its order.

    Attributes:
        payment_status: Target payment state
        order_status: Order state that must be reached in the same commit
        releases_stock: Whether every item's quantity goes back to inventory
    """

    payment_status: PaymentStatus
    order_status: OrderStatus
    releases_stock: bool


PAYMENT_OUTCOMES: dict[PaymentStatus, PaymentOutcome] = {
    PaymentStatus.SUCCESS: PaymentOutcome(PaymentStatus.SUCCESS, OrderStatus.PAID, False),
    PaymentStatus.FAILED: PaymentOutcome(PaymentStatus.FAILED, OrderStatus.CANCELLED, True),
    PaymentStatus.REFUNDED: PaymentOutcome(PaymentStatus.REFUNDED, OrderStatus.REFUNDED, True),
}


def can_transition_order(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS[current]


def can_transition_payment(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in PAYMENT_TRANSITIONS[current]


def is_terminal(status: OrderStatus) -> bool:
    """True for order states with no way out (CANCELLED, REFUNDED)."""
    return not ORDER_TRANSITIONS[status]


def transition_order(order: Order, target: OrderStatus) -> Order:
    """
    Move an order to ``target``.

    Raises:
        InvalidOrderStateTransitionError: If ``target`` is not adjacent to
            the current state
    """
    if not can_transition_order(order.status, target):
        raise InvalidOrderStateTransitionError(
            "order", order.id, order.status.value, target.value
        )
    return order.model_copy(update={"status": target, "updated_at": datetime.now(UTC)})


def transition_payment(
    payment: Payment,
    target: PaymentStatus,
    *,
    transaction_id: str | None = None,
    failure_reason: str | None = None,
) -> Payment:
    """
    Move a payment to ``target``.

    ``transaction_id`` is recorded only when provided, so a COD payment
    reaches SUCCESS without one and an ONLINE refund keeps the original
    reference.

    Raises:
        InvalidOrderStateTransitionError: If ``target`` is not adjacent to
            the current state
        PaymentMethodError: If a transaction id is given for a COD payment
    """
    if not can_transition_payment(payment.status, target):
        raise InvalidOrderStateTransitionError(
            "payment", payment.id, payment.status.value, target.value
        )
    if transaction_id is not None and payment.method is not PaymentMethod.ONLINE:
        raise PaymentMethodError(
            payment.order_id, PaymentMethod.ONLINE.value, payment.method.value
        )
    update: dict[str, object] = {"status": target, "updated_at": datetime.now(UTC)}
    if transaction_id is not None:
        update["transaction_id"] = transaction_id
    if failure_reason is not None:
        update["failure_reason"] = failure_reason
    # model_copy would skip the Payment validators
    return Payment.model_validate({**payment.model_dump(), **update})


def apply_payment_outcome(
    order: Order,
    payment: Payment,
    target: PaymentStatus,
    *,
    transaction_id: str | None = None,
    failure_reason: str | None = None,
) -> tuple[Order, Payment]:
    """
    Apply a coupled payment/order transition.

    Both transitions are validated before either copy is returned; if the
    order cannot follow the payment (or vice versa) nothing changes.

    Returns:
        The updated ``(order, payment)`` pair, ready to be saved together

    Raises:
        InvalidOrderStateTransitionError: If either aggregate cannot make the move
        ValueError: If ``target`` has no order-visible outcome or the
            payment belongs to another order
    """
    if payment.order_id != order.id:
        raise ValueError(f"Payment {payment.id} does not belong to order {order.id}")
    outcome = PAYMENT_OUTCOMES.get(target)
    if outcome is None:
        raise ValueError(f"{target.value} is not a payment outcome")
    # Validate the payment first so its state shows up in the error.
    new_payment = transition_payment(
        payment,
        outcome.payment_status,
        transaction_id=transaction_id,
        failure_reason=failure_reason,
    )
    new_order = transition_order(order, outcome.order_status)
    return new_order, new_payment


__all__ = [
    "ORDER_TRANSITIONS",
    "PAYMENT_TRANSITIONS",
    "PAYMENT_OUTCOMES",
    "PaymentOutcome",
    "can_transition_order",
    "can_transition_payment",
    "is_terminal",
    "transition_order",
    "transition_payment",
    "apply_payment_outcome",
]
