"""
Order placement and payment orchestration.

The orchestrator is the only component that writes orders and payments,
and the only one that asks the ledger to reserve or release stock on a
customer's behalf.

Placement:
    1. Merge duplicate cart lines, sort by product id, reserve each line
       (retrying lost version races up to the configured bound).
    2. Snapshot catalog prices into the order items.
    3. Persist the order (already AWAITING_PAYMENT), its items and its
       INITIATED payment in one store call.
    If anything fails after the first reservation, every reservation made
    by the call is released in reverse order before the error propagates.

Payment outcomes:
    Order and payment move together through ``apply_payment_outcome`` and
    ``update_order_and_payment``. A lost version race re-reads both rows
    and re-validates the move, so of two racing transitions the loser sees
    InvalidOrderStateTransitionError. Outcomes that end the order
    (FAILED, REFUNDED) release every item's stock after the commit. Every
    item is attempted even when one release fails; the first failure is
    then raised with a note per item left unreleased.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from uuid import UUID

from fulfillment.catalog import Catalog
from fulfillment.config import FulfillmentConfig
from fulfillment.exceptions import (
    EmptyCartError,
    FulfillmentError,
    InvalidOrderStateTransitionError,
    OrderNotFoundError,
    PaymentGatewayError,
    PaymentMethodError,
    PaymentNotFoundError,
    PaymentVerificationError,
)
from fulfillment.inventory.ledger import InventoryLedger
from fulfillment.models import (
    CartSnapshot,
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
)
from fulfillment.observability import (
    ATTR_LINE_COUNT,
    ATTR_ORDER_ID,
    ATTR_ORDER_STATUS,
    ATTR_PAYMENT_METHOD,
    ATTR_PAYMENT_STATUS,
    ATTR_PRODUCT_ID,
    ATTR_QUANTITY,
    ATTR_USER_ID,
    Tracer,
    create_tracer,
)
from fulfillment.payments.gateway import PaymentGateway
from fulfillment.payments.signature import CallbackSignatureVerifier
from fulfillment.retry import bounded, retry_on_conflict
from fulfillment.state import PAYMENT_OUTCOMES, apply_payment_outcome, transition_order
from fulfillment.stores.interface import FulfillmentStore

logger = logging.getLogger(__name__)

CANCELLED_BY_CUSTOMER = "cancelled"
SIGNATURE_MISMATCH = "signature verification failed"


def build_reservation_plan(cart: CartSnapshot) -> list[tuple[int, int]]:
    """
    Merge duplicate product lines and order them by ascending product id.

    A fixed global order keeps concurrent placements that share products
    from working against each other in opposite directions.

    Example:
        >>> build_reservation_plan(CartSnapshot.of(1, [(3, 1), (1, 2), (3, 4)]))
        [(1, 2), (3, 5)]
    """
    merged: dict[int, int] = {}
    for line in cart.lines:
        merged[line.product_id] = merged.get(line.product_id, 0) + line.quantity
    return sorted(merged.items())


class OrderOrchestrator:
    """
    Places orders and drives their payments.

    Example:
        >>> store = InMemoryFulfillmentStore()
        >>> catalog = InMemoryCatalog({1: Money.of("250.00", "INR")})
        >>> orchestrator = OrderOrchestrator(store, catalog)
        >>> await orchestrator.restock(1, 5)
        >>> order = await orchestrator.place_order(CartSnapshot.of(7, [(1, 2)]))
        >>> order.status
        <OrderStatus.AWAITING_PAYMENT: 'AWAITING_PAYMENT'>
    """

    def __init__(
        self,
        store: FulfillmentStore,
        catalog: Catalog,
        config: FulfillmentConfig | None = None,
        *,
        ledger: InventoryLedger | None = None,
        gateway: PaymentGateway | None = None,
        signature_verifier: CallbackSignatureVerifier | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            store: Store holding inventory, orders and payments
            catalog: Price lookup used at placement time
            config: Retry, deadline and paging settings (defaults if None)
            ledger: Inventory ledger (one over ``store`` is built if None)
            gateway: Payment gateway, required by process_online_payment
            signature_verifier: Required by confirm_gateway_payment
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable tracing (default True).
                Ignored if tracer is explicitly provided.
        """
        self._store = store
        self._catalog = catalog
        self._config = config or FulfillmentConfig()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._ledger = ledger or InventoryLedger(store, self._config, tracer=self._tracer)
        self._gateway = gateway
        self._signature_verifier = signature_verifier

    @property
    def ledger(self) -> InventoryLedger:
        return self._ledger

    @property
    def config(self) -> FulfillmentConfig:
        return self._config

    # Placement

    async def place_order(
        self,
        cart: CartSnapshot,
        payment_method: PaymentMethod | None = None,
    ) -> Order:
        """
        Turn a cart into an order awaiting payment.

        Args:
            cart: The customer's cart at checkout
            payment_method: COD or ONLINE (config default if None)

        Returns:
            The persisted order, in AWAITING_PAYMENT

        Raises:
            EmptyCartError: If the cart has no lines
            InsufficientStockError: If any product is short (nothing is reserved)
            RetriesExhaustedError: If a reservation kept losing version races
            ProductNotFoundError: If the catalog has no price for a product
            CurrencyMismatchError: If the products are priced in different currencies
            OperationTimeoutError: If a store or catalog call exceeds its deadline
        """
        method = payment_method or self._config.default_payment_method
        if cart.is_empty:
            raise EmptyCartError(cart.user_id)

        plan = build_reservation_plan(cart)
        with self._tracer.span(
            "fulfillment.order.place",
            {
                ATTR_USER_ID: cart.user_id,
                ATTR_LINE_COUNT: len(plan),
                ATTR_PAYMENT_METHOD: method.value,
            },
        ):
            reserved: list[tuple[int, int]] = []
            try:
                for product_id, quantity in plan:
                    await retry_on_conflict(
                        partial(self._ledger.reserve, product_id, quantity),
                        self._config.retry,
                        f"reserve product {product_id}",
                    )
                    reserved.append((product_id, quantity))

                lines = []
                for product_id, quantity in plan:
                    price = await bounded(
                        self._catalog.get_price(product_id),
                        self._config.operation_timeout,
                        "catalog.get_price",
                    )
                    lines.append((product_id, quantity, price))

                order = transition_order(
                    Order.create(cart.user_id, lines),
                    OrderStatus.AWAITING_PAYMENT,
                )
                payment = Payment.initiate(order, method)
                await bounded(
                    self._store.insert_order(order, payment),
                    self._config.operation_timeout,
                    "insert_order",
                )
            except (Exception, asyncio.CancelledError) as e:
                if reserved:
                    await self._roll_back(reserved, e)
                raise

        logger.info(
            "Placed order %s",
            order.id,
            extra={
                "order_id": str(order.id),
                "user_id": cart.user_id,
                "total": str(order.total_amount),
                "payment_method": method.value,
                "lines": len(plan),
            },
        )
        return order

    async def _roll_back(self, reserved: list[tuple[int, int]], error: BaseException) -> None:
        """Release reservations in reverse order; failures are logged and noted on ``error``."""
        logger.warning(
            "Rolling back %d reservations after %s",
            len(reserved),
            type(error).__name__,
            extra={"reserved": reserved, "error": str(error)},
        )
        for product_id, quantity in reversed(reserved):
            try:
                await retry_on_conflict(
                    partial(self._ledger.release, product_id, quantity),
                    self._config.retry,
                    f"release product {product_id}",
                )
            except Exception as release_error:
                logger.error(
                    "Failed to release %d of product %d during rollback",
                    quantity,
                    product_id,
                    exc_info=True,
                    extra={"product_id": product_id, "quantity": quantity},
                )
                error.add_note(
                    f"rollback failed to release {quantity} of product {product_id}: "
                    f"{release_error!r}"
                )

    # Payment outcomes

    async def mark_payment_success(
        self,
        order_id: UUID,
        transaction_id: str | None = None,
    ) -> Order:
        """
        Record a successful payment: payment SUCCESS, order PAID.

        Args:
            order_id: Order being paid
            transaction_id: Gateway reference; only valid for ONLINE payments

        Raises:
            InvalidOrderStateTransitionError: If the payment is not INITIATED
            PaymentMethodError: If a transaction id is given for a COD payment
        """
        return await self._apply_outcome(
            order_id,
            PaymentStatus.SUCCESS,
            transaction_id=transaction_id,
            require_online=transaction_id is not None,
        )

    async def mark_payment_failed(self, order_id: UUID, reason: str | None = None) -> Order:
        """
        Record a failed payment: payment FAILED, order CANCELLED, stock released.

        Raises:
            InvalidOrderStateTransitionError: If the payment is not INITIATED
        """
        return await self._apply_outcome(order_id, PaymentStatus.FAILED, failure_reason=reason)

    async def refund(self, order_id: UUID) -> Order:
        """
        Refund a paid order: payment and order REFUNDED, stock released.

        Raises:
            InvalidOrderStateTransitionError: If the order is not PAID
        """
        return await self._apply_outcome(order_id, PaymentStatus.REFUNDED)

    async def cancel_order(self, order_id: UUID) -> Order:
        """
        Cancel an order on the customer's request.

        An order awaiting payment is cancelled through the payment failure
        path; a paid order is refunded.

        Raises:
            InvalidOrderStateTransitionError: If the order is already
                cancelled or refunded
        """
        order = await self.get_order(order_id)
        if order.status is OrderStatus.AWAITING_PAYMENT:
            return await self.mark_payment_failed(order_id, CANCELLED_BY_CUSTOMER)
        if order.status is OrderStatus.PAID:
            return await self.refund(order_id)
        raise InvalidOrderStateTransitionError(
            "order", order.id, order.status.value, OrderStatus.CANCELLED.value
        )

    async def process_online_payment(self, order_id: UUID) -> Order:
        """
        Charge an ONLINE payment through the gateway and record the outcome.

        A declined charge is not an error: the order comes back CANCELLED
        with its stock released.

        Raises:
            RuntimeError: If no gateway is configured
            PaymentMethodError: If the payment is COD
            InvalidOrderStateTransitionError: If the payment is not INITIATED
            PaymentGatewayError: If the gateway call fails (the payment stays INITIATED)
            OperationTimeoutError: If the gateway does not answer in time
        """
        if self._gateway is None:
            raise RuntimeError("process_online_payment requires a payment gateway")

        payment = await self.get_payment(order_id)
        if payment.method is not PaymentMethod.ONLINE:
            raise PaymentMethodError(order_id, PaymentMethod.ONLINE.value, payment.method.value)
        if payment.status is not PaymentStatus.INITIATED:
            raise InvalidOrderStateTransitionError(
                "payment", payment.id, payment.status.value, PaymentStatus.SUCCESS.value
            )

        try:
            result = await bounded(
                self._gateway.charge(payment),
                self._config.operation_timeout,
                "gateway.charge",
            )
        except FulfillmentError:
            raise
        except Exception as e:
            logger.warning(
                "Gateway charge failed for order %s",
                order_id,
                exc_info=True,
                extra={"order_id": str(order_id), "payment_id": str(payment.id)},
            )
            raise PaymentGatewayError(
                f"Charging payment {payment.id} for order {order_id} failed: {e!r}"
            ) from e
        if result.success:
            return await self._apply_outcome(
                order_id,
                PaymentStatus.SUCCESS,
                transaction_id=result.transaction_id,
                require_online=True,
            )
        return await self._apply_outcome(
            order_id,
            PaymentStatus.FAILED,
            failure_reason=result.failure_reason,
            require_online=True,
        )

    async def confirm_gateway_payment(
        self,
        order_id: UUID,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> Order:
        """
        Handle the gateway's payment callback.

        A valid signature records the payment as SUCCESS with
        ``gateway_payment_id`` as its transaction id. An invalid one fails
        the payment (cancelling the order and releasing stock) and raises.

        Raises:
            RuntimeError: If no signature verifier is configured
            PaymentVerificationError: If the signature does not verify
            PaymentMethodError: If the payment is COD
        """
        if self._signature_verifier is None:
            raise RuntimeError("confirm_gateway_payment requires a signature verifier")

        if self._signature_verifier.verify(gateway_order_id, gateway_payment_id, signature):
            return await self._apply_outcome(
                order_id,
                PaymentStatus.SUCCESS,
                transaction_id=gateway_payment_id,
                require_online=True,
            )

        logger.warning(
            "Rejected gateway callback for order %s",
            order_id,
            extra={"order_id": str(order_id), "gateway_order_id": gateway_order_id},
        )
        await self._apply_outcome(
            order_id,
            PaymentStatus.FAILED,
            failure_reason=SIGNATURE_MISMATCH,
            require_online=True,
        )
        raise PaymentVerificationError(order_id)

    async def _apply_outcome(
        self,
        order_id: UUID,
        target: PaymentStatus,
        *,
        transaction_id: str | None = None,
        failure_reason: str | None = None,
        require_online: bool = False,
    ) -> Order:
        outcome = PAYMENT_OUTCOMES[target]

        async def attempt() -> tuple[Order, Payment]:
            order = await self.get_order(order_id)
            payment = await self.get_payment(order_id)
            if require_online and payment.method is not PaymentMethod.ONLINE:
                raise PaymentMethodError(
                    order_id, PaymentMethod.ONLINE.value, payment.method.value
                )
            new_order, new_payment = apply_payment_outcome(
                order,
                payment,
                target,
                transaction_id=transaction_id,
                failure_reason=failure_reason,
            )
            return await bounded(
                self._store.update_order_and_payment(new_order, new_payment),
                self._config.operation_timeout,
                "update_order_and_payment",
            )

        with self._tracer.span(
            "fulfillment.payment.transition",
            {ATTR_ORDER_ID: str(order_id), ATTR_PAYMENT_STATUS: target.value},
        ) as span:
            order, payment = await retry_on_conflict(
                attempt, self._config.retry, f"payment {target.value.lower()}"
            )
            if span:
                span.set_attribute(ATTR_ORDER_STATUS, order.status.value)
            logger.info(
                "Payment for order %s is %s; order is %s",
                order_id,
                payment.status.value,
                order.status.value,
                extra={
                    "order_id": str(order_id),
                    "payment_id": str(payment.id),
                    "payment_status": payment.status.value,
                    "order_status": order.status.value,
                },
            )
            if outcome.releases_stock:
                await self._release_items(order)
        return order

    async def _release_items(self, order: Order) -> None:
        """
        Release the stock of every item on an order that just ended.

        The order is already terminal, so a failed release cannot be
        retried through the order later. Every item is attempted; the
        first failure is raised afterwards, with one note per item that
        could not be released.
        """
        failures: list[tuple[OrderItem, Exception]] = []
        for item in order.items:
            with self._tracer.span(
                "fulfillment.order.release_item",
                {
                    ATTR_ORDER_ID: str(order.id),
                    ATTR_PRODUCT_ID: item.product_id,
                    ATTR_QUANTITY: item.quantity,
                },
            ):
                try:
                    await retry_on_conflict(
                        partial(self._ledger.release, item.product_id, item.quantity),
                        self._config.retry,
                        f"release product {item.product_id}",
                    )
                except Exception as e:
                    logger.error(
                        "Failed to release %d of product %d for order %s",
                        item.quantity,
                        item.product_id,
                        order.id,
                        exc_info=True,
                        extra={
                            "order_id": str(order.id),
                            "product_id": item.product_id,
                            "quantity": item.quantity,
                            "order_status": order.status.value,
                        },
                    )
                    failures.append((item, e))

        if failures:
            error = failures[0][1]
            for item, failure in failures:
                error.add_note(
                    f"order {order.id} ({order.status.value}) did not release "
                    f"{item.quantity} of product {item.product_id}: {failure!r}"
                )
            raise error

    # Queries and administration

    async def get_order(self, order_id: UUID) -> Order:
        """
        Raises:
            OrderNotFoundError: If the order does not exist
        """
        order = await bounded(
            self._store.get_order(order_id), self._config.operation_timeout, "get_order"
        )
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def get_payment(self, order_id: UUID) -> Payment:
        """
        Raises:
            PaymentNotFoundError: If the order has no payment
        """
        payment = await bounded(
            self._store.get_payment(order_id), self._config.operation_timeout, "get_payment"
        )
        if payment is None:
            raise PaymentNotFoundError(order_id)
        return payment

    async def list_orders(self, user_id: int, limit: int = 50, offset: int = 0) -> list[Order]:
        """
        Get a page of a user's orders, newest first.

        Raises:
            ValueError: If ``limit`` is outside 1..order_page_limit or
                ``offset`` is negative
        """
        if not 1 <= limit <= self._config.order_page_limit:
            raise ValueError(
                f"limit must be between 1 and {self._config.order_page_limit}, got {limit}"
            )
        if offset < 0:
            raise ValueError(f"offset must be >= 0, got {offset}")
        return await bounded(
            self._store.list_orders(user_id, limit, offset),
            self._config.operation_timeout,
            "list_orders",
        )

    async def get_available_stock(self, product_id: int) -> int:
        return await self._ledger.get_available(product_id)

    async def restock(self, product_id: int, quantity: int) -> int:
        """Add stock for a product, retrying lost version races."""
        return await retry_on_conflict(
            partial(self._ledger.restock, product_id, quantity),
            self._config.retry,
            f"restock product {product_id}",
        )


__all__ = ["OrderOrchestrator", "build_reservation_plan"]
