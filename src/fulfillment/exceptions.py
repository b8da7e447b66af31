"""Library exceptions for the fulfillment package."""

from __future__ import annotations

from typing import ClassVar
from uuid import UUID


class FulfillmentError(Exception):
    """
    Base exception for the fulfillment library.

    Every subclass carries a stable ``code`` so callers (an HTTP layer,
    a worker, a CLI) can map failures without matching on messages.
    """

    code: ClassVar[str] = "FULFILLMENT_ERROR"


class InsufficientStockError(FulfillmentError):
    """Raised when a reservation asks for more than is available."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: int, requested: int, available: int) -> None:
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


class ConcurrentModificationError(FulfillmentError):
    """
    Raised when a conditional write loses a version race.

    This is a contention signal rather than a business failure: the caller
    is expected to re-read the row and retry the write.

    Attributes:
        entity: Kind of row that was contended ("inventory", "order", "payment")
        entity_id: Identifier of the contended row
        expected_version: Version the writer read before writing
        actual_version: Version found at write time (None if the row vanished
            or if the writer lost an insert race)
    """

    code = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        entity: str,
        entity_id: int | UUID,
        expected_version: int,
        actual_version: int | None = None,
    ) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        if actual_version is not None:
            detail = f"found version {actual_version}"
        else:
            detail = "row was not found or was modified"
        super().__init__(
            f"Concurrent modification of {entity} {entity_id}: "
            f"expected version {expected_version}, {detail}"
        )


class RetriesExhaustedError(FulfillmentError):
    """
    Raised when a contended operation still conflicts after every retry.

    Attributes:
        operation: Name of the operation that was retried
        attempts: Number of attempts made (including the first one)
        last_error: The conflict raised by the final attempt
    """

    code = "RETRIES_EXHAUSTED"

    def __init__(self, operation: str, attempts: int, last_error: Exception) -> None:
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{operation} failed after {attempts} attempts: {last_error}")


class InvalidOrderStateTransitionError(FulfillmentError):
    """Raised when an order or payment is asked to move to a non-adjacent state."""

    code = "INVALID_STATE_TRANSITION"

    def __init__(self, entity: str, entity_id: UUID, current: str, target: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {entity} {entity_id} from {current} to {target}")


class CurrencyMismatchError(FulfillmentError):
    """Raised when two Money values with different currencies are combined."""

    code = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Currency mismatch: expected {expected}, got {actual}")


class EmptyCartError(FulfillmentError):
    """Raised when an order is placed from a cart with no lines."""

    code = "EMPTY_CART"

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(f"Cannot place an order with an empty cart (user {user_id})")


class InventoryNotFoundError(FulfillmentError):
    """Raised when an inventory row is required but the product was never stocked."""

    code = "INVENTORY_NOT_FOUND"

    def __init__(self, product_id: int) -> None:
        self.product_id = product_id
        super().__init__(f"Inventory not found for product {product_id}")


class ProductNotFoundError(FulfillmentError):
    """Raised by a catalog when it has no price for a product."""

    code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: int) -> None:
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class OrderNotFoundError(FulfillmentError):
    """Raised when an order cannot be found."""

    code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: UUID) -> None:
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class PaymentNotFoundError(FulfillmentError):
    """Raised when an order has no payment record."""

    code = "PAYMENT_NOT_FOUND"

    def __init__(self, order_id: UUID) -> None:
        self.order_id = order_id
        super().__init__(f"Payment not found for order {order_id}")


class PaymentMethodError(FulfillmentError):
    """Raised when an operation needs a different payment method than the one on file."""

    code = "PAYMENT_METHOD_MISMATCH"

    def __init__(self, order_id: UUID, expected: str, actual: str) -> None:
        self.order_id = order_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Payment for order {order_id} uses method {actual}, operation requires {expected}"
        )


class PaymentVerificationError(FulfillmentError):
    """Raised when a gateway callback signature does not verify."""

    code = "PAYMENT_VERIFICATION_FAILED"

    def __init__(self, order_id: UUID) -> None:
        self.order_id = order_id
        super().__init__(f"Gateway signature verification failed for order {order_id}")


class PaymentGatewayError(FulfillmentError):
    """Raised when the payment gateway cannot be reached or answers garbage."""

    code = "PAYMENT_GATEWAY_ERROR"


class StorageError(FulfillmentError):
    """Raised when the backing store fails."""

    code = "STORAGE_ERROR"


class OperationTimeoutError(StorageError):
    """
    Raised when a suspension point exceeds its deadline.

    Attributes:
        operation: Name of the bounded operation
        timeout: The deadline in seconds
    """

    code = "OPERATION_TIMEOUT"

    def __init__(self, operation: str, timeout: float) -> None:
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} did not complete within {timeout:.3f}s")


__all__ = [
    "FulfillmentError",
    "InsufficientStockError",
    "ConcurrentModificationError",
    "RetriesExhaustedError",
    "InvalidOrderStateTransitionError",
    "CurrencyMismatchError",
    "EmptyCartError",
    "InventoryNotFoundError",
    "ProductNotFoundError",
    "OrderNotFoundError",
    "PaymentNotFoundError",
    "PaymentMethodError",
    "PaymentVerificationError",
    "PaymentGatewayError",
    "StorageError",
    "OperationTimeoutError",
]
