"""
fulfillment - Order placement and inventory reservation core.

This library provides:
- Inventory ledger with optimistic (version-checked) reservations
- Order placement with all-or-nothing stock reservation and rollback
- Coupled order/payment state machines (COD and ONLINE payments)
- Stores for In-Memory, SQLite and PostgreSQL backends
- Exact Money arithmetic with currency checks
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fulfillment-py")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from fulfillment.catalog import Catalog, InMemoryCatalog
from fulfillment.config import FulfillmentConfig
from fulfillment.exceptions import (
    ConcurrentModificationError,
    CurrencyMismatchError,
    EmptyCartError,
    FulfillmentError,
    InsufficientStockError,
    InvalidOrderStateTransitionError,
    InventoryNotFoundError,
    OperationTimeoutError,
    OrderNotFoundError,
    PaymentGatewayError,
    PaymentMethodError,
    PaymentNotFoundError,
    PaymentVerificationError,
    ProductNotFoundError,
    RetriesExhaustedError,
    StorageError,
)
from fulfillment.inventory import InventoryLedger
from fulfillment.models import (
    CartLine,
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
from fulfillment.orders import OrderOrchestrator
from fulfillment.payments import (
    CallbackSignatureVerifier,
    GatewayResult,
    InMemoryPaymentGateway,
    PaymentGateway,
)
from fulfillment.retry import RetryConfig
from fulfillment.stores import (
    FulfillmentStore,
    InMemoryFulfillmentStore,
    PostgreSQLFulfillmentStore,
)

__all__ = [
    "__version__",
    # Money and models
    "Money",
    "CartLine",
    "CartSnapshot",
    "InventoryRecord",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    # Components
    "InventoryLedger",
    "OrderOrchestrator",
    "Catalog",
    "InMemoryCatalog",
    "PaymentGateway",
    "GatewayResult",
    "InMemoryPaymentGateway",
    "CallbackSignatureVerifier",
    # Stores
    "FulfillmentStore",
    "InMemoryFulfillmentStore",
    "PostgreSQLFulfillmentStore",
    # Configuration
    "FulfillmentConfig",
    "RetryConfig",
    # Exceptions
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
