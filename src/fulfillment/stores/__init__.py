"""Store implementations for the fulfillment library."""

from fulfillment.stores.in_memory import InMemoryFulfillmentStore
from fulfillment.stores.interface import FulfillmentStore
from fulfillment.stores.postgresql import PostgreSQLFulfillmentStore
from fulfillment.stores.schema import get_schema

# SQLite support is optional - only import if aiosqlite is available
try:
    from fulfillment.stores.sqlite import SQLiteFulfillmentStore  # noqa: F401

    _SQLITE_AVAILABLE = True
except ImportError:
    _SQLITE_AVAILABLE = False

__all__ = [
    # Abstract base classes
    "FulfillmentStore",
    # Concrete implementations
    "InMemoryFulfillmentStore",
    "PostgreSQLFulfillmentStore",
    # Schema
    "get_schema",
]

# Add SQLiteFulfillmentStore to __all__ only if available
if _SQLITE_AVAILABLE:
    __all__.append("SQLiteFulfillmentStore")
