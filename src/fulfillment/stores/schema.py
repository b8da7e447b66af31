"""
Database schema for the fulfillment stores.

Provides the DDL for each supported backend. Every statement is idempotent
(``IF NOT EXISTS``), so ``initialize()`` can run on every startup.

Tables:
    inventory: one row per stocked product, versioned
    orders: order header, versioned
    order_items: immutable line items, cascade-deleted with the order
    payments: one row per order (unique order_id), versioned

Example:
    >>> from fulfillment.stores.schema import get_schema
    >>> ddl = get_schema("sqlite")
"""

from typing import Literal

Backend = Literal["postgresql", "sqlite"]

POSTGRESQL_SCHEMA = """
CREATE TABLE IF NOT EXISTS inventory (
    product_id BIGINT PRIMARY KEY,
    available_quantity INTEGER NOT NULL CHECK (available_quantity >= 0),
    version INTEGER NOT NULL DEFAULT 1,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS orders (
    id UUID PRIMARY KEY,
    user_id BIGINT NOT NULL,
    status VARCHAR(32) NOT NULL,
    total_amount NUMERIC NOT NULL,
    currency CHAR(3) NOT NULL,
    version INTEGER NOT NULL DEFAULT 1,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_orders_user_created
    ON orders (user_id, created_at DESC);

CREATE TABLE IF NOT EXISTS order_items (
    order_id UUID NOT NULL REFERENCES orders (id) ON DELETE CASCADE,
    line_number INTEGER NOT NULL,
    product_id BIGINT NOT NULL,
    quantity INTEGER NOT NULL CHECK (quantity > 0),
    unit_price NUMERIC NOT NULL,
    currency CHAR(3) NOT NULL,
    PRIMARY KEY (order_id, line_number)
);

CREATE TABLE IF NOT EXISTS payments (
    id UUID PRIMARY KEY,
    order_id UUID NOT NULL UNIQUE REFERENCES orders (id) ON DELETE CASCADE,
    method VARCHAR(16) NOT NULL,
    status VARCHAR(16) NOT NULL,
    amount NUMERIC NOT NULL,
    currency CHAR(3) NOT NULL,
    transaction_id VARCHAR(255),
    failure_reason TEXT,
    version INTEGER NOT NULL DEFAULT 1,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);
"""

# SQLite adaptations: UUIDs and timestamps as TEXT (hyphenated / ISO 8601),
# amounts as TEXT so no value ever passes through a binary float.
SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS inventory (
    product_id INTEGER PRIMARY KEY,
    available_quantity INTEGER NOT NULL CHECK (available_quantity >= 0),
    version INTEGER NOT NULL DEFAULT 1,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS orders (
    id TEXT PRIMARY KEY,
    user_id INTEGER NOT NULL,
    status TEXT NOT NULL,
    total_amount TEXT NOT NULL,
    currency TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_orders_user_created
    ON orders (user_id, created_at DESC);

CREATE TABLE IF NOT EXISTS order_items (
    order_id TEXT NOT NULL REFERENCES orders (id) ON DELETE CASCADE,
    line_number INTEGER NOT NULL,
    product_id INTEGER NOT NULL,
    quantity INTEGER NOT NULL CHECK (quantity > 0),
    unit_price TEXT NOT NULL,
    currency TEXT NOT NULL,
    PRIMARY KEY (order_id, line_number)
);

CREATE TABLE IF NOT EXISTS payments (
    id TEXT PRIMARY KEY,
    order_id TEXT NOT NULL UNIQUE REFERENCES orders (id) ON DELETE CASCADE,
    method TEXT NOT NULL,
    status TEXT NOT NULL,
    amount TEXT NOT NULL,
    currency TEXT NOT NULL,
    transaction_id TEXT,
    failure_reason TEXT,
    version INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_SCHEMAS: dict[str, str] = {
    "postgresql": POSTGRESQL_SCHEMA,
    "sqlite": SQLITE_SCHEMA,
}


def get_schema(backend: Backend = "postgresql") -> str:
    """
    Get the DDL for a backend.

    Args:
        backend: "postgresql" or "sqlite"

    Returns:
        SQL script creating every table and index

    Raises:
        ValueError: If the backend is not supported
    """
    try:
        return _SCHEMAS[backend]
    except KeyError:
        raise ValueError(
            f"Unknown backend: {backend!r}. Available: {sorted(_SCHEMAS)}"
        ) from None


def split_statements(script: str) -> list[str]:
    """Split a schema script into single statements (for drivers without executescript)."""
    return [stmt.strip() for stmt in script.split(";") if stmt.strip()]


__all__ = [
    "POSTGRESQL_SCHEMA",
    "SQLITE_SCHEMA",
    "get_schema",
    "split_statements",
]
