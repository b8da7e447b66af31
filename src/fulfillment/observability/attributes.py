"""
Standard span attributes for fulfillment.

Attribute names used across the ledger, the orchestrator and the stores,
so that spans from different components line up in a trace backend.
Database attributes follow OpenTelemetry semantic conventions.

Example:
    >>> from fulfillment.observability.attributes import ATTR_ORDER_ID
    >>>
    >>> with tracer.span("fulfillment.order.refund", {ATTR_ORDER_ID: str(order_id)}):
    ...     pass
"""

# =============================================================================
# Inventory Attributes
# =============================================================================

ATTR_PRODUCT_ID = "fulfillment.product.id"
"""Product whose inventory row is touched (integer)."""

ATTR_QUANTITY = "fulfillment.quantity"
"""Units reserved, released or restocked (integer)."""

ATTR_EXPECTED_VERSION = "fulfillment.expected_version"
"""Version a conditional write is keyed on (integer)."""

# =============================================================================
# Order and Payment Attributes
# =============================================================================

ATTR_ORDER_ID = "fulfillment.order.id"
"""Order identifier (UUID string)."""

ATTR_ORDER_STATUS = "fulfillment.order.status"
"""Order lifecycle state (string)."""

ATTR_USER_ID = "fulfillment.user.id"
"""Customer who owns the order or cart (integer)."""

ATTR_LINE_COUNT = "fulfillment.order.line_count"
"""Number of distinct products in a placement (integer)."""

ATTR_PAYMENT_METHOD = "fulfillment.payment.method"
"""COD or ONLINE (string)."""

ATTR_PAYMENT_STATUS = "fulfillment.payment.status"
"""Target payment lifecycle state (string)."""

# =============================================================================
# Database Attributes (OpenTelemetry Semantic Conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (e.g., 'sqlite', 'postgresql')."""

ATTR_DB_OPERATION = "db.operation"
"""Database operation type (e.g., 'INSERT', 'UPDATE')."""


__all__ = [
    "ATTR_PRODUCT_ID",
    "ATTR_QUANTITY",
    "ATTR_EXPECTED_VERSION",
    "ATTR_ORDER_ID",
    "ATTR_ORDER_STATUS",
    "ATTR_USER_ID",
    "ATTR_LINE_COUNT",
    "ATTR_PAYMENT_METHOD",
    "ATTR_PAYMENT_STATUS",
    "ATTR_DB_SYSTEM",
    "ATTR_DB_OPERATION",
]
