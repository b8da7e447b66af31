"""
Observability utilities for fulfillment.

Tracing is composition based: components accept a ``Tracer`` and fall back
to ``create_tracer(__name__, enable_tracing)``. OpenTelemetry is optional;
without it every component gets a ``NullTracer``.

Example:
    >>> from fulfillment.observability import MockTracer
    >>> from fulfillment.inventory import InventoryLedger
    >>>
    >>> tracer = MockTracer()
    >>> ledger = InventoryLedger(store, tracer=tracer)
"""

from fulfillment.observability.attributes import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_EXPECTED_VERSION,
    ATTR_LINE_COUNT,
    ATTR_ORDER_ID,
    ATTR_ORDER_STATUS,
    ATTR_PAYMENT_METHOD,
    ATTR_PAYMENT_STATUS,
    ATTR_PRODUCT_ID,
    ATTR_QUANTITY,
    ATTR_USER_ID,
)
from fulfillment.observability.tracer import (
    OTEL_AVAILABLE,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    RecordedSpan,
    Tracer,
    create_tracer,
)

__all__ = [
    "OTEL_AVAILABLE",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "RecordedSpan",
    "create_tracer",
    "ATTR_DB_OPERATION",
    "ATTR_DB_SYSTEM",
    "ATTR_EXPECTED_VERSION",
    "ATTR_LINE_COUNT",
    "ATTR_ORDER_ID",
    "ATTR_ORDER_STATUS",
    "ATTR_PAYMENT_METHOD",
    "ATTR_PAYMENT_STATUS",
    "ATTR_PRODUCT_ID",
    "ATTR_QUANTITY",
    "ATTR_USER_ID",
]
