"""
Span creation for the ledger, the orchestrator and the stores.

Every component receives a ``Tracer`` in its constructor (or builds one
with :func:`create_tracer`) and wraps its suspension points in
``tracer.span(...)``. Three implementations exist:

- NullTracer: spans cost nothing; the default without the ``telemetry`` extra
- OpenTelemetryTracer: spans go to the globally configured OTel provider
- MockTracer: spans are recorded in a list so tests can assert on them

Example:
    >>> tracer = MockTracer()
    >>> ledger = InventoryLedger(store, tracer=tracer)
    >>> await ledger.restock(1, 5)
    >>> tracer.span_names
    ['fulfillment.ledger.restock']
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, NamedTuple, Protocol, runtime_checkable

if TYPE_CHECKING:
    from opentelemetry.trace import Span

try:
    from opentelemetry import trace

    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False
    trace = None  # type: ignore[assignment]


@runtime_checkable
class Tracer(Protocol):
    """What fulfillment components need from a tracer."""

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        """
        Open a span around a block of work.

        Args:
            name: Dotted span name, e.g. "fulfillment.order.place"
            attributes: Values keyed by the ATTR_* constants

        Returns:
            Context manager yielding the live Span, or None when spans
            are not exported
        """
        ...

    @property
    def enabled(self) -> bool:
        """Whether spans leave the process."""
        ...


class NullTracer:
    """Tracer that opens no spans."""

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[None]:
        return contextlib.nullcontext()

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Tracer backed by ``opentelemetry.trace``.

    OpenTelemetry attribute values must be str, bool, int, float or a
    sequence of those; the SDK logs a warning for None and discards it.
    None-valued entries are left off the span here instead, so a caller
    can pass an Optional value without filtering it first.

    Raises:
        ImportError: If the ``telemetry`` extra is not installed
    """

    def __init__(self, tracer_name: str) -> None:
        if not OTEL_AVAILABLE:
            raise ImportError(
                "OpenTelemetryTracer needs opentelemetry-api; "
                "install fulfillment-py[telemetry]"
            )
        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        cleaned = {k: v for k, v in (attributes or {}).items() if v is not None}
        return self._tracer.start_as_current_span(name, attributes=cleaned)

    @property
    def enabled(self) -> bool:
        return True


class RecordedSpan(NamedTuple):
    name: str
    attributes: dict[str, Any] | None


class MockTracer:
    """
    Tracer that keeps every span it was asked to open.

    ``spans`` holds ``(name, attributes)`` pairs in the order they were
    opened, so nested spans appear parent first.

    Example:
        >>> tracer = MockTracer()
        >>> orchestrator = OrderOrchestrator(store, catalog, tracer=tracer)
        >>> await orchestrator.place_order(cart)
        >>> tracer.span_names[0]
        'fulfillment.order.place'
    """

    def __init__(self) -> None:
        self.spans: list[RecordedSpan] = []

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Iterator[None]:
        self.spans.append(RecordedSpan(name, attributes))
        yield None

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [recorded.name for recorded in self.spans]

    def clear(self) -> None:
        self.spans.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """
    Pick a tracer for a component.

    Returns an OpenTelemetryTracer when tracing is wanted and the
    ``telemetry`` extra is installed, and a NullTracer otherwise.
    """
    if enable_tracing and OTEL_AVAILABLE:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "OTEL_AVAILABLE",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "RecordedSpan",
    "create_tracer",
]
