"""
Configuration for the fulfillment core.

This module provides:
- FulfillmentConfig: retry, deadline and paging settings shared by the
  inventory ledger and the order orchestrator
"""

from __future__ import annotations

from dataclasses import dataclass, field

from fulfillment.models import PaymentMethod
from fulfillment.retry import RetryConfig


@dataclass(frozen=True)
class FulfillmentConfig:
    """
    Settings for the ledger and orchestrator.

    Attributes:
        retry: Bounded retry for optimistic version conflicts
        operation_timeout: Deadline in seconds for every store, catalog and
            gateway call. None disables deadlines (tests only).
        default_payment_method: Method used when place_order is not told one
        order_page_limit: Largest page list_orders will return

    Example:
        >>> config = FulfillmentConfig(
        ...     retry=RetryConfig(max_retries=2),
        ...     operation_timeout=2.0,
        ... )
    """

    retry: RetryConfig = field(default_factory=RetryConfig)
    operation_timeout: float | None = 5.0
    default_payment_method: PaymentMethod = PaymentMethod.COD
    order_page_limit: int = 100

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.operation_timeout is not None and self.operation_timeout <= 0:
            raise ValueError(
                f"operation_timeout must be positive or None, got {self.operation_timeout}."
            )

        if self.order_page_limit < 1:
            raise ValueError(f"order_page_limit must be >= 1, got {self.order_page_limit}.")


__all__ = ["FulfillmentConfig"]
