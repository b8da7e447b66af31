"""
Payment gateway collaborator.

The orchestrator charges ONLINE payments through a ``PaymentGateway``. The
gateway only reports what happened; moving the payment and its order to
the matching states is the orchestrator's job.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol, runtime_checkable
from uuid import UUID, uuid4

from fulfillment.models import Payment


@dataclass(frozen=True)
class GatewayResult:
    """
    Outcome of a charge attempt.

    Attributes:
        success: Whether the charge went through
        transaction_id: Gateway reference for a successful charge
        failure_reason: Why the charge was declined
    """

    success: bool
    transaction_id: str | None = None
    failure_reason: str | None = None

    def __post_init__(self) -> None:
        if self.success and not self.transaction_id:
            raise ValueError("A successful charge must carry a transaction_id")

    @classmethod
    def approved(cls, transaction_id: str) -> GatewayResult:
        return cls(success=True, transaction_id=transaction_id)

    @classmethod
    def declined(cls, reason: str) -> GatewayResult:
        return cls(success=False, failure_reason=reason)


@runtime_checkable
class PaymentGateway(Protocol):
    """Charges a payment with an external provider."""

    async def charge(self, payment: Payment) -> GatewayResult:
        """
        Charge ``payment.amount``.

        A decline is a normal result, not an exception.

        Raises:
            PaymentGatewayError: If the provider cannot be reached
        """
        ...


class InMemoryPaymentGateway:
    """
    Gateway for tests and development.

    Approves every charge unless the order was marked to decline.

    Example:
        >>> gateway = InMemoryPaymentGateway()
        >>> gateway.decline_order(order.id, "card declined")
    """

    def __init__(self) -> None:
        self._declines: dict[UUID, str] = {}
        self.charges: list[Payment] = []
        self._lock = asyncio.Lock()

    def decline_order(self, order_id: UUID, reason: str = "declined") -> None:
        self._declines[order_id] = reason

    async def charge(self, payment: Payment) -> GatewayResult:
        async with self._lock:
            self.charges.append(payment)
        reason = self._declines.get(payment.order_id)
        if reason is not None:
            return GatewayResult.declined(reason)
        return GatewayResult.approved(f"pay_{uuid4().hex[:14]}")


__all__ = ["GatewayResult", "PaymentGateway", "InMemoryPaymentGateway"]
