"""
Exact monetary amounts.

Money pairs a ``Decimal`` amount with a three-letter currency code. It is
immutable, never touches binary floating point, and refuses to combine
amounts in different currencies.

Example:
    >>> from decimal import Decimal
    >>> price = Money.of("19.99", "INR")
    >>> price.times(3)
    Money(amount=Decimal('59.97'), currency='INR')
    >>> price + Money.of("0.01", "INR")
    Money(amount=Decimal('20.00'), currency='INR')
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fulfillment.exceptions import CurrencyMismatchError


class Money(BaseModel):
    """
    Immutable amount of money in a single currency.

    Attributes:
        amount: Exact decimal amount (floats are rejected)
        currency: ISO 4217 style three-letter uppercase code
    """

    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(..., allow_inf_nan=False)
    currency: str = Field(..., pattern=r"^[A-Z]{3}$")

    @field_validator("amount", mode="before")
    @classmethod
    def _reject_binary_floats(cls, value: Any) -> Any:
        if isinstance(value, (float, bool)):
            raise ValueError(
                f"Money amounts must be Decimal, int or str, not {type(value).__name__}"
            )
        return value

    @classmethod
    def of(cls, amount: Decimal | int | str, currency: str) -> Money:
        """Build a Money value from a decimal-compatible amount."""
        return cls(amount=amount, currency=currency)

    @classmethod
    def zero(cls, currency: str) -> Money:
        """Return zero in the given currency."""
        return cls(amount=Decimal(0), currency=currency)

    @classmethod
    def sum(cls, values: Iterable[Money], currency: str) -> Money:
        """
        Add up Money values that must all be in ``currency``.

        An empty iterable sums to zero.

        Raises:
            CurrencyMismatchError: If any value uses another currency
        """
        total = cls.zero(currency)
        for value in values:
            total = total + value
        return total

    def _check_currency(self, other: Money) -> None:
        if other.currency != self.currency:
            raise CurrencyMismatchError(self.currency, other.currency)

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def times(self, quantity: int) -> Money:
        """Multiply by a whole quantity (e.g. a line item count)."""
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise TypeError(f"quantity must be an int, got {type(quantity).__name__}")
        return Money(amount=self.amount * quantity, currency=self.currency)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount >= other.amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"


__all__ = ["Money"]
