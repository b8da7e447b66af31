"""
Product catalog collaborator.

The core never manages products; it only asks the catalog what a product
costs at the moment an order is placed.
"""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from fulfillment.exceptions import ProductNotFoundError
from fulfillment.money import Money


@runtime_checkable
class Catalog(Protocol):
    """Price lookup for products."""

    async def get_price(self, product_id: int) -> Money:
        """
        Get the current unit price of a product.

        Raises:
            ProductNotFoundError: If the product does not exist
        """
        ...


class InMemoryCatalog:
    """
    Catalog backed by a dictionary.

    Example:
        >>> catalog = InMemoryCatalog({1: Money.of("10.00", "INR")})
        >>> await catalog.get_price(1)
        Money(amount=Decimal('10.00'), currency='INR')
    """

    def __init__(self, prices: dict[int, Money] | None = None) -> None:
        self._prices: dict[int, Money] = dict(prices or {})
        self._lock = asyncio.Lock()

    async def get_price(self, product_id: int) -> Money:
        async with self._lock:
            price = self._prices.get(product_id)
        if price is None:
            raise ProductNotFoundError(product_id)
        return price

    async def set_price(self, product_id: int, price: Money) -> None:
        """Set or change a product's price. Existing orders keep their snapshot."""
        async with self._lock:
            self._prices[product_id] = price

    async def remove(self, product_id: int) -> None:
        async with self._lock:
            self._prices.pop(product_id, None)


__all__ = ["Catalog", "InMemoryCatalog"]
