"""
Shared test fixtures for the fulfillment library.

This module provides reusable test helpers:
- inr: build Money in the default test currency
- PRICES: catalog prices for the standard test products
- FaultyStore: in-memory store with injectable conflicts, errors and delays

Usage:
    from tests.fixtures import PRICES, FaultyStore, inr
"""

from fulfillment.money import Money
from tests.fixtures.stores import FaultyStore


def inr(amount: str) -> Money:
    """Money in INR from a decimal string."""
    return Money.of(amount, "INR")


# Products 1-3 are the standard test catalog
PRICES: dict[int, Money] = {
    1: inr("250.00"),
    2: inr("99.50"),
    3: inr("1200.00"),
}

__all__ = ["FaultyStore", "PRICES", "inr"]
