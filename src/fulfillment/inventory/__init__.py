"""Inventory reservation for the fulfillment library."""

from fulfillment.inventory.ledger import InventoryLedger

__all__ = ["InventoryLedger"]
