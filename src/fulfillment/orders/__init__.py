"""Order placement and payment orchestration."""

from fulfillment.orders.orchestrator import OrderOrchestrator, build_reservation_plan

__all__ = ["OrderOrchestrator", "build_reservation_plan"]
