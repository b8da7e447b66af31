"""
Checkout Example

This example walks an order through its life:
- Stocking products
- Placing an order from a cart snapshot
- Paying online through a gateway
- Refunding and getting the stock back
- What a failed checkout leaves behind (nothing)

Run with: python examples/checkout_example.py
"""

import asyncio
import logging

from fulfillment import (
    CartSnapshot,
    InMemoryCatalog,
    InMemoryFulfillmentStore,
    InMemoryPaymentGateway,
    InsufficientStockError,
    Money,
    OrderOrchestrator,
    PaymentMethod,
)

# =============================================================================
# Step 1: Catalog prices
# =============================================================================
# The core never manages products; it only asks the catalog for prices.

KEYBOARD = 1
MOUSE = 2

PRICES = {
    KEYBOARD: Money.of("2499.00", "INR"),
    MOUSE: Money.of("799.50", "INR"),
}


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 60)
    print("Order Fulfillment Example")
    print("=" * 60)

    # =========================================================================
    # Step 2: Wire the orchestrator
    # =========================================================================
    store = InMemoryFulfillmentStore(enable_tracing=False)
    gateway = InMemoryPaymentGateway()
    orchestrator = OrderOrchestrator(
        store,
        InMemoryCatalog(PRICES),
        gateway=gateway,
        enable_tracing=False,
    )

    print("\n1. Stocking products:")
    await orchestrator.restock(KEYBOARD, 5)
    await orchestrator.restock(MOUSE, 1)
    print(f"   Keyboards: {await orchestrator.get_available_stock(KEYBOARD)}")
    print(f"   Mice: {await orchestrator.get_available_stock(MOUSE)}")

    # =========================================================================
    # Step 3: Place an order
    # =========================================================================
    print("\n2. Placing an order:")
    cart = CartSnapshot.of(user_id=7, lines=[(KEYBOARD, 2), (MOUSE, 1)])
    order = await orchestrator.place_order(cart, PaymentMethod.ONLINE)
    print(f"   Order: {order.id}")
    print(f"   Status: {order.status.value}")
    print(f"   Total: {order.total_amount}")
    print(f"   Keyboards left: {await orchestrator.get_available_stock(KEYBOARD)}")

    # =========================================================================
    # Step 4: Pay through the gateway
    # =========================================================================
    print("\n3. Charging the payment:")
    order = await orchestrator.process_online_payment(order.id)
    payment = await orchestrator.get_payment(order.id)
    print(f"   Order status: {order.status.value}")
    print(f"   Payment status: {payment.status.value}")
    print(f"   Transaction: {payment.transaction_id}")

    # =========================================================================
    # Step 5: A checkout that cannot be filled
    # =========================================================================
    print("\n4. Ordering a mouse that is out of stock:")
    try:
        await orchestrator.place_order(CartSnapshot.of(8, [(KEYBOARD, 1), (MOUSE, 1)]))
    except InsufficientStockError as e:
        print(f"   Checkout blocked: {e}")
    print(f"   Keyboards left (unchanged): {await orchestrator.get_available_stock(KEYBOARD)}")

    # =========================================================================
    # Step 6: Refund
    # =========================================================================
    print("\n5. Refunding the first order:")
    order = await orchestrator.refund(order.id)
    print(f"   Order status: {order.status.value}")
    print(f"   Keyboards: {await orchestrator.get_available_stock(KEYBOARD)}")
    print(f"   Mice: {await orchestrator.get_available_stock(MOUSE)}")

    print("\n6. Order history for user 7:")
    for past in await orchestrator.list_orders(7):
        print(f"   {past.created_at:%Y-%m-%d %H:%M} {past.status.value:<10} {past.total_amount}")

    print("\n" + "=" * 60)
    print("Example completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
