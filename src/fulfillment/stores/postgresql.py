"""
PostgreSQL fulfillment store implementation.

Production store using PostgreSQL with async support via SQLAlchemy and
asyncpg. Every conditional write is a single ``UPDATE ... WHERE version =
:expected RETURNING ...`` statement, so the database linearizes competing
writers without any application-level lock.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fulfillment.exceptions import (
    ConcurrentModificationError,
    InventoryNotFoundError,
    OrderNotFoundError,
    PaymentNotFoundError,
    StorageError,
)
from fulfillment.models import (
    InventoryRecord,
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
)
from fulfillment.money import Money
from fulfillment.observability import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_EXPECTED_VERSION,
    ATTR_ORDER_ID,
    ATTR_PRODUCT_ID,
    Tracer,
    create_tracer,
)
from fulfillment.stores.interface import FulfillmentStore
from fulfillment.stores.schema import get_schema, split_statements

logger = logging.getLogger(__name__)

_ORDER_COLUMNS = "id, user_id, status, total_amount, currency, version, created_at, updated_at"
_PAYMENT_COLUMNS = (
    "id, order_id, method, status, amount, currency, "
    "transaction_id, failure_reason, version, created_at, updated_at"
)


class PostgreSQLFulfillmentStore(FulfillmentStore):
    """
    PostgreSQL implementation of the fulfillment store.

    Each call opens its own session from the factory and commits before
    returning, so a store instance can be shared by any number of tasks.

    Example:
        >>> engine = create_async_engine("postgresql+asyncpg://localhost/shop")
        >>> session_factory = async_sessionmaker(engine, expire_on_commit=False)
        >>> store = PostgreSQLFulfillmentStore(session_factory)
        >>> await store.initialize()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the PostgreSQL store.

        Args:
            session_factory: SQLAlchemy async session factory for database access
            tracer: Optional custom Tracer instance
            enable_tracing: If True and OpenTelemetry is available, emit traces.
                Ignored if tracer is explicitly provided.
        """
        self._session_factory = session_factory
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    async def initialize(self) -> None:
        """Create the fulfillment tables if they do not exist."""
        async with self._session_factory() as session:
            for statement in split_statements(get_schema("postgresql")):
                await session.execute(text(statement))
            await session.commit()
        logger.info("Initialized PostgreSQL fulfillment store schema")

    def _span_attributes(self, operation: str, **extra: Any) -> dict[str, Any]:
        return {ATTR_DB_SYSTEM: "postgresql", ATTR_DB_OPERATION: operation, **extra}

    # Inventory

    async def get_inventory(self, product_id: int) -> InventoryRecord | None:
        async with self._session_factory() as session:
            result = await session.execute(
                text(
                    """
                    SELECT product_id, available_quantity, version, updated_at
                    FROM inventory
                    WHERE product_id = :product_id
                    """
                ),
                {"product_id": product_id},
            )
            row = result.fetchone()
            return self._row_to_inventory(row) if row else None

    async def insert_inventory(self, product_id: int, quantity: int) -> InventoryRecord:
        if quantity < 0:
            raise ValueError(f"Inventory quantity must be >= 0, got {quantity}")

        with self._tracer.span(
            "postgresql_store.insert_inventory",
            self._span_attributes("INSERT", **{ATTR_PRODUCT_ID: product_id}),
        ):
            async with self._session_factory() as session:
                try:
                    result = await session.execute(
                        text(
                            """
                            INSERT INTO inventory (product_id, available_quantity, version, updated_at)
                            VALUES (:product_id, :quantity, 1, :updated_at)
                            RETURNING product_id, available_quantity, version, updated_at
                            """
                        ),
                        {
                            "product_id": product_id,
                            "quantity": quantity,
                            "updated_at": datetime.now(UTC),
                        },
                    )
                    row = result.fetchone()
                    await session.commit()
                except IntegrityError as e:
                    await session.rollback()
                    logger.debug(f"Inventory row for product {product_id} already exists")
                    raise ConcurrentModificationError("inventory", product_id, 0) from e
                return self._row_to_inventory(row)

    async def compare_and_set_inventory(
        self,
        product_id: int,
        expected_version: int,
        new_quantity: int,
    ) -> InventoryRecord:
        if new_quantity < 0:
            raise ValueError(f"Inventory quantity must be >= 0, got {new_quantity}")

        with self._tracer.span(
            "postgresql_store.compare_and_set_inventory",
            self._span_attributes(
                "UPDATE",
                **{ATTR_PRODUCT_ID: product_id, ATTR_EXPECTED_VERSION: expected_version},
            ),
        ):
            async with self._session_factory() as session:
                result = await session.execute(
                    text(
                        """
                        UPDATE inventory
                        SET available_quantity = :quantity,
                            version = version + 1,
                            updated_at = :updated_at
                        WHERE product_id = :product_id AND version = :expected_version
                        RETURNING product_id, available_quantity, version, updated_at
                        """
                    ),
                    {
                        "quantity": new_quantity,
                        "updated_at": datetime.now(UTC),
                        "product_id": product_id,
                        "expected_version": expected_version,
                    },
                )
                row = result.fetchone()
                if row is not None:
                    await session.commit()
                    return self._row_to_inventory(row)

                await session.rollback()
                actual = await self._current_version(session, "inventory", "product_id", product_id)
                if actual is None:
                    raise InventoryNotFoundError(product_id)
                logger.debug(
                    f"Version conflict on inventory {product_id}: "
                    f"expected={expected_version}, actual={actual}"
                )
                raise ConcurrentModificationError(
                    "inventory", product_id, expected_version, actual
                )

    # Orders and payments

    async def insert_order(self, order: Order, payment: Payment) -> None:
        if payment.order_id != order.id:
            raise ValueError(f"Payment {payment.id} does not belong to order {order.id}")

        with self._tracer.span(
            "postgresql_store.insert_order",
            self._span_attributes("INSERT", **{ATTR_ORDER_ID: str(order.id)}),
        ):
            async with self._session_factory() as session:
                try:
                    await session.execute(
                        text(
                            f"""
                            INSERT INTO orders ({_ORDER_COLUMNS})
                            VALUES (
                                :id, :user_id, :status, :total_amount, :currency,
                                :version, :created_at, :updated_at
                            )
                            """  # nosec B608 - column list is a module constant
                        ),
                        {
                            "id": order.id,
                            "user_id": order.user_id,
                            "status": order.status.value,
                            "total_amount": order.total_amount.amount,
                            "currency": order.currency,
                            "version": order.version,
                            "created_at": order.created_at,
                            "updated_at": order.updated_at,
                        },
                    )
                    await session.execute(
                        text(
                            """
                            INSERT INTO order_items (
                                order_id, line_number, product_id, quantity, unit_price, currency
                            )
                            VALUES (
                                :order_id, :line_number, :product_id, :quantity,
                                :unit_price, :currency
                            )
                            """
                        ),
                        [
                            {
                                "order_id": order.id,
                                "line_number": line_number,
                                "product_id": item.product_id,
                                "quantity": item.quantity,
                                "unit_price": item.unit_price.amount,
                                "currency": item.unit_price.currency,
                            }
                            for line_number, item in enumerate(order.items, start=1)
                        ],
                    )
                    await session.execute(
                        text(
                            f"""
                            INSERT INTO payments ({_PAYMENT_COLUMNS})
                            VALUES (
                                :id, :order_id, :method, :status, :amount, :currency,
                                :transaction_id, :failure_reason, :version,
                                :created_at, :updated_at
                            )
                            """  # nosec B608 - column list is a module constant
                        ),
                        {
                            "id": payment.id,
                            "order_id": payment.order_id,
                            "method": payment.method.value,
                            "status": payment.status.value,
                            "amount": payment.amount.amount,
                            "currency": payment.amount.currency,
                            "transaction_id": payment.transaction_id,
                            "failure_reason": payment.failure_reason,
                            "version": payment.version,
                            "created_at": payment.created_at,
                            "updated_at": payment.updated_at,
                        },
                    )
                    await session.commit()
                except IntegrityError as e:
                    await session.rollback()
                    raise StorageError(f"Could not insert order {order.id}: {e}") from e

        logger.debug(f"Inserted order {order.id} with {len(order.items)} items")

    async def get_order(self, order_id: UUID) -> Order | None:
        async with self._session_factory() as session:
            result = await session.execute(
                text(f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = :id"),  # nosec B608
                {"id": order_id},
            )
            row = result.fetchone()
            if row is None:
                return None
            return await self._load_order(session, row)

    async def get_payment(self, order_id: UUID) -> Payment | None:
        async with self._session_factory() as session:
            result = await session.execute(
                text(
                    f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE order_id = :order_id"  # nosec B608
                ),
                {"order_id": order_id},
            )
            row = result.fetchone()
            return self._row_to_payment(row) if row else None

    async def list_orders(self, user_id: int, limit: int, offset: int = 0) -> list[Order]:
        async with self._session_factory() as session:
            result = await session.execute(
                text(
                    f"""
                    SELECT {_ORDER_COLUMNS}
                    FROM orders
                    WHERE user_id = :user_id
                    ORDER BY created_at DESC
                    LIMIT :limit OFFSET :offset
                    """  # nosec B608
                ),
                {"user_id": user_id, "limit": limit, "offset": offset},
            )
            rows = result.fetchall()
            return [await self._load_order(session, row) for row in rows]

    async def update_order_and_payment(
        self,
        order: Order,
        payment: Payment,
    ) -> tuple[Order, Payment]:
        with self._tracer.span(
            "postgresql_store.update_order_and_payment",
            self._span_attributes(
                "UPDATE",
                **{ATTR_ORDER_ID: str(order.id), ATTR_EXPECTED_VERSION: order.version},
            ),
        ):
            async with self._session_factory() as session:
                result = await session.execute(
                    text(
                        """
                        UPDATE orders
                        SET status = :status, version = version + 1, updated_at = :updated_at
                        WHERE id = :id AND version = :expected_version
                        RETURNING version
                        """
                    ),
                    {
                        "status": order.status.value,
                        "updated_at": order.updated_at,
                        "id": order.id,
                        "expected_version": order.version,
                    },
                )
                if result.fetchone() is None:
                    await session.rollback()
                    actual = await self._current_version(session, "orders", "id", order.id)
                    if actual is None:
                        raise OrderNotFoundError(order.id)
                    raise ConcurrentModificationError("order", order.id, order.version, actual)

                result = await session.execute(
                    text(
                        """
                        UPDATE payments
                        SET status = :status,
                            transaction_id = :transaction_id,
                            failure_reason = :failure_reason,
                            version = version + 1,
                            updated_at = :updated_at
                        WHERE id = :id AND order_id = :order_id AND version = :expected_version
                        RETURNING version
                        """
                    ),
                    {
                        "status": payment.status.value,
                        "transaction_id": payment.transaction_id,
                        "failure_reason": payment.failure_reason,
                        "updated_at": payment.updated_at,
                        "id": payment.id,
                        "order_id": order.id,
                        "expected_version": payment.version,
                    },
                )
                if result.fetchone() is None:
                    await session.rollback()
                    actual = await self._current_version(session, "payments", "id", payment.id)
                    if actual is None:
                        raise PaymentNotFoundError(order.id)
                    raise ConcurrentModificationError(
                        "payment", payment.id, payment.version, actual
                    )

                await session.commit()

        logger.debug(
            f"Updated order {order.id} to {order.status.value} "
            f"and payment {payment.id} to {payment.status.value}"
        )
        return (
            order.model_copy(update={"version": order.version + 1}),
            payment.model_copy(update={"version": payment.version + 1}),
        )

    # Row mapping

    async def _current_version(
        self, session: AsyncSession, table: str, key_column: str, key: Any
    ) -> int | None:
        result = await session.execute(
            text(f"SELECT version FROM {table} WHERE {key_column} = :key"),  # nosec B608
            {"key": key},
        )
        row = result.fetchone()
        return row[0] if row else None

    async def _load_order(self, session: AsyncSession, row: Sequence[Any]) -> Order:
        order_id = row[0]
        result = await session.execute(
            text(
                """
                SELECT product_id, quantity, unit_price, currency
                FROM order_items
                WHERE order_id = :order_id
                ORDER BY line_number ASC
                """
            ),
            {"order_id": order_id},
        )
        items = tuple(
            OrderItem(
                order_id=order_id,
                product_id=item[0],
                quantity=item[1],
                unit_price=Money(amount=item[2], currency=item[3].strip()),
            )
            for item in result.fetchall()
        )
        return Order(
            id=order_id,
            user_id=row[1],
            status=OrderStatus(row[2]),
            total_amount=Money(amount=row[3], currency=row[4].strip()),
            version=row[5],
            created_at=row[6],
            updated_at=row[7],
            items=items,
        )

    def _row_to_inventory(self, row: Sequence[Any]) -> InventoryRecord:
        return InventoryRecord(
            product_id=row[0],
            available_quantity=row[1],
            version=row[2],
            updated_at=row[3],
        )

    def _row_to_payment(self, row: Sequence[Any]) -> Payment:
        return Payment(
            id=row[0],
            order_id=row[1],
            method=PaymentMethod(row[2]),
            status=PaymentStatus(row[3]),
            amount=Money(amount=row[4], currency=row[5].strip()),
            transaction_id=row[6],
            failure_reason=row[7],
            version=row[8],
            created_at=row[9],
            updated_at=row[10],
        )


__all__ = ["PostgreSQLFulfillmentStore"]
