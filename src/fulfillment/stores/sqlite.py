"""
SQLite-backed fulfillment store.

Inventory, orders, order items and payments live in one SQLite file (or
an in-memory database) reached through aiosqlite. Every row carries a
version column and every write is conditional on it.

A good fit for a single checkout service instance or for integration
tests; several service instances sharing stock should use
PostgreSQLFulfillmentStore.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

import aiosqlite

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
from fulfillment.stores.schema import get_schema

logger = logging.getLogger(__name__)


class SQLiteFulfillmentStore(FulfillmentStore):
    """
    SQLite implementation of the fulfillment store.

    Uses one aiosqlite connection. Statements belonging to one call run
    under an asyncio lock so that two tasks never share a transaction;
    the lock is released between calls, so competing writers are still
    serialized only by the version column.

    Column encodings:
    - order and payment ids: hyphenated UUID text
    - created_at / updated_at: ISO 8601 text with UTC offset
    - money amounts: decimal strings, so "19.99" reads back exactly

    Example:
        >>> async with SQLiteFulfillmentStore(":memory:") as store:
        ...     await store.initialize()
        ...     await store.insert_inventory(product_id=1, quantity=5)
    """

    def __init__(
        self,
        database: str,
        *,
        wal_mode: bool = True,
        busy_timeout: int = 5000,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the SQLite store.

        Args:
            database: File path, or ":memory:" for a throwaway database
            wal_mode: Use write-ahead logging so readers never block the writer
            busy_timeout: Milliseconds to wait on a locked database file
            tracer: Tracer for store spans (built from enable_tracing if None)
            enable_tracing: Emit OpenTelemetry spans when the extra is installed
        """
        self._database = database
        self._wal_mode = wal_mode
        self._busy_timeout = busy_timeout
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def database(self) -> str:
        return self._database

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def __aenter__(self) -> SQLiteFulfillmentStore:
        await self._connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    async def _connect(self) -> None:
        """Open the connection and apply PRAGMAs. No-op if already open."""
        if self._connection is not None:
            return

        self._connection = await aiosqlite.connect(self._database)

        await self._connection.execute("PRAGMA foreign_keys = ON")
        await self._connection.execute(f"PRAGMA busy_timeout = {self._busy_timeout}")
        if self._wal_mode:
            await self._connection.execute("PRAGMA journal_mode = WAL")

        self._connection.row_factory = aiosqlite.Row

        logger.debug(
            "Connected to SQLite database: %s (wal_mode=%s, busy_timeout=%d)",
            self._database,
            self._wal_mode,
            self._busy_timeout,
        )

    async def close(self) -> None:
        """
        Close the database connection.

        Safe to call multiple times.
        """
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.debug("Closed SQLite database connection: %s", self._database)

    async def initialize(self) -> None:
        """
        Create the inventory, orders, order_items and payments tables.

        Idempotent - safe to call multiple times.
        """
        if self._connection is None:
            await self._connect()

        assert self._connection is not None

        await self._connection.executescript(get_schema("sqlite"))
        await self._connection.commit()

        logger.info("Initialized SQLite fulfillment store schema: %s", self._database)

    def _ensure_connected(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError(
                "Not connected to database. Use 'async with store:' or call 'initialize()' first."
            )
        return self._connection

    @staticmethod
    async def _rollback_open_transaction(conn: aiosqlite.Connection) -> None:
        """
        Discard statements left uncommitted by a failed or cancelled call.

        The connection is shared, so anything left open here would be
        committed by the next caller's commit.
        """
        if conn.in_transaction:
            await conn.rollback()

    def _span_attributes(self, operation: str, **extra: Any) -> dict[str, Any]:
        return {ATTR_DB_SYSTEM: "sqlite", ATTR_DB_OPERATION: operation, **extra}

    # Inventory

    async def get_inventory(self, product_id: int) -> InventoryRecord | None:
        conn = self._ensure_connected()
        async with self._lock:
            return await self._fetch_inventory(conn, product_id)

    async def _fetch_inventory(
        self, conn: aiosqlite.Connection, product_id: int
    ) -> InventoryRecord | None:
        cursor = await conn.execute(
            """
            SELECT product_id, available_quantity, version, updated_at
            FROM inventory
            WHERE product_id = ?
            """,
            (product_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return InventoryRecord(
            product_id=row["product_id"],
            available_quantity=row["available_quantity"],
            version=row["version"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    async def insert_inventory(self, product_id: int, quantity: int) -> InventoryRecord:
        if quantity < 0:
            raise ValueError(f"Inventory quantity must be >= 0, got {quantity}")

        conn = self._ensure_connected()
        with self._tracer.span(
            "sqlite_store.insert_inventory",
            self._span_attributes("INSERT", **{ATTR_PRODUCT_ID: product_id}),
        ):
            async with self._lock:
                record = InventoryRecord(product_id=product_id, available_quantity=quantity)
                try:
                    await conn.execute(
                        """
                        INSERT INTO inventory (product_id, available_quantity, version, updated_at)
                        VALUES (?, ?, ?, ?)
                        """,
                        (
                            record.product_id,
                            record.available_quantity,
                            record.version,
                            record.updated_at.isoformat(),
                        ),
                    )
                    await conn.commit()
                except aiosqlite.IntegrityError as e:
                    await conn.rollback()
                    existing = await self._fetch_inventory(conn, product_id)
                    logger.debug("Inventory row for product %d already exists", product_id)
                    raise ConcurrentModificationError(
                        "inventory",
                        product_id,
                        0,
                        existing.version if existing else None,
                    ) from e
                except BaseException:
                    await self._rollback_open_transaction(conn)
                    raise
                return record

    async def compare_and_set_inventory(
        self,
        product_id: int,
        expected_version: int,
        new_quantity: int,
    ) -> InventoryRecord:
        if new_quantity < 0:
            raise ValueError(f"Inventory quantity must be >= 0, got {new_quantity}")

        conn = self._ensure_connected()
        with self._tracer.span(
            "sqlite_store.compare_and_set_inventory",
            self._span_attributes(
                "UPDATE",
                **{ATTR_PRODUCT_ID: product_id, ATTR_EXPECTED_VERSION: expected_version},
            ),
        ):
            async with self._lock:
                now = datetime.now(UTC)
                try:
                    cursor = await conn.execute(
                        """
                        UPDATE inventory
                        SET available_quantity = ?, version = version + 1, updated_at = ?
                        WHERE product_id = ? AND version = ?
                        """,
                        (new_quantity, now.isoformat(), product_id, expected_version),
                    )
                    await conn.commit()
                except BaseException:
                    await self._rollback_open_transaction(conn)
                    raise

                if cursor.rowcount == 0:
                    current = await self._fetch_inventory(conn, product_id)
                    if current is None:
                        raise InventoryNotFoundError(product_id)
                    logger.debug(
                        "Version conflict on inventory %d: expected=%d, actual=%d",
                        product_id,
                        expected_version,
                        current.version,
                    )
                    raise ConcurrentModificationError(
                        "inventory", product_id, expected_version, current.version
                    )

                return InventoryRecord(
                    product_id=product_id,
                    available_quantity=new_quantity,
                    version=expected_version + 1,
                    updated_at=now,
                )

    # Orders and payments

    async def insert_order(self, order: Order, payment: Payment) -> None:
        if payment.order_id != order.id:
            raise ValueError(f"Payment {payment.id} does not belong to order {order.id}")

        conn = self._ensure_connected()
        with self._tracer.span(
            "sqlite_store.insert_order",
            self._span_attributes("INSERT", **{ATTR_ORDER_ID: str(order.id)}),
        ):
            async with self._lock:
                try:
                    await conn.execute(
                        """
                        INSERT INTO orders (
                            id, user_id, status, total_amount, currency,
                            version, created_at, updated_at
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            str(order.id),
                            order.user_id,
                            order.status.value,
                            str(order.total_amount.amount),
                            order.currency,
                            order.version,
                            order.created_at.isoformat(),
                            order.updated_at.isoformat(),
                        ),
                    )
                    await conn.executemany(
                        """
                        INSERT INTO order_items (
                            order_id, line_number, product_id, quantity, unit_price, currency
                        )
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        [
                            (
                                str(order.id),
                                line_number,
                                item.product_id,
                                item.quantity,
                                str(item.unit_price.amount),
                                item.unit_price.currency,
                            )
                            for line_number, item in enumerate(order.items, start=1)
                        ],
                    )
                    await conn.execute(
                        """
                        INSERT INTO payments (
                            id, order_id, method, status, amount, currency,
                            transaction_id, failure_reason, version, created_at, updated_at
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            str(payment.id),
                            str(payment.order_id),
                            payment.method.value,
                            payment.status.value,
                            str(payment.amount.amount),
                            payment.amount.currency,
                            payment.transaction_id,
                            payment.failure_reason,
                            payment.version,
                            payment.created_at.isoformat(),
                            payment.updated_at.isoformat(),
                        ),
                    )
                    await conn.commit()
                except aiosqlite.IntegrityError as e:
                    await conn.rollback()
                    raise StorageError(f"Could not insert order {order.id}: {e}") from e
                except BaseException:
                    await self._rollback_open_transaction(conn)
                    raise

        logger.debug(
            "Inserted order %s with %d items and payment %s",
            order.id,
            len(order.items),
            payment.id,
        )

    async def get_order(self, order_id: UUID) -> Order | None:
        conn = self._ensure_connected()
        async with self._lock:
            cursor = await conn.execute(
                """
                SELECT id, user_id, status, total_amount, currency,
                       version, created_at, updated_at
                FROM orders
                WHERE id = ?
                """,
                (str(order_id),),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return await self._load_order(conn, row)

    async def _load_order(self, conn: aiosqlite.Connection, row: aiosqlite.Row) -> Order:
        order_id = UUID(row["id"])
        cursor = await conn.execute(
            """
            SELECT product_id, quantity, unit_price, currency
            FROM order_items
            WHERE order_id = ?
            ORDER BY line_number ASC
            """,
            (row["id"],),
        )
        item_rows = await cursor.fetchall()
        items = tuple(
            OrderItem(
                order_id=order_id,
                product_id=item["product_id"],
                quantity=item["quantity"],
                unit_price=Money(amount=Decimal(item["unit_price"]), currency=item["currency"]),
            )
            for item in item_rows
        )
        return Order(
            id=order_id,
            user_id=row["user_id"],
            items=items,
            total_amount=Money(amount=Decimal(row["total_amount"]), currency=row["currency"]),
            status=OrderStatus(row["status"]),
            version=row["version"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    async def get_payment(self, order_id: UUID) -> Payment | None:
        conn = self._ensure_connected()
        async with self._lock:
            cursor = await conn.execute(
                """
                SELECT id, order_id, method, status, amount, currency,
                       transaction_id, failure_reason, version, created_at, updated_at
                FROM payments
                WHERE order_id = ?
                """,
                (str(order_id),),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return Payment(
                id=UUID(row["id"]),
                order_id=UUID(row["order_id"]),
                method=PaymentMethod(row["method"]),
                status=PaymentStatus(row["status"]),
                amount=Money(amount=Decimal(row["amount"]), currency=row["currency"]),
                transaction_id=row["transaction_id"],
                failure_reason=row["failure_reason"],
                version=row["version"],
                created_at=datetime.fromisoformat(row["created_at"]),
                updated_at=datetime.fromisoformat(row["updated_at"]),
            )

    async def list_orders(self, user_id: int, limit: int, offset: int = 0) -> list[Order]:
        conn = self._ensure_connected()
        async with self._lock:
            cursor = await conn.execute(
                """
                SELECT id, user_id, status, total_amount, currency,
                       version, created_at, updated_at
                FROM orders
                WHERE user_id = ?
                ORDER BY created_at DESC
                LIMIT ? OFFSET ?
                """,
                (user_id, limit, offset),
            )
            rows = await cursor.fetchall()
            return [await self._load_order(conn, row) for row in rows]

    async def update_order_and_payment(
        self,
        order: Order,
        payment: Payment,
    ) -> tuple[Order, Payment]:
        conn = self._ensure_connected()
        with self._tracer.span(
            "sqlite_store.update_order_and_payment",
            self._span_attributes(
                "UPDATE",
                **{ATTR_ORDER_ID: str(order.id), ATTR_EXPECTED_VERSION: order.version},
            ),
        ):
            async with self._lock:
                try:
                    cursor = await conn.execute(
                        """
                        UPDATE orders
                        SET status = ?, version = version + 1, updated_at = ?
                        WHERE id = ? AND version = ?
                        """,
                        (
                            order.status.value,
                            order.updated_at.isoformat(),
                            str(order.id),
                            order.version,
                        ),
                    )
                    if cursor.rowcount == 0:
                        await conn.rollback()
                        await self._raise_order_conflict(conn, order)

                    cursor = await conn.execute(
                        """
                        UPDATE payments
                        SET status = ?, transaction_id = ?, failure_reason = ?,
                            version = version + 1, updated_at = ?
                        WHERE id = ? AND order_id = ? AND version = ?
                        """,
                        (
                            payment.status.value,
                            payment.transaction_id,
                            payment.failure_reason,
                            payment.updated_at.isoformat(),
                            str(payment.id),
                            str(order.id),
                            payment.version,
                        ),
                    )
                    if cursor.rowcount == 0:
                        await conn.rollback()
                        await self._raise_payment_conflict(conn, order.id, payment)

                    await conn.commit()
                except BaseException:
                    await self._rollback_open_transaction(conn)
                    raise

        logger.debug(
            "Updated order %s to %s and payment %s to %s",
            order.id,
            order.status.value,
            payment.id,
            payment.status.value,
        )
        return (
            order.model_copy(update={"version": order.version + 1}),
            payment.model_copy(update={"version": payment.version + 1}),
        )

    async def _raise_order_conflict(self, conn: aiosqlite.Connection, order: Order) -> None:
        cursor = await conn.execute("SELECT version FROM orders WHERE id = ?", (str(order.id),))
        row = await cursor.fetchone()
        if row is None:
            raise OrderNotFoundError(order.id)
        raise ConcurrentModificationError("order", order.id, order.version, row["version"])

    async def _raise_payment_conflict(
        self, conn: aiosqlite.Connection, order_id: UUID, payment: Payment
    ) -> None:
        cursor = await conn.execute(
            "SELECT version FROM payments WHERE id = ? AND order_id = ?",
            (str(payment.id), str(order_id)),
        )
        row = await cursor.fetchone()
        if row is None:
            raise PaymentNotFoundError(order_id)
        raise ConcurrentModificationError("payment", payment.id, payment.version, row["version"])


__all__ = ["SQLiteFulfillmentStore"]
