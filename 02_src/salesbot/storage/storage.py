"""SQLite storage implementation."""

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import aiosqlite

from ..config import resolve_db_path
from ..errors import CatalogLookupError, PersistenceError
from ..models import (
    DEFAULT_CURRENCY,
    TERMINAL_STATUSES,
    BusMessage,
    CatalogNode,
    Currency,
    Order,
    OrderReply,
    OrderStatus,
    Topic,
    TraceEvent,
)


class ICatalog(Protocol):
    """Read-only hierarchical lookup of catalog nodes."""

    async def children_of(self, parent_id: str | None) -> list[CatalogNode]:
        """Direct children of a node, in catalog order. None means top level."""
        ...

    async def get_node(self, node_id: str) -> CatalogNode | None:
        """Get a node by ID."""
        ...

    async def child_count(self, node_id: str) -> int:
        """Number of direct children of a node."""
        ...


class IOrderStore(Protocol):
    """Persistence of orders and their reply logs."""

    async def find_open_order(self, conversation_id: str) -> Order | None:
        """Most recent order for the conversation that is not in a terminal status."""
        ...

    async def create_order(self, order: Order) -> str:
        """Persist a new order, return its ID."""
        ...

    async def get_order(self, order_id: str) -> Order | None:
        """Get an order with its reply log."""
        ...

    async def append_reply(
        self, order_id: str, reply: OrderReply, status: OrderStatus | None = None
    ) -> None:
        """Append an entry to the reply log and optionally set the status, atomically."""
        ...

    async def set_order_status(self, order_id: str, status: OrderStatus) -> None:
        """Update the order's status."""
        ...


class ICurrencyProvider(Protocol):
    """Source of the currency used for price rendering."""

    async def get_active_currency(self) -> Currency:
        """Active currency, or USD when none is active."""
        ...


class IStorage(ICatalog, IOrderStore, ICurrencyProvider, Protocol):
    """Persistent storage for all system data (SQLite)."""

    async def init(self) -> None:
        """Initialize database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # Catalog / currency administration
    async def save_catalog_node(self, node: CatalogNode) -> None:
        """Insert or replace a catalog node."""
        ...

    async def save_currency(self, currency: Currency) -> None:
        """Insert or replace a currency."""
        ...

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        ...

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters."""
        ...

    # BusMessages
    async def save_bus_message(self, message: BusMessage) -> None:
        """Save a bus message."""
        ...

    async def get_bus_messages(
        self, limit: int = 100, topic: Topic | None = None
    ) -> list[BusMessage]:
        """Get bus messages (newest first), optionally for one topic."""
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


def _parse_ts(value: str) -> datetime:
    ts = datetime.fromisoformat(value)
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _row_to_node(row) -> CatalogNode:
    return CatalogNode(id=row[0], name=row[1], parent_id=row[2], price=row[3])


class Storage:
    """SQLite storage implementation."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            self._db_path = resolve_db_path()
        else:
            self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Initialize database and create tables."""
        self._conn = await aiosqlite.connect(self._db_path)

        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Storage not initialized")
        return self._conn

    # Catalog
    async def children_of(self, parent_id: str | None) -> list[CatalogNode]:
        """Direct children of a node, in insertion order. None means top level."""
        conn = self._require_conn()

        try:
            if parent_id is None:
                cursor = await conn.execute(
                    """
                    SELECT id, name, parent_id, price
                    FROM catalog_nodes
                    WHERE parent_id IS NULL
                    ORDER BY rowid ASC
                    """
                )
            else:
                cursor = await conn.execute(
                    """
                    SELECT id, name, parent_id, price
                    FROM catalog_nodes
                    WHERE parent_id = ?
                    ORDER BY rowid ASC
                    """,
                    (parent_id,),
                )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise CatalogLookupError(f"Failed to list children of {parent_id}: {e}") from e

        return [_row_to_node(row) for row in rows]

    async def get_node(self, node_id: str) -> CatalogNode | None:
        """Get a node by ID."""
        conn = self._require_conn()

        try:
            cursor = await conn.execute(
                """
                SELECT id, name, parent_id, price
                FROM catalog_nodes
                WHERE id = ?
                """,
                (node_id,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise CatalogLookupError(f"Failed to read node {node_id}: {e}") from e

        return _row_to_node(row) if row else None

    async def child_count(self, node_id: str) -> int:
        """Number of direct children of a node."""
        conn = self._require_conn()

        try:
            cursor = await conn.execute(
                "SELECT COUNT(*) FROM catalog_nodes WHERE parent_id = ?",
                (node_id,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise CatalogLookupError(f"Failed to count children of {node_id}: {e}") from e

        return row[0] if row else 0

    async def save_catalog_node(self, node: CatalogNode) -> None:
        """Insert or replace a catalog node."""
        conn = self._require_conn()

        await conn.execute(
            """
            INSERT OR REPLACE INTO catalog_nodes (id, name, parent_id, price)
            VALUES (?, ?, ?, ?)
            """,
            (node.id, node.name, node.parent_id, node.price),
        )
        await conn.commit()

    # Currency
    async def get_active_currency(self) -> Currency:
        """Active currency, or USD when none is active."""
        conn = self._require_conn()

        cursor = await conn.execute(
            """
            SELECT code, symbol, name, rate
            FROM currencies
            WHERE is_active = 1
            LIMIT 1
            """
        )
        row = await cursor.fetchone()
        if not row:
            return DEFAULT_CURRENCY

        return Currency(
            code=row[0], symbol=row[1], name=row[2], rate=row[3], is_active=True
        )

    async def save_currency(self, currency: Currency) -> None:
        """Insert or replace a currency. Activating one deactivates the rest."""
        conn = self._require_conn()

        if currency.is_active:
            await conn.execute("UPDATE currencies SET is_active = 0")
        await conn.execute(
            """
            INSERT OR REPLACE INTO currencies (code, symbol, name, rate, is_active)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                currency.code,
                currency.symbol,
                currency.name,
                currency.rate,
                int(currency.is_active),
            ),
        )
        await conn.commit()

    # Orders
    async def find_open_order(self, conversation_id: str) -> Order | None:
        """Most recent order for the conversation that is not in a terminal status."""
        conn = self._require_conn()
        terminal = [status.value for status in TERMINAL_STATUSES]
        placeholders = ",".join("?" * len(terminal))

        try:
            cursor = await conn.execute(
                f"""
                SELECT id
                FROM orders
                WHERE conversation_id = ? AND status NOT IN ({placeholders})
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (conversation_id, *terminal),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to look up open order: {e}") from e

        if not row:
            return None
        return await self.get_order(row[0])

    async def create_order(self, order: Order) -> str:
        """Persist a new order with its reply log, return its ID."""
        conn = self._require_conn()

        if not order.id:
            order.id = uuid.uuid4().hex

        try:
            await conn.execute(
                """
                INSERT INTO orders
                (id, conversation_id, service_id, service_name, price, status,
                 message, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    order.id,
                    order.conversation_id,
                    order.service_id,
                    order.service_name,
                    order.price,
                    order.status.value,
                    order.message,
                    order.created_at.isoformat(),
                    order.updated_at.isoformat(),
                ),
            )
            for reply in order.replies:
                await self._insert_reply(conn, order.id, reply)
            await conn.commit()
        except aiosqlite.Error as e:
            await conn.rollback()
            raise PersistenceError(f"Failed to create order: {e}") from e

        return order.id

    async def get_order(self, order_id: str) -> Order | None:
        """Get an order with its reply log."""
        conn = self._require_conn()

        try:
            cursor = await conn.execute(
                """
                SELECT id, conversation_id, service_id, service_name, price,
                       status, message, created_at, updated_at
                FROM orders
                WHERE id = ?
                """,
                (order_id,),
            )
            row = await cursor.fetchone()
            if not row:
                return None

            reply_cursor = await conn.execute(
                """
                SELECT text, timestamp, is_customer
                FROM order_replies
                WHERE order_id = ?
                ORDER BY id ASC
                """,
                (order_id,),
            )
            reply_rows = await reply_cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to read order {order_id}: {e}") from e

        return Order(
            id=row[0],
            conversation_id=row[1],
            service_id=row[2],
            service_name=row[3],
            price=row[4],
            status=OrderStatus(row[5]),
            message=row[6],
            created_at=_parse_ts(row[7]),
            updated_at=_parse_ts(row[8]),
            replies=[
                OrderReply(
                    text=r[0], timestamp=_parse_ts(r[1]), is_customer=bool(r[2])
                )
                for r in reply_rows
            ],
        )

    async def append_reply(
        self, order_id: str, reply: OrderReply, status: OrderStatus | None = None
    ) -> None:
        """Append an entry to the order's reply log, optionally moving its status.

        Both changes land in one transaction.
        """
        conn = self._require_conn()

        try:
            if status is None:
                cursor = await conn.execute(
                    "UPDATE orders SET updated_at = ? WHERE id = ?",
                    (reply.timestamp.isoformat(), order_id),
                )
            else:
                cursor = await conn.execute(
                    "UPDATE orders SET status = ?, updated_at = ? WHERE id = ?",
                    (status.value, reply.timestamp.isoformat(), order_id),
                )
            if cursor.rowcount == 0:
                raise PersistenceError(f"Order {order_id} not found")
            await self._insert_reply(conn, order_id, reply)
            await conn.commit()
        except aiosqlite.Error as e:
            await conn.rollback()
            raise PersistenceError(f"Failed to append reply to {order_id}: {e}") from e

    async def set_order_status(self, order_id: str, status: OrderStatus) -> None:
        """Update the order's status."""
        conn = self._require_conn()

        try:
            cursor = await conn.execute(
                "UPDATE orders SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, datetime.now(timezone.utc).isoformat(), order_id),
            )
            if cursor.rowcount == 0:
                raise PersistenceError(f"Order {order_id} not found")
            await conn.commit()
        except aiosqlite.Error as e:
            await conn.rollback()
            raise PersistenceError(f"Failed to update status of {order_id}: {e}") from e

    @staticmethod
    async def _insert_reply(
        conn: aiosqlite.Connection, order_id: str, reply: OrderReply
    ) -> None:
        await conn.execute(
            """
            INSERT INTO order_replies (order_id, text, timestamp, is_customer)
            VALUES (?, ?, ?, ?)
            """,
            (order_id, reply.text, reply.timestamp.isoformat(), int(reply.is_customer)),
        )

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        conn = self._require_conn()

        await conn.execute(
            """
            INSERT INTO trace_events (id, event_type, actor, data, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                event.id or str(uuid.uuid4()),
                event.event_type,
                event.actor,
                json.dumps(event.data, default=str),
                event.timestamp.isoformat(),
            ),
        )
        await conn.commit()

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters."""
        conn = self._require_conn()

        conditions = []
        params: list = []

        if after:
            if after.tzinfo is None:
                after = after.replace(tzinfo=timezone.utc)
            conditions.append("timestamp > ?")
            params.append(after.isoformat())
        if event_types:
            placeholders = ",".join("?" * len(event_types))
            conditions.append(f"event_type IN ({placeholders})")
            params.extend(event_types)
        if actor:
            conditions.append("actor = ?")
            params.append(actor)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        query = f"""
            SELECT id, event_type, actor, data, timestamp
            FROM trace_events
            {where_clause}
            ORDER BY timestamp DESC, rowid DESC
            LIMIT ?
        """
        params.append(limit)

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()

        return [
            TraceEvent(
                id=row[0],
                event_type=row[1],
                actor=row[2],
                data=json.loads(row[3]),
                timestamp=_parse_ts(row[4]),
            )
            for row in rows
        ]

    # BusMessages
    async def save_bus_message(self, message: BusMessage) -> None:
        """Save a bus message."""
        conn = self._require_conn()

        await conn.execute(
            """
            INSERT INTO bus_messages (id, topic, payload, source, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                message.id or str(uuid.uuid4()),
                message.topic.value,
                json.dumps(message.payload, default=str),
                message.source,
                message.timestamp.isoformat(),
            ),
        )
        await conn.commit()

    async def get_bus_messages(
        self, limit: int = 100, topic: Topic | None = None
    ) -> list[BusMessage]:
        """Get bus messages (newest first), optionally for one topic."""
        conn = self._require_conn()

        where = ""
        params: list = []
        if topic is not None:
            where = "WHERE topic = ?"
            params.append(topic.value)
        params.append(limit)

        cursor = await conn.execute(
            f"""
            SELECT id, topic, payload, source, timestamp
            FROM bus_messages
            {where}
            ORDER BY timestamp DESC, rowid DESC
            LIMIT ?
            """,
            params,
        )
        rows = await cursor.fetchall()

        return [
            BusMessage(
                id=row[0],
                topic=Topic(row[1]),
                payload=json.loads(row[2]),
                source=row[3],
                timestamp=_parse_ts(row[4]),
            )
            for row in rows
        ]

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        conn = self._require_conn()

        tables = [
            "order_replies",
            "orders",
            "catalog_nodes",
            "currencies",
            "trace_events",
            "bus_messages",
        ]

        for table in tables:
            await conn.execute(f"DELETE FROM {table}")

        await conn.commit()
