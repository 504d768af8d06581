"""
SQLite database implementation.
Simple and direct - no abstraction layers.
"""

import aiosqlite
from datetime import datetime, timezone
from typing import List, Optional
import os

from .models import Store, SubscriptionInfo, UsageRecord, utcnow


def _parse_datetime(value: str) -> datetime:
    """Parse a stored timestamp as an aware UTC datetime."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _format_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class SQLiteDatabase:
    """SQLite database for all operations."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._connection: Optional[aiosqlite.Connection] = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            if self.db_path != ":memory:":
                os.makedirs(os.path.dirname(self.db_path) or ".", exist_ok=True)
            self._connection = await aiosqlite.connect(self.db_path)
            self._connection.row_factory = aiosqlite.Row
        return self._connection

    async def initialize(self) -> None:
        """Create database tables."""
        conn = await self._get_connection()

        await conn.executescript("""
            CREATE TABLE IF NOT EXISTS stores (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                shopify_domain TEXT NOT NULL,
                api_token TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS subscription_info (
                store_id TEXT PRIMARY KEY,
                subscription_id TEXT,
                plan_name TEXT NOT NULL DEFAULT 'Free',
                started_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS usage_tracking (
                store_id TEXT NOT NULL,
                billing_period TEXT NOT NULL,
                price_updates INTEGER NOT NULL DEFAULT 0,
                compare_at_updates INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (store_id, billing_period)
            );
        """)
        await conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    # ===== Helper Methods =====

    def _row_to_store(self, row: aiosqlite.Row) -> Store:
        """Convert a database row to a Store model."""
        return Store(
            id=row["id"],
            name=row["name"],
            shopify_domain=row["shopify_domain"],
            api_token=row["api_token"],
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )

    def _row_to_subscription(self, row: aiosqlite.Row) -> SubscriptionInfo:
        return SubscriptionInfo(
            store_id=row["store_id"],
            subscription_id=row["subscription_id"],
            plan_name=row["plan_name"],
            started_at=_parse_datetime(row["started_at"]),
        )

    def _row_to_usage(self, row: aiosqlite.Row) -> UsageRecord:
        return UsageRecord(
            store_id=row["store_id"],
            billing_period=row["billing_period"],
            price_updates=row["price_updates"],
            compare_at_updates=row["compare_at_updates"],
        )

    # ===== Store Operations =====

    async def get_stores(self) -> List[Store]:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM stores ORDER BY name")
        rows = await cursor.fetchall()
        return [self._row_to_store(row) for row in rows]

    async def get_store(self, store_id: str) -> Optional[Store]:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM stores WHERE id = ?", (store_id,))
        row = await cursor.fetchone()
        return self._row_to_store(row) if row else None

    async def create_store(self, store: Store) -> Store:
        conn = await self._get_connection()
        await conn.execute(
            """
            INSERT INTO stores (id, name, shopify_domain, api_token, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                store.id,
                store.name,
                store.shopify_domain,
                store.api_token,
                _format_datetime(store.created_at),
                _format_datetime(store.updated_at),
            )
        )
        await conn.commit()
        return store

    async def delete_store(self, store_id: str) -> bool:
        conn = await self._get_connection()
        await conn.execute("DELETE FROM usage_tracking WHERE store_id = ?", (store_id,))
        await conn.execute("DELETE FROM subscription_info WHERE store_id = ?", (store_id,))
        cursor = await conn.execute("DELETE FROM stores WHERE id = ?", (store_id,))
        await conn.commit()
        return cursor.rowcount > 0

    # ===== Subscription Operations =====

    async def get_subscription_info(self, store_id: str) -> Optional[SubscriptionInfo]:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT * FROM subscription_info WHERE store_id = ?", (store_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_subscription(row) if row else None

    async def save_subscription_info(self, info: SubscriptionInfo) -> SubscriptionInfo:
        conn = await self._get_connection()
        await conn.execute(
            """
            INSERT INTO subscription_info (store_id, subscription_id, plan_name, started_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(store_id) DO UPDATE SET
                subscription_id = excluded.subscription_id,
                plan_name = excluded.plan_name,
                started_at = excluded.started_at
            """,
            (
                info.store_id,
                info.subscription_id,
                info.plan_name,
                _format_datetime(info.started_at),
            )
        )
        await conn.commit()
        return info

    # ===== Usage Operations =====

    async def get_usage(self, store_id: str, billing_period: str) -> Optional[UsageRecord]:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT * FROM usage_tracking WHERE store_id = ? AND billing_period = ?",
            (store_id, billing_period)
        )
        row = await cursor.fetchone()
        return self._row_to_usage(row) if row else None

    async def increment_usage(
        self,
        store_id: str,
        billing_period: str,
        price_updates: int,
        compare_at_updates: int
    ) -> UsageRecord:
        """Atomically add to the period's counters, creating the row if needed."""
        conn = await self._get_connection()
        await conn.execute(
            """
            INSERT INTO usage_tracking (store_id, billing_period, price_updates, compare_at_updates)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(store_id, billing_period) DO UPDATE SET
                price_updates = price_updates + excluded.price_updates,
                compare_at_updates = compare_at_updates + excluded.compare_at_updates
            """,
            (store_id, billing_period, price_updates, compare_at_updates)
        )
        await conn.commit()
        return await self.get_usage(store_id, billing_period)
