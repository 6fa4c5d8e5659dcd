"""
SQLite scratch inventory for streaming reconciliation.

Holds both endpoint listings of one reconciliation in a throwaway database,
keyed by ``(side, object_key)``. Listings are written chunk by chunk and
compared page by page, so neither side ever has to fit in memory.

Usage:
    >>> store = SQLiteInventoryStore("./data/scratch/reconciliation_m-1.db")
    >>> async with store:
    ...     await store.insert_chunk(InventorySide.SOURCE, 0, records)
    ...     page = await store.compare_page(after_key=None, limit=5000)
"""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import aiosqlite

from mcmigrate.core.logger import get_logger
from mcmigrate.storage.core import ConnectionError
from mcmigrate.types import InventorySide, ObjectRecord, ObjectStats

logger = get_logger(__name__)


@dataclass(frozen=True)
class InventoryRow:
    """One key of a comparison page with both sides joined onto it."""

    key: str
    source_size: int | None
    dest_size: int | None
    source_etag: str | None
    dest_etag: str | None

    @property
    def in_source(self) -> bool:
        return self.source_size is not None

    @property
    def in_destination(self) -> bool:
        return self.dest_size is not None


class SQLiteInventoryStore:
    """
    Scratch relation of object listings for one reconciliation.

    Attributes:
        db_path: Scratch database file, or ":memory:"
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    async def _get_connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            try:
                if self.db_path != ":memory:":
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                self._conn = await aiosqlite.connect(self.db_path)
            except (OSError, sqlite3.Error) as e:
                msg = f"Cannot open scratch inventory: {e}"
                raise ConnectionError(msg, db_path=self.db_path) from e

            await self._conn.executescript("""
                PRAGMA journal_mode = OFF;
                PRAGMA synchronous = OFF;

                DROP TABLE IF EXISTS object_inventory;

                CREATE TABLE object_inventory (
                    side TEXT NOT NULL,
                    object_key TEXT NOT NULL,
                    size INTEGER NOT NULL,
                    etag TEXT,
                    last_modified TEXT,
                    chunk_id INTEGER NOT NULL,
                    PRIMARY KEY (side, object_key)
                );

                CREATE INDEX idx_inventory_key ON object_inventory(object_key, side);
            """)
            await self._conn.commit()

        return self._conn

    async def __aenter__(self):
        await self._get_connection()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.destroy()

    async def insert_chunk(
        self, side: InventorySide, chunk_id: int, records: Sequence[ObjectRecord]
    ) -> None:
        """Persist one chunk of listing records for a side."""
        if not records:
            return
        conn = await self._get_connection()

        await conn.executemany(
            """
            INSERT OR REPLACE INTO object_inventory
                (side, object_key, size, etag, last_modified, chunk_id)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (side.value, record.key, record.size, record.etag, record.last_modified, chunk_id)
                for record in records
            ],
        )
        await conn.commit()

    async def side_stats(self, side: InventorySide) -> ObjectStats:
        conn = await self._get_connection()

        cursor = await conn.execute(
            "SELECT COUNT(*), COALESCE(SUM(size), 0) FROM object_inventory WHERE side = ?",
            (side.value,),
        )
        count, total = await cursor.fetchone()

        return ObjectStats(object_count=count, total_size=total)

    async def count_keys(self) -> int:
        """Number of distinct keys across both sides."""
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT COUNT(DISTINCT object_key) FROM object_inventory")
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def compare_page(self, after_key: str | None, limit: int) -> list[InventoryRow]:
        """
        The next ``limit`` distinct keys after ``after_key``, each outer-joined
        with its source and destination entries, in key order.
        """
        conn = await self._get_connection()

        where = "WHERE object_key > ?" if after_key is not None else ""
        params: tuple = (after_key, limit) if after_key is not None else (limit,)

        cursor = await conn.execute(
            f"""
            WITH page AS (
                SELECT DISTINCT object_key FROM object_inventory
                {where}
                ORDER BY object_key
                LIMIT ?
            )
            SELECT page.object_key, s.size, d.size, s.etag, d.etag
            FROM page
            LEFT JOIN object_inventory s
                ON s.side = 'source' AND s.object_key = page.object_key
            LEFT JOIN object_inventory d
                ON d.side = 'destination' AND d.object_key = page.object_key
            ORDER BY page.object_key
            """,
            params,
        )
        rows = await cursor.fetchall()

        return [InventoryRow(*row) for row in rows]

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def destroy(self) -> None:
        """Close the scratch database and remove its file."""
        await self.close()
        if self.db_path == ":memory:":
            return
        for suffix in ("", "-journal", "-wal", "-shm"):
            path = Path(self.db_path + suffix)
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove scratch file {path}: {e}")
