"""
SQLite Migration Storage Backend.

Embedded job repository using SQLite with async support via aiosqlite.

Every status change is a conditional ``UPDATE ... WHERE id = ? AND status = ?``
so that exactly one of several racing writers wins. The "one active
migration per endpoint pair" invariant is enforced by a partial unique index,
which makes concurrent submissions for the same pair fail atomically.

Usage:
    >>> from mcmigrate.storage.backends.sqlite import SQLiteMigrationStorage
    >>>
    >>> # File-based storage
    >>> storage = SQLiteMigrationStorage("./data/migrations.db")
    >>>
    >>> # In-memory storage (for testing)
    >>> storage = SQLiteMigrationStorage(":memory:")
"""

from __future__ import annotations

import sqlite3
import time
from collections.abc import Iterable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import aiosqlite

from mcmigrate.core.clock import parse_datetime, to_iso, utc_now
from mcmigrate.core.exceptions import DuplicateActiveMigrationError
from mcmigrate.core.logger import get_logger
from mcmigrate.state_machine import MigrationStateMachine
from mcmigrate.storage.base import MigrationStorage
from mcmigrate.storage.core import (
    ConnectionError,
    HealthCheckResult,
    HealthStatus,
    MigrationStatistics,
    decode_column,
    encode_column,
)
from mcmigrate.types import (
    TERMINAL_STATUSES,
    Endpoint,
    ExecutionStatus,
    Migration,
    MigrationOptions,
    MigrationStats,
    MigrationStatus,
    Reconciliation,
)

logger = get_logger(__name__)

# Columns a transition may write alongside the status change.
_TRANSITION_FIELDS = {
    "progress",
    "start_time",
    "end_time",
    "scheduled_time",
    "execution_status",
    "reconciliation",
}

_STATS_COLUMNS = (
    ("total_objects", "stats_total_objects"),
    ("transferred_objects", "stats_transferred_objects"),
    ("total_size", "stats_total_size"),
    ("transferred_size", "stats_transferred_size"),
)


def _status_values(statuses: MigrationStatus | Iterable[MigrationStatus]) -> list[str]:
    if isinstance(statuses, MigrationStatus):
        return [statuses.value]
    return [status.value for status in statuses]


class SQLiteMigrationStorage(MigrationStorage):
    """
    SQLite-based job repository.

    Attributes:
        db_path: Path to SQLite database file (or ":memory:" for in-memory)

    Example:
        >>> storage = SQLiteMigrationStorage("./migrations.db")
        >>> async with storage:
        ...     migration = await storage.insert_migration(
        ...         Migration(source=Endpoint.parse("a/b1"), destination=Endpoint.parse("b/b2"))
        ...     )
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        state_machine: MigrationStateMachine | None = None,
    ):
        """
        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory
            state_machine: Validates transitions and receives transition hooks
        """
        self.db_path = db_path
        self.state_machine = state_machine or MigrationStateMachine()
        self._conn: aiosqlite.Connection | None = None
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize storage (create connection and schema)."""
        await self._get_connection()

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._conn is None:
            try:
                if self.db_path != ":memory:":
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                self._conn = await aiosqlite.connect(self.db_path, isolation_level=None)
            except (OSError, sqlite3.Error) as e:
                msg = f"Cannot open migration database: {e}"
                raise ConnectionError(msg, db_path=self.db_path) from e
            self._conn.row_factory = aiosqlite.Row

        if not self._initialized:
            await self._init_schema()
            self._initialized = True

        return self._conn

    async def _init_schema(self) -> None:
        """Initialize database schema."""
        conn = self._conn
        await conn.executescript("""
            CREATE TABLE IF NOT EXISTS migrations (
                id TEXT PRIMARY KEY,
                source TEXT NOT NULL,
                destination TEXT NOT NULL,
                options TEXT NOT NULL,
                status TEXT NOT NULL,
                execution_status TEXT NOT NULL DEFAULT 'immediate',
                progress INTEGER NOT NULL DEFAULT 0,
                stats_total_objects INTEGER NOT NULL DEFAULT 0,
                stats_transferred_objects INTEGER NOT NULL DEFAULT 0,
                stats_total_size INTEGER NOT NULL DEFAULT 0,
                stats_transferred_size INTEGER NOT NULL DEFAULT 0,
                stats_speed REAL NOT NULL DEFAULT 0,
                scheduled_time TEXT,
                start_time TEXT,
                end_time TEXT,
                errors TEXT NOT NULL DEFAULT '[]',
                reconciliation TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_migrations_status ON migrations(status);
            CREATE INDEX IF NOT EXISTS idx_migrations_scheduled
                ON migrations(scheduled_time) WHERE status = 'scheduled';
            CREATE INDEX IF NOT EXISTS idx_migrations_created_at ON migrations(created_at);

            CREATE UNIQUE INDEX IF NOT EXISTS idx_migrations_active_pair
                ON migrations(source, destination)
                WHERE status IN ('scheduled', 'starting', 'running', 'reconciling')
                   OR (status = 'completed' AND reconciliation IS NULL);

            CREATE TABLE IF NOT EXISTS migration_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                migration_id TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                level TEXT NOT NULL,
                message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_migration_logs_migration
                ON migration_logs(migration_id, id);

            CREATE TABLE IF NOT EXISTS reconciliation_reports (
                migration_id TEXT PRIMARY KEY,
                report TEXT NOT NULL,
                created_at TEXT NOT NULL
            );
        """)
        await conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None
            self._initialized = False

    # ------------------------------------------------------------------
    # Migrations
    # ------------------------------------------------------------------

    async def insert_migration(self, migration: Migration) -> Migration:
        """Insert a new migration; the active-pair index rejects duplicates."""
        conn = await self._get_connection()
        now = utc_now()
        source, destination = str(migration.source), str(migration.destination)

        try:
            await conn.execute(
                """
                INSERT INTO migrations (
                    id, source, destination, options, status, execution_status,
                    progress, stats_total_objects, stats_transferred_objects,
                    stats_total_size, stats_transferred_size, stats_speed,
                    scheduled_time, start_time, end_time, errors, reconciliation,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    migration.id,
                    source,
                    destination,
                    encode_column("options", migration.options),
                    migration.status.value,
                    migration.execution_status.value,
                    migration.progress,
                    migration.stats.total_objects,
                    migration.stats.transferred_objects,
                    migration.stats.total_size,
                    migration.stats.transferred_size,
                    migration.stats.speed,
                    to_iso(migration.scheduled_time),
                    to_iso(migration.start_time),
                    to_iso(migration.end_time),
                    encode_column("errors", migration.errors),
                    encode_column("reconciliation", migration.reconciliation),
                    to_iso(migration.created_at),
                    to_iso(now),
                ),
            )
            await conn.commit()
        except sqlite3.IntegrityError as e:
            if "UNIQUE" not in str(e).upper():
                raise
            existing = await self.find_active(source, destination)
            raise DuplicateActiveMigrationError(
                source, destination, existing.id if existing else None
            ) from e

        logger.debug(f"Inserted migration {migration.id} ({source} -> {destination})")
        return await self.get_migration(migration.id)

    async def get_migration(self, migration_id: str) -> Migration | None:
        conn = await self._get_connection()

        cursor = await conn.execute("SELECT * FROM migrations WHERE id = ?", (migration_id,))
        row = await cursor.fetchone()

        if row is None:
            return None

        return self._row_to_migration(row)

    def _row_to_migration(self, row: aiosqlite.Row) -> Migration:
        """Convert database row to a Migration."""
        return Migration(
            id=row["id"],
            source=Endpoint.parse(row["source"]),
            destination=Endpoint.parse(row["destination"]),
            options=MigrationOptions.from_dict(decode_column("options", row["options"], {})),
            status=MigrationStatus(row["status"]),
            execution_status=ExecutionStatus(row["execution_status"]),
            progress=row["progress"],
            stats=MigrationStats(
                total_objects=row["stats_total_objects"],
                transferred_objects=row["stats_transferred_objects"],
                total_size=row["stats_total_size"],
                transferred_size=row["stats_transferred_size"],
                speed=row["stats_speed"],
            ),
            scheduled_time=parse_datetime(row["scheduled_time"]),
            start_time=parse_datetime(row["start_time"]),
            end_time=parse_datetime(row["end_time"]),
            errors=decode_column("errors", row["errors"], []),
            reconciliation=Reconciliation.from_dict(
                decode_column("reconciliation", row["reconciliation"])
            ),
            created_at=parse_datetime(row["created_at"]),
            updated_at=parse_datetime(row["updated_at"]),
        )

    async def list_migrations(
        self,
        status: MigrationStatus | Iterable[MigrationStatus] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Migration]:
        conn = await self._get_connection()

        query = "SELECT * FROM migrations WHERE 1=1"
        params: list[Any] = []

        if status is not None:
            values = _status_values(status)
            query += f" AND status IN ({','.join('?' * len(values))})"
            params.extend(values)

        query += " ORDER BY created_at DESC, id LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()

        return [self._row_to_migration(row) for row in rows]

    async def find_active(self, source: str, destination: str) -> Migration | None:
        conn = await self._get_connection()

        cursor = await conn.execute(
            """
            SELECT * FROM migrations
            WHERE source = ? AND destination = ?
            AND (status IN ('scheduled', 'starting', 'running', 'reconciling')
                 OR (status = 'completed' AND reconciliation IS NULL))
            LIMIT 1
            """,
            (str(source), str(destination)),
        )
        row = await cursor.fetchone()

        return self._row_to_migration(row) if row else None

    # ------------------------------------------------------------------
    # Conditional updates
    # ------------------------------------------------------------------

    async def _current_status(self, migration_id: str) -> MigrationStatus | None:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT status FROM migrations WHERE id = ?", (migration_id,))
        row = await cursor.fetchone()
        return MigrationStatus(row["status"]) if row else None

    async def _compare_and_set(
        self,
        migration_id: str,
        from_statuses: Iterable[MigrationStatus],
        to_status: MigrationStatus,
        fields: dict[str, Any],
        error: str | None = None,
        extra_where: str = "",
        extra_params: tuple = (),
    ) -> bool:
        """
        Apply a status change if the row is still in one of ``from_statuses``.

        The UPDATE is guarded by the exact status that was read, so a writer
        that lost the race matches zero rows.
        """
        from_statuses = list(from_statuses)
        self.state_machine.validate(migration_id, from_statuses, to_status)

        unknown = set(fields) - _TRANSITION_FIELDS
        if unknown:
            msg = f"Fields cannot be written by a transition: {sorted(unknown)}"
            raise ValueError(msg)

        current = await self._current_status(migration_id)
        if current is None or current not in from_statuses:
            return False

        assignments = ["status = ?", "updated_at = ?"]
        params: list[Any] = [to_status.value, to_iso(utc_now())]

        for name, value in fields.items():
            assignments.append(f"{name} = ?")
            params.append(self._encode_field(name, value))

        if error:
            assignments.append("errors = json_insert(errors, '$[#]', ?)")
            params.append(error)

        conn = await self._get_connection()
        cursor = await conn.execute(
            f"""
            UPDATE migrations SET {", ".join(assignments)}
            WHERE id = ? AND status = ? {extra_where}
            """,
            (*params, migration_id, current.value, *extra_params),
        )
        await conn.commit()

        if cursor.rowcount != 1:
            return False

        logger.debug(f"Migration {migration_id}: {current.value} -> {to_status.value}")
        self.state_machine.applied(migration_id, current, to_status)
        return True

    @staticmethod
    def _encode_field(name: str, value: Any) -> Any:
        if value is None:
            return None
        if name in ("start_time", "end_time", "scheduled_time"):
            return to_iso(value)
        if name == "execution_status":
            return value.value if isinstance(value, ExecutionStatus) else value
        if name == "reconciliation":
            return encode_column("reconciliation", value)
        return value

    async def transition(
        self,
        migration_id: str,
        from_statuses: Iterable[MigrationStatus],
        to_status: MigrationStatus,
        *,
        error: str | None = None,
        **fields: Any,
    ) -> bool:
        if isinstance(from_statuses, MigrationStatus):
            from_statuses = [from_statuses]
        return await self._compare_and_set(migration_id, from_statuses, to_status, fields, error)

    async def claim_due(self, migration_id: str, now: datetime) -> bool:
        return await self._compare_and_set(
            migration_id,
            [MigrationStatus.SCHEDULED],
            MigrationStatus.STARTING,
            {
                "scheduled_time": None,
                "start_time": now,
                "execution_status": ExecutionStatus.RUNNING,
            },
            extra_where="AND scheduled_time IS NOT NULL AND scheduled_time <= ?",
            extra_params=(to_iso(now),),
        )

    async def refine_transfer(
        self,
        migration_id: str,
        progress: int | None = None,
        stats: MigrationStats | None = None,
    ) -> bool:
        """Raise progress and stats; MAX() keeps every value non-decreasing."""
        assignments = ["updated_at = ?"]
        params: list[Any] = [to_iso(utc_now())]

        if progress is not None:
            assignments.append("progress = MAX(progress, ?)")
            params.append(int(progress))

        if stats is not None:
            for attr, column in _STATS_COLUMNS:
                assignments.append(f"{column} = MAX({column}, ?)")
                params.append(int(getattr(stats, attr)))
            # Speed is an instantaneous reading, not a running total.
            assignments.append("stats_speed = ?")
            params.append(float(stats.speed))

        conn = await self._get_connection()
        cursor = await conn.execute(
            f"""
            UPDATE migrations SET {", ".join(assignments)}
            WHERE id = ? AND status IN ('starting', 'running')
            """,
            (*params, migration_id),
        )
        await conn.commit()

        return cursor.rowcount == 1

    async def append_error(self, migration_id: str, message: str) -> None:
        conn = await self._get_connection()

        await conn.execute(
            """
            UPDATE migrations
            SET errors = json_insert(errors, '$[#]', ?), updated_at = ?
            WHERE id = ?
            """,
            (message, to_iso(utc_now()), migration_id),
        )
        await conn.commit()

    async def update_reconciliation(
        self,
        migration_id: str,
        reconciliation: Reconciliation,
        *,
        expected_status: MigrationStatus | None = None,
        only_if_missing: bool = False,
    ) -> bool:
        conn = await self._get_connection()

        query = "UPDATE migrations SET reconciliation = ?, updated_at = ? WHERE id = ?"
        params: list[Any] = [
            encode_column("reconciliation", reconciliation),
            to_iso(utc_now()),
            migration_id,
        ]

        if expected_status is not None:
            query += " AND status = ?"
            params.append(expected_status.value)

        if only_if_missing:
            query += " AND reconciliation IS NULL"

        cursor = await conn.execute(query, params)
        await conn.commit()

        return cursor.rowcount == 1

    async def update_schedule(self, migration_id: str, scheduled_time: datetime) -> bool:
        conn = await self._get_connection()

        cursor = await conn.execute(
            """
            UPDATE migrations SET scheduled_time = ?, updated_at = ?
            WHERE id = ? AND status = 'scheduled'
            """,
            (to_iso(scheduled_time), to_iso(utc_now()), migration_id),
        )
        await conn.commit()

        return cursor.rowcount == 1

    # ------------------------------------------------------------------
    # Scheduler queries
    # ------------------------------------------------------------------

    async def list_due_scheduled(self, now: datetime) -> list[Migration]:
        conn = await self._get_connection()

        cursor = await conn.execute(
            """
            SELECT * FROM migrations
            WHERE status = 'scheduled' AND scheduled_time <= ?
            ORDER BY scheduled_time
            """,
            (to_iso(now),),
        )
        rows = await cursor.fetchall()

        return [self._row_to_migration(row) for row in rows]

    async def list_scheduled(self, due_before: datetime | None = None) -> list[Migration]:
        conn = await self._get_connection()

        query = "SELECT * FROM migrations WHERE status = 'scheduled'"
        params: list[Any] = []

        if due_before is not None:
            query += " AND scheduled_time <= ?"
            params.append(to_iso(due_before))

        query += " ORDER BY scheduled_time"

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()

        return [self._row_to_migration(row) for row in rows]

    async def get_schedule_statistics(self, now: datetime) -> dict[str, int]:
        conn = await self._get_connection()

        cursor = await conn.execute(
            """
            SELECT
                COUNT(*) as total_scheduled,
                SUM(CASE WHEN scheduled_time > ? THEN 1 ELSE 0 END) as future_scheduled,
                SUM(CASE WHEN scheduled_time <= ? THEN 1 ELSE 0 END) as pending_execution
            FROM migrations
            WHERE status = 'scheduled'
            """,
            (to_iso(now), to_iso(now)),
        )
        row = await cursor.fetchone()

        return {
            "total_scheduled": row["total_scheduled"] or 0,
            "future_scheduled": row["future_scheduled"] or 0,
            "pending_execution": row["pending_execution"] or 0,
        }

    async def list_stale(
        self, statuses: Iterable[MigrationStatus], started_before: datetime
    ) -> list[Migration]:
        conn = await self._get_connection()
        values = _status_values(statuses)

        cursor = await conn.execute(
            f"""
            SELECT * FROM migrations
            WHERE status IN ({",".join("?" * len(values))})
            AND COALESCE(start_time, created_at) < ?
            ORDER BY start_time
            """,
            (*values, to_iso(started_before)),
        )
        rows = await cursor.fetchall()

        return [self._row_to_migration(row) for row in rows]

    # ------------------------------------------------------------------
    # Logs and reports
    # ------------------------------------------------------------------

    async def add_log(self, migration_id: str, level: str, message: str) -> None:
        conn = await self._get_connection()

        await conn.execute(
            """
            INSERT INTO migration_logs (migration_id, timestamp, level, message)
            VALUES (?, ?, ?, ?)
            """,
            (migration_id, to_iso(utc_now()), level.upper(), message),
        )
        await conn.commit()

    async def get_logs(self, migration_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        conn = await self._get_connection()

        if limit is None:
            cursor = await conn.execute(
                """
                SELECT timestamp, level, message FROM migration_logs
                WHERE migration_id = ? ORDER BY id
                """,
                (migration_id,),
            )
            rows = await cursor.fetchall()
        else:
            cursor = await conn.execute(
                """
                SELECT timestamp, level, message FROM migration_logs
                WHERE migration_id = ? ORDER BY id DESC LIMIT ?
                """,
                (migration_id, limit),
            )
            rows = list(reversed(await cursor.fetchall()))

        return [
            {"timestamp": row["timestamp"], "level": row["level"], "message": row["message"]}
            for row in rows
        ]

    async def save_report(self, migration_id: str, report: dict[str, Any]) -> None:
        conn = await self._get_connection()

        await conn.execute(
            """
            INSERT INTO reconciliation_reports (migration_id, report, created_at)
            VALUES (?, ?, ?)
            ON CONFLICT(migration_id) DO UPDATE SET
                report = excluded.report,
                created_at = excluded.created_at
            """,
            (migration_id, encode_column("report", report), to_iso(utc_now())),
        )
        await conn.commit()

    async def get_report(self, migration_id: str) -> dict[str, Any] | None:
        conn = await self._get_connection()

        cursor = await conn.execute(
            "SELECT report FROM reconciliation_reports WHERE migration_id = ?",
            (migration_id,),
        )
        row = await cursor.fetchone()

        return decode_column("report", row["report"]) if row else None

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def cleanup_old_migrations(self, older_than: datetime) -> int:
        """Delete terminal migrations (with their logs and reports) older than the cutoff."""
        conn = await self._get_connection()

        status_values = sorted(status.value for status in TERMINAL_STATUSES)
        placeholders = ",".join("?" * len(status_values))
        params = (*status_values, to_iso(older_than))
        selection = f"SELECT id FROM migrations WHERE status IN ({placeholders}) AND updated_at < ?"

        await conn.execute(f"DELETE FROM migration_logs WHERE migration_id IN ({selection})", params)
        await conn.execute(
            f"DELETE FROM reconciliation_reports WHERE migration_id IN ({selection})", params
        )
        cursor = await conn.execute(
            f"DELETE FROM migrations WHERE status IN ({placeholders}) AND updated_at < ?", params
        )
        await conn.commit()

        if cursor.rowcount:
            logger.info(f"Cleaned up {cursor.rowcount} migrations older than {to_iso(older_than)}")
        return cursor.rowcount

    async def get_statistics(self) -> MigrationStatistics:
        conn = await self._get_connection()
        since = to_iso(utc_now() - timedelta(hours=24))

        cursor = await conn.execute(
            """
            SELECT
                COUNT(*) as total,
                COALESCE(SUM(stats_transferred_size), 0) as total_data_transferred,
                AVG(CASE WHEN stats_speed > 0 THEN stats_speed END) as average_speed,
                SUM(CASE WHEN created_at >= ? THEN 1 ELSE 0 END) as recent_activity
            FROM migrations
            """,
            (since,),
        )
        totals = await cursor.fetchone()

        cursor = await conn.execute("SELECT status, COUNT(*) as n FROM migrations GROUP BY status")
        by_status = {row["status"]: row["n"] for row in await cursor.fetchall()}

        succeeded = sum(
            by_status.get(status.value, 0)
            for status in (
                MigrationStatus.COMPLETED,
                MigrationStatus.VERIFIED,
                MigrationStatus.COMPLETED_WITH_DIFFERENCES,
            )
        )
        finished = succeeded + by_status.get(MigrationStatus.FAILED.value, 0)

        return MigrationStatistics(
            total=totals["total"] or 0,
            by_status=by_status,
            total_data_transferred=totals["total_data_transferred"] or 0,
            average_speed=float(totals["average_speed"] or 0.0),
            recent_activity=totals["recent_activity"] or 0,
            success_rate=round(succeeded / finished * 100, 2) if finished else 0.0,
        )

    async def health_check(self) -> HealthCheckResult:
        """Check storage health."""
        start = time.monotonic()

        try:
            conn = await self._get_connection()
            cursor = await conn.execute("SELECT 1")
            await cursor.fetchone()

            cursor = await conn.execute(
                "SELECT COUNT(*) FROM migrations WHERE status IN "
                "('scheduled', 'starting', 'running', 'reconciling')"
            )
            row = await cursor.fetchone()
            latency_ms = (time.monotonic() - start) * 1000

            return HealthCheckResult(
                status=HealthStatus.HEALTHY,
                latency_ms=latency_ms,
                message="SQLite migration storage is healthy",
                details={
                    "backend": "sqlite",
                    "db_path": self.db_path,
                    "active_migrations": row[0] if row else 0,
                },
            )
        except Exception as e:
            latency_ms = (time.monotonic() - start) * 1000
            return HealthCheckResult(
                status=HealthStatus.UNHEALTHY,
                latency_ms=latency_ms,
                message=f"SQLite migration storage error: {e}",
                details={"backend": "sqlite", "db_path": self.db_path},
            )
