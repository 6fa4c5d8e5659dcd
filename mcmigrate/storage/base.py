"""
Base storage interface for the job repository.

The repository is the single source of truth for migrations. Every status
change is an atomic conditional update keyed by migration id, so concurrent
writers (scheduler timer, scheduler poll, supervisor, reconciliation engine)
resolve races without in-process locks.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from mcmigrate.storage.core import HealthCheckable
from mcmigrate.types import Migration, MigrationStats, MigrationStatus, Reconciliation


class MigrationStorage(HealthCheckable, ABC):
    """
    Abstract base class for migration persistence.
    """

    async def initialize(self) -> None:  # noqa: B027
        """Open connections and create the schema."""

    async def close(self) -> None:  # noqa: B027
        """Release connections."""

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @abstractmethod
    async def insert_migration(self, migration: Migration) -> Migration:
        """
        Persist a new migration.

        Raises:
            DuplicateActiveMigrationError: If an active migration already
                exists for the same source and destination
        """

    @abstractmethod
    async def get_migration(self, migration_id: str) -> Migration | None:
        """Load a migration, or None if the id is unknown."""

    @abstractmethod
    async def list_migrations(
        self,
        status: MigrationStatus | Iterable[MigrationStatus] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Migration]:
        """List migrations, newest first."""

    @abstractmethod
    async def find_active(self, source: str, destination: str) -> Migration | None:
        """The active migration for an endpoint pair, if any."""

    @abstractmethod
    async def transition(
        self,
        migration_id: str,
        from_statuses: Iterable[MigrationStatus],
        to_status: MigrationStatus,
        *,
        error: str | None = None,
        **fields: Any,
    ) -> bool:
        """
        Move a migration to ``to_status`` only if it is currently in one of
        ``from_statuses``.

        Keyword fields (progress, start_time, end_time, scheduled_time,
        execution_status, reconciliation) are written in the same update;
        ``error`` is appended to the error log.

        Returns:
            True if this call applied the transition, False if the migration
            was not in an expected status
        """

    @abstractmethod
    async def claim_due(self, migration_id: str, now: datetime) -> bool:
        """
        Promote a scheduled migration whose time has come to STARTING.

        Returns:
            True for exactly one caller per migration
        """

    @abstractmethod
    async def refine_transfer(
        self,
        migration_id: str,
        progress: int | None = None,
        stats: MigrationStats | None = None,
    ) -> bool:
        """
        Raise progress and stats of a transferring migration.

        Values never decrease; returns False when the migration is no longer
        starting or running.
        """

    @abstractmethod
    async def append_error(self, migration_id: str, message: str) -> None:
        """Append to the migration's error log."""

    @abstractmethod
    async def update_reconciliation(
        self,
        migration_id: str,
        reconciliation: Reconciliation,
        *,
        expected_status: MigrationStatus | None = None,
        only_if_missing: bool = False,
    ) -> bool:
        """Write the reconciliation sub-record, optionally guarded by status."""

    @abstractmethod
    async def update_schedule(self, migration_id: str, scheduled_time: datetime) -> bool:
        """Change the due time of a migration that is still scheduled."""

    @abstractmethod
    async def list_due_scheduled(self, now: datetime) -> list[Migration]:
        """Scheduled migrations whose due time is at or before ``now``."""

    @abstractmethod
    async def list_scheduled(self, due_before: datetime | None = None) -> list[Migration]:
        """Scheduled migrations ordered by due time."""

    @abstractmethod
    async def get_schedule_statistics(self, now: datetime) -> dict[str, int]:
        """total_scheduled, future_scheduled and pending_execution counts."""

    @abstractmethod
    async def list_stale(
        self, statuses: Iterable[MigrationStatus], started_before: datetime
    ) -> list[Migration]:
        """Migrations in ``statuses`` whose start time is older than the cutoff."""

    @abstractmethod
    async def add_log(self, migration_id: str, level: str, message: str) -> None:
        """Persist one log line for a migration."""

    @abstractmethod
    async def get_logs(self, migration_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        """Log lines of a migration in insertion order (the last ``limit`` ones)."""

    @abstractmethod
    async def save_report(self, migration_id: str, report: dict[str, Any]) -> None:
        """Store the reconciliation report artifact."""

    @abstractmethod
    async def get_report(self, migration_id: str) -> dict[str, Any] | None:
        """Retrieve the reconciliation report artifact."""

    @abstractmethod
    async def cleanup_old_migrations(self, older_than: datetime) -> int:
        """Delete terminal migrations last updated before the cutoff."""
