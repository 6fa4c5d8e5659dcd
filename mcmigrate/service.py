"""
MigrationService - wires the repository, event bus, supervisor,
reconciliation engine and scheduler into one runnable service.

Usage:
    >>> from mcmigrate import MigrationService, MigratorConfig
    >>>
    >>> async with MigrationService(MigratorConfig(db_path="./data/migrations.db")) as service:
    ...     migration = await service.submit("prod/bucket1", "backup/bucket1")
    ...     await service.wait(migration.id)
    ...     report = await service.get_report(migration.id)

    # Or as a daemon:
    >>> await MigrationService().run_forever()
"""

import asyncio
import signal
from datetime import datetime
from typing import Any

from mcmigrate.core.config import MigratorConfig, get_config
from mcmigrate.core.exceptions import MigrationNotFoundError
from mcmigrate.core.logger import get_logger
from mcmigrate.monitoring import metrics
from mcmigrate.notifications import EventBus, MigrationUpdatePublisher
from mcmigrate.reconciliation import McObjectLister, ObjectLister, ReconciliationEngine
from mcmigrate.scheduler import MigrationScheduler
from mcmigrate.state_machine import MigrationStateMachine
from mcmigrate.storage import MigrationStorage, SQLiteMigrationStorage
from mcmigrate.storage.core import (
    HealthCheckResult,
    MigrationStatistics,
    check_health_with_timeout,
)
from mcmigrate.transfer import TransferSupervisor
from mcmigrate.types import Migration, MigrationOptions, MigrationStatus

logger = get_logger(__name__)


class MigrationService:
    """
    The migration service facade.

    Owns the lifecycle of its components: ``start()`` opens the repository,
    recovers migrations orphaned by a previous process and starts the
    scheduler; ``stop()`` reverses it.
    """

    def __init__(
        self,
        config: MigratorConfig | None = None,
        storage: MigrationStorage | None = None,
        bus: EventBus | None = None,
        lister: ObjectLister | None = None,
    ):
        self.config = config or get_config()
        self.storage = storage or SQLiteMigrationStorage(
            self.config.db_path,
            state_machine=MigrationStateMachine(on_transition=metrics.record_transition),
        )
        self.bus = bus or EventBus()
        self.publisher = MigrationUpdatePublisher(self.storage, self.bus)
        self.reconciler = ReconciliationEngine(
            self.storage,
            self.publisher,
            lister or McObjectLister(self.config.tool_path),
            self.config,
        )
        self.supervisor = TransferSupervisor(
            self.storage, self.publisher, self.reconciler, self.config
        )
        self.scheduler = MigrationScheduler(
            self.storage, self.supervisor, self.publisher, self.config
        )
        self.supervisor.scheduler = self.scheduler

        self._started = False
        self._shutdown_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._started

    async def start(self, recover: bool = True, schedule: bool = True) -> None:
        """
        Start the service.

        Args:
            recover: Fail migrations orphaned by a previous process
            schedule: Run the scheduler (timers and periodic poll)
        """
        if self._started:
            return

        await self.storage.initialize()
        if recover:
            recovered = await self.supervisor.recover_stale()
            if recovered:
                logger.warning(f"Restart recovery failed {recovered} orphaned migrations")
        if schedule:
            await self.scheduler.start()
        if self.config.metrics_port:
            metrics.start_metrics_server(self.config.metrics_port)

        self._started = True
        logger.info("Migration service started")

    async def stop(self) -> None:
        """Stop the scheduler, interrupt running work and close the repository."""
        await self.scheduler.stop()
        await self.supervisor.shutdown()
        await self.storage.close()
        self._started = False
        self._shutdown_event.set()
        logger.info("Migration service stopped")

    async def __aenter__(self) -> "MigrationService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def run_forever(self) -> None:
        """Run until SIGINT or SIGTERM."""
        await self.start()
        self._shutdown_event.clear()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._shutdown_event.set)
            except NotImplementedError:  # pragma: no cover
                pass  # Windows doesn't support add_signal_handler

        try:
            await self._shutdown_event.wait()
            logger.info("Shutdown signal received")
        finally:
            await self.stop()

    # ------------------------------------------------------------------
    # Submission and control
    # ------------------------------------------------------------------

    async def submit(
        self,
        source: str,
        destination: str,
        options: MigrationOptions | None = None,
        scheduled_time: datetime | None = None,
    ) -> Migration:
        return await self.supervisor.submit(source, destination, options, scheduled_time)

    async def cancel(self, migration_id: str) -> bool:
        return await self.supervisor.cancel(migration_id)

    async def schedule(self, migration_id: str, when: datetime) -> Migration:
        return await self.scheduler.schedule(migration_id, when)

    async def reschedule(self, migration_id: str, new_time: datetime) -> Migration:
        return await self.scheduler.reschedule(migration_id, new_time)

    async def wait(self, migration_id: str) -> Migration:
        """Wait for the supervising task of a migration and return its stored state."""
        await self.supervisor.wait(migration_id)
        return await self.get_migration(migration_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_migration(self, migration_id: str) -> Migration:
        """
        Raises:
            MigrationNotFoundError: If the id is unknown
        """
        migration = await self.storage.get_migration(migration_id)
        if migration is None:
            raise MigrationNotFoundError(migration_id)
        return migration

    async def list_migrations(
        self, status: MigrationStatus | None = None, limit: int = 100, offset: int = 0
    ) -> list[Migration]:
        return await self.storage.list_migrations(status=status, limit=limit, offset=offset)

    async def get_logs(self, migration_id: str, limit: int | None = None) -> list[str]:
        """Log lines of a migration formatted as ``[timestamp] [LEVEL] message``."""
        await self.get_migration(migration_id)
        entries = await self.storage.get_logs(migration_id, limit)
        return [f"[{entry['timestamp']}] [{entry['level']}] {entry['message']}" for entry in entries]

    async def get_report(self, migration_id: str) -> dict[str, Any] | None:
        await self.get_migration(migration_id)
        return await self.storage.get_report(migration_id)

    async def list_scheduled(self) -> list[Migration]:
        return await self.scheduler.list_scheduled()

    async def scheduler_stats(self) -> dict[str, Any]:
        return await self.scheduler.stats()

    async def get_statistics(self) -> MigrationStatistics:
        return await self.storage.get_statistics()

    async def health_check(self) -> HealthCheckResult:
        return await check_health_with_timeout(self.storage)

    async def cleanup_old_migrations(self, older_than: datetime) -> int:
        return await self.storage.cleanup_old_migrations(older_than)
