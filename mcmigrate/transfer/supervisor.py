"""
Transfer Supervisor - owns the transfer phase of every migration.

Spawns ``mc mirror`` for a migration, consumes its output line by line,
refines progress and stats, and drives the migration through
``starting -> running -> completed | failed``. A successful exit hands the
migration to the reconciliation engine.

Usage:
    >>> supervisor = TransferSupervisor(storage, publisher, engine, config)
    >>> migration = await supervisor.submit("a/bucket1", "b/bucket2")
    >>> await supervisor.wait(migration.id)

Lifecycle:
    1. Spawn the tool (spawn failure -> failed)
    2. starting -> running
    3. Pump stdout and stderr, persisting every line
    4. Exit 0 -> completed (progress 100) -> reconciliation
       Exit != 0, timeout -> failed
"""

import asyncio
from datetime import datetime, timedelta
from functools import partial
from typing import TYPE_CHECKING

from mcmigrate.core.clock import ensure_utc, utc_now
from mcmigrate.core.config import MigratorConfig
from mcmigrate.core.exceptions import (
    InvalidConfigError,
    MigrationNotFoundError,
    TransferSpawnError,
    TransferTimeoutError,
)
from mcmigrate.core.logger import get_logger
from mcmigrate.core.streams import read_lines
from mcmigrate.monitoring import metrics
from mcmigrate.monitoring.logging import migration_log_context
from mcmigrate.notifications.publisher import MigrationUpdatePublisher
from mcmigrate.reconciliation.engine import ReconciliationEngine
from mcmigrate.storage.base import MigrationStorage
from mcmigrate.transfer.command import build_mirror_args, format_command
from mcmigrate.transfer.parser import TransferOutputParser
from mcmigrate.types import (
    Endpoint,
    ExecutionStatus,
    Migration,
    MigrationOptions,
    MigrationStatus,
    Reconciliation,
    ReconciliationStatus,
)

if TYPE_CHECKING:
    from mcmigrate.scheduler.scheduler import MigrationScheduler

logger = get_logger(__name__)

_TRANSFERRING = (MigrationStatus.STARTING, MigrationStatus.RUNNING)
_ORPHANABLE = (MigrationStatus.STARTING, MigrationStatus.RUNNING, MigrationStatus.RECONCILING)


class TransferSupervisor:
    """
    Runs one supervising task per active transfer.

    Every decision reads the repository; the only in-process state is the
    set of running tasks and their child processes.
    """

    def __init__(
        self,
        storage: MigrationStorage,
        publisher: MigrationUpdatePublisher,
        reconciler: ReconciliationEngine,
        config: MigratorConfig | None = None,
        scheduler: "MigrationScheduler | None" = None,
    ):
        self.storage = storage
        self.publisher = publisher
        self.reconciler = reconciler
        self.config = config or MigratorConfig()
        self.scheduler = scheduler

        self._tasks: dict[str, asyncio.Task] = {}
        self._processes: dict[str, asyncio.subprocess.Process] = {}

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    def is_supervising(self, migration_id: str) -> bool:
        return migration_id in self._tasks

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        source: str,
        destination: str,
        options: MigrationOptions | None = None,
        scheduled_time: datetime | None = None,
    ) -> Migration:
        """
        Create a migration and start it now, or at ``scheduled_time``.

        A scheduled time that is not in the future starts the migration
        immediately.

        Raises:
            InvalidConfigError: If an endpoint lacks its alias or bucket
            DuplicateActiveMigrationError: If the pair already has an
                active migration
        """
        source_endpoint = Endpoint.parse(source)
        destination_endpoint = Endpoint.parse(destination)

        for label, endpoint in (("source", source_endpoint), ("destination", destination_endpoint)):
            if not endpoint.is_complete:
                metrics.MIGRATIONS_REJECTED.labels(reason="invalid_config").inc()
                msg = f"Invalid {label} {str(endpoint)!r}: expected alias/bucket[/path]"
                raise InvalidConfigError(msg)

        now = utc_now()
        scheduled = scheduled_time is not None and ensure_utc(scheduled_time) > now

        migration = Migration(
            source=source_endpoint,
            destination=destination_endpoint,
            options=options or MigrationOptions(),
        )
        if scheduled:
            migration.status = MigrationStatus.SCHEDULED
            migration.execution_status = ExecutionStatus.SCHEDULED
            migration.scheduled_time = ensure_utc(scheduled_time)
        else:
            migration.start_time = now

        try:
            await self.storage.insert_migration(migration)
        except Exception as e:
            metrics.MIGRATIONS_REJECTED.labels(reason=type(e).__name__).inc()
            raise

        mode = "scheduled" if scheduled else "immediate"
        metrics.MIGRATIONS_SUBMITTED.labels(mode=mode).inc()

        if scheduled:
            message = f"Migration scheduled for {migration.scheduled_time.isoformat()}"
        else:
            message = "Migration submitted"
        logger.info(f"{message}: {source_endpoint} -> {destination_endpoint} ({migration.id})")
        await self.storage.add_log(migration.id, "info", message)
        await self.publisher.migration_updated(migration.id)

        if scheduled:
            if self.scheduler is not None:
                await self.scheduler.track(migration)
        else:
            self.launch(migration.id)

        return migration

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def launch(self, migration_id: str) -> asyncio.Task:
        """Start supervising a STARTING migration in a background task."""
        task = self._tasks.get(migration_id)
        if task is not None and not task.done():
            return task

        task = asyncio.create_task(self.execute(migration_id), name=f"migration-{migration_id}")
        self._tasks[migration_id] = task
        task.add_done_callback(partial(self._on_task_done, migration_id))
        return task

    def _on_task_done(self, migration_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(migration_id) is task:
            del self._tasks[migration_id]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Supervision of migration {migration_id} crashed: {error}",
                exc_info=error,
            )

    async def execute(self, migration_id: str) -> Migration | None:
        """
        Run the transfer of a STARTING migration to its end, then reconcile.

        Returns:
            The migration as stored after the run
        """
        migration = await self.storage.get_migration(migration_id)
        if migration is None:
            raise MigrationNotFoundError(migration_id)

        with migration_log_context(migration_id, phase="transfer"):
            try:
                completed = await self._transfer(migration)
            finally:
                self._processes.pop(migration_id, None)

        if completed:
            await self.reconciler.reconcile(migration_id)

        return await self.storage.get_migration(migration_id)

    async def _transfer(self, migration: Migration) -> bool:
        """Returns True when the transfer reached COMPLETED."""
        if migration.status is not MigrationStatus.STARTING:
            logger.warning(
                f"Migration {migration.id} is {migration.status.value}, not starting; skipped"
            )
            return False

        args = build_mirror_args(migration.source, migration.destination, migration.options)
        command = format_command(self.config.tool_path, args)
        logger.info(f"Starting transfer: {command}")
        await self.storage.add_log(migration.id, "info", f"Executing: {command}")

        try:
            process = await asyncio.create_subprocess_exec(
                self.config.tool_path,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            error = TransferSpawnError(f"Process spawn error: {e}")
            await self._fail(migration.id, [MigrationStatus.STARTING], str(error))
            return False

        self._processes[migration.id] = process

        started = await self.storage.transition(
            migration.id,
            [MigrationStatus.STARTING],
            MigrationStatus.RUNNING,
            start_time=migration.start_time or utc_now(),
            execution_status=ExecutionStatus.RUNNING,
        )
        if not started:
            logger.info(f"Migration {migration.id} left starting before the tool ran")
            await self._terminate(process)
            return False
        await self.publisher.migration_updated(migration.id)

        parser = TransferOutputParser(
            stats=migration.stats,
            progress=migration.progress,
            max_progress=self.config.max_progress_while_running,
        )

        metrics.ACTIVE_TRANSFERS.inc()
        try:
            returncode = await asyncio.wait_for(
                self._pump(migration.id, process, parser),
                timeout=self.config.transfer_timeout_seconds,
            )
        except asyncio.TimeoutError:
            await self._terminate(process)
            error = TransferTimeoutError(migration.id, self.config.transfer_timeout_seconds)
            await self._fail(migration.id, [MigrationStatus.RUNNING], str(error))
            return False
        except asyncio.CancelledError:
            await self._terminate(process)
            await self._fail(
                migration.id, [MigrationStatus.RUNNING], "Transfer interrupted by service shutdown"
            )
            raise
        except Exception as e:
            await self._terminate(process)
            await self._fail(migration.id, [MigrationStatus.RUNNING], f"Transfer supervision error: {e}")
            return False
        finally:
            metrics.ACTIVE_TRANSFERS.dec()

        if returncode != 0:
            await self._fail(
                migration.id, [MigrationStatus.RUNNING], f"Transfer tool exited with code {returncode}"
            )
            return False

        completed = await self.storage.transition(
            migration.id,
            [MigrationStatus.RUNNING],
            MigrationStatus.COMPLETED,
            progress=100,
            end_time=utc_now(),
        )
        if not completed:
            return False

        logger.info(f"Transfer of migration {migration.id} completed")
        await self.storage.add_log(migration.id, "info", "Transfer completed successfully")
        await self.publisher.migration_updated(migration.id)
        return True

    async def _pump(
        self, migration_id: str, process: asyncio.subprocess.Process, parser: TransferOutputParser
    ) -> int:
        readers = [
            asyncio.create_task(self._consume(migration_id, process.stdout, "stdout", parser)),
            asyncio.create_task(self._consume(migration_id, process.stderr, "stderr", parser)),
        ]
        try:
            await asyncio.gather(*readers)
        finally:
            # a failed reader must not leave its sibling writing logs
            for reader in readers:
                reader.cancel()
            await asyncio.gather(*readers, return_exceptions=True)
        return await process.wait()

    async def _consume(
        self,
        migration_id: str,
        stream: asyncio.StreamReader,
        name: str,
        parser: TransferOutputParser,
    ) -> None:
        async for line in read_lines(stream):
            line = line.rstrip()
            if not line.strip():
                continue

            await self.storage.add_log(migration_id, "error" if name == "stderr" else "info", line)

            update = parser.feed(line, name)
            metrics.TRANSFER_LINES.labels(kind=update.kind).inc()

            if update.error:
                await self.storage.append_error(migration_id, update.error)
            if update.classified:
                await self.storage.refine_transfer(
                    migration_id, progress=parser.progress, stats=parser.stats
                )
            if update.classified or update.error:
                await self.publisher.migration_updated(migration_id)

    async def _fail(self, migration_id: str, from_statuses: list, message: str) -> bool:
        logger.error(f"Migration {migration_id} failed: {message}")
        applied = await self.storage.transition(
            migration_id,
            from_statuses,
            MigrationStatus.FAILED,
            error=message,
            end_time=utc_now(),
        )
        if applied:
            await self.storage.add_log(migration_id, "error", message)
            await self.publisher.migration_updated(migration_id)
        return applied

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Send terminate, then kill once the grace period runs out."""
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self.config.terminate_grace_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Transfer process {process.pid} ignored terminate, killing it")
            process.kill()
            await process.wait()

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    async def cancel(self, migration_id: str) -> bool:
        """
        Cancel a scheduled, starting or running migration.

        Returns:
            True if this call cancelled the migration

        Raises:
            MigrationNotFoundError: If the id is unknown
        """
        migration = await self.storage.get_migration(migration_id)
        if migration is None:
            raise MigrationNotFoundError(migration_id)

        if migration.status is MigrationStatus.SCHEDULED:
            if self.scheduler is not None:
                return await self.scheduler.cancel(migration_id)
            applied = await self.storage.transition(
                migration_id,
                [MigrationStatus.SCHEDULED],
                MigrationStatus.CANCELLED,
                scheduled_time=None,
                execution_status=ExecutionStatus.CANCELLED,
            )
        elif migration.status in _TRANSFERRING:
            applied = await self.storage.transition(
                migration_id,
                _TRANSFERRING,
                MigrationStatus.CANCELLED,
                end_time=utc_now(),
                execution_status=ExecutionStatus.CANCELLED,
            )
            process = self._processes.get(migration_id)
            if applied and process is not None:
                await self._terminate(process)
        else:
            logger.info(f"Migration {migration_id} is {migration.status.value}; nothing to cancel")
            return False

        if applied:
            logger.info(f"Migration {migration_id} cancelled")
            await self.storage.add_log(migration_id, "warning", "Migration cancelled")
            await self.publisher.migration_updated(migration_id)
        return applied

    async def wait(self, migration_id: str) -> None:
        """Wait until the supervising task of a migration (if any) has finished."""
        task = self._tasks.get(migration_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def wait_all(self) -> None:
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        """
        Stop every supervising task.

        Running transfers are terminated and marked failed; reconciliations
        in flight are abandoned and picked up by restart recovery.
        """
        self.reconciler.abandon_all()
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Transfer supervisor stopped ({len(tasks)} tasks interrupted)")

    # ------------------------------------------------------------------
    # Restart recovery
    # ------------------------------------------------------------------

    async def recover_stale(self, now: datetime | None = None) -> int:
        """
        Fail migrations orphaned by a previous process.

        Any migration in starting, running or reconciling that started more
        than ``staleness_seconds`` ago and is not supervised here is marked
        failed. A completed migration whose reconciliation never began gets a
        failed reconciliation record. Processes are never resumed.

        Returns:
            Number of migrations recovered
        """
        now = ensure_utc(now) if now else utc_now()
        cutoff = now - timedelta(seconds=self.config.staleness_seconds)
        recovered = 0

        for migration in await self.storage.list_stale(_ORPHANABLE, cutoff):
            if self._owned(migration.id):
                continue

            previous = migration.status
            fields = {"end_time": now}
            if previous is MigrationStatus.RECONCILING:
                reconciliation = migration.reconciliation or Reconciliation()
                reconciliation.status = ReconciliationStatus.FAILED
                reconciliation.error = "Reconciliation interrupted"
                reconciliation.end_time = now
                fields["reconciliation"] = reconciliation

            message = f"Migration interrupted: service stopped while {previous.value}"
            applied = await self.storage.transition(
                migration.id, [previous], MigrationStatus.FAILED, error=message, **fields
            )
            if not applied:
                continue

            recovered += 1
            await self._recovered(migration.id, previous, message)
            if previous is MigrationStatus.RECONCILING:
                await self.reconciler.discard_scratch(migration.id)

        for migration in await self.storage.list_stale([MigrationStatus.COMPLETED], cutoff):
            if migration.reconciliation is not None or self._owned(migration.id):
                continue

            reconciliation = Reconciliation(
                status=ReconciliationStatus.FAILED,
                start_time=now,
                end_time=now,
                error="Reconciliation never started",
            )
            written = await self.storage.update_reconciliation(
                migration.id,
                reconciliation,
                expected_status=MigrationStatus.COMPLETED,
                only_if_missing=True,
            )
            if not written:
                continue

            message = "Reconciliation interrupted: service stopped before it started"
            await self.storage.append_error(migration.id, message)
            recovered += 1
            await self._recovered(migration.id, MigrationStatus.COMPLETED, message)

        if recovered:
            logger.warning(f"Recovered {recovered} orphaned migrations")
        return recovered

    def _owned(self, migration_id: str) -> bool:
        return migration_id in self._tasks or self.reconciler.is_running(migration_id)

    async def _recovered(self, migration_id: str, previous: MigrationStatus, message: str) -> None:
        metrics.RECOVERED_ORPHANS.labels(status=previous.value).inc()
        logger.warning(f"Migration {migration_id}: {message}")
        await self.storage.add_log(migration_id, "error", message)
        await self.publisher.migration_updated(migration_id)
