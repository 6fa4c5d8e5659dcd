"""
Migration Scheduler - promotes scheduled migrations when they fall due.

Two paths cover every scheduled migration:

1. Near-term timer: a migration due within the lookahead window gets an
   asyncio timer that promotes it at its due time.
2. Periodic poll: every ``poll_interval_seconds`` all due migrations without
   a live timer are promoted, and timers are armed for the next window. The
   poll rebuilds coverage after a restart.

Promotion is the repository's conditional ``scheduled -> starting`` update,
so when a timer and the poll race, exactly one of them wins.

Usage:
    >>> scheduler = MigrationScheduler(storage, supervisor, publisher, config)
    >>> await scheduler.start()
    >>> await scheduler.reschedule(migration_id, new_time)
    >>> await scheduler.stop()
"""

import asyncio
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from mcmigrate.core.clock import ensure_utc, utc_now
from mcmigrate.core.config import MigratorConfig
from mcmigrate.core.exceptions import MigrationNotFoundError, SchedulerError
from mcmigrate.core.logger import get_logger
from mcmigrate.monitoring import metrics
from mcmigrate.notifications.publisher import MigrationUpdatePublisher
from mcmigrate.storage.base import MigrationStorage
from mcmigrate.types import ExecutionStatus, Migration, MigrationStatus

if TYPE_CHECKING:
    from mcmigrate.transfer.supervisor import TransferSupervisor

logger = get_logger(__name__)


class MigrationScheduler:
    """
    Dual timer + poll scheduler for migrations in SCHEDULED.

    Timers are a latency optimization only; the repository is the source of
    truth and the poll alone guarantees every due migration is promoted.
    """

    def __init__(
        self,
        storage: MigrationStorage,
        supervisor: "TransferSupervisor",
        publisher: MigrationUpdatePublisher,
        config: MigratorConfig | None = None,
    ):
        self.storage = storage
        self.supervisor = supervisor
        self.publisher = publisher
        self.config = config or MigratorConfig()

        self._running = False
        self._task: asyncio.Task | None = None
        self._shutdown_event = asyncio.Event()
        self._timers: dict[str, asyncio.Task] = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_timers(self) -> int:
        return len(self._timers)

    def has_timer(self, migration_id: str) -> bool:
        return migration_id in self._timers

    async def start(self) -> None:
        """Start the poll loop. The first poll runs immediately."""
        if self._running:
            return

        self._running = True
        self._shutdown_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name="migration-scheduler")
        logger.info(
            f"Migration scheduler started (poll every {self.config.poll_interval_seconds:g}s, "
            f"timers {self.config.timer_lookahead_seconds:g}s ahead)"
        )

    async def stop(self) -> None:
        """Stop polling and cancel every timer. Scheduled migrations stay scheduled."""
        self._running = False
        self._shutdown_event.set()

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        timers = list(self._timers.values())
        for timer in timers:
            timer.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)
        self._timers.clear()
        metrics.SCHEDULER_TIMERS.set(0)

        logger.info("Migration scheduler stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.poll_once()
            except Exception as e:
                logger.exception(f"Error in scheduler poll: {e}")

            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(), timeout=self.config.poll_interval_seconds
                )
            except TimeoutError:
                pass

    async def poll_once(self, now: datetime | None = None) -> int:
        """
        Promote every due migration without a live timer, then arm timers
        for migrations due within the lookahead window.

        Returns:
            Number of migrations promoted by this poll
        """
        now = ensure_utc(now) if now else utc_now()
        promoted = 0

        for migration in await self.storage.list_due_scheduled(now):
            if migration.id in self._timers:
                continue
            if await self.promote(migration.id, "poll", now=now):
                promoted += 1

        if self._running:
            horizon = now + timedelta(seconds=self.config.timer_lookahead_seconds)
            for migration in await self.storage.list_scheduled(due_before=horizon):
                if migration.id not in self._timers:
                    self._arm(migration)

        if promoted:
            logger.info(f"Scheduler poll promoted {promoted} migrations")
        return promoted

    async def promote(self, migration_id: str, path: str, now: datetime | None = None) -> bool:
        """
        Move a due migration to STARTING and hand it to the supervisor.

        Returns:
            True for exactly one caller per migration
        """
        now = ensure_utc(now) if now else utc_now()
        if not await self.storage.claim_due(migration_id, now):
            logger.debug(f"Migration {migration_id} already promoted or not due ({path})")
            return False

        metrics.SCHEDULER_PROMOTIONS.labels(path=path).inc()
        logger.info(f"Scheduled migration {migration_id} promoted by {path}")
        await self.storage.add_log(migration_id, "info", f"Scheduled execution started ({path})")
        await self.publisher.migration_updated(migration_id)

        self.supervisor.launch(migration_id)
        return True

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    async def track(self, migration: Migration) -> None:
        """Arm a timer for a newly scheduled migration if it is due soon."""
        if not self._running or migration.scheduled_time is None:
            return
        horizon = utc_now() + timedelta(seconds=self.config.timer_lookahead_seconds)
        if migration.scheduled_time <= horizon:
            self._arm(migration)

    def _arm(self, migration: Migration) -> None:
        self._disarm(migration.id)
        timer = asyncio.create_task(
            self._timer(migration.id, migration.scheduled_time),
            name=f"migration-timer-{migration.id}",
        )
        self._timers[migration.id] = timer
        metrics.SCHEDULER_TIMERS.set(len(self._timers))
        logger.debug(f"Timer armed for migration {migration.id} at {migration.scheduled_time}")

    def _disarm(self, migration_id: str) -> None:
        timer = self._timers.pop(migration_id, None)
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()
        metrics.SCHEDULER_TIMERS.set(len(self._timers))

    async def _timer(self, migration_id: str, due: datetime) -> None:
        try:
            while True:
                delay = (due - utc_now()).total_seconds()
                if delay > 0:
                    await asyncio.sleep(delay)
                    continue

                migration = await self.storage.get_migration(migration_id)
                if migration is None or migration.status is not MigrationStatus.SCHEDULED:
                    return
                if migration.scheduled_time and migration.scheduled_time > utc_now():
                    due = migration.scheduled_time
                    continue
                break
        finally:
            if self._timers.get(migration_id) is asyncio.current_task():
                del self._timers[migration_id]
                metrics.SCHEDULER_TIMERS.set(len(self._timers))

        await self.promote(migration_id, "timer")

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    async def _get_scheduled(self, migration_id: str) -> Migration:
        migration = await self.storage.get_migration(migration_id)
        if migration is None:
            raise MigrationNotFoundError(migration_id)
        if migration.status is not MigrationStatus.SCHEDULED:
            msg = f"Migration {migration_id} is {migration.status.value}, not scheduled"
            raise SchedulerError(msg)
        return migration

    async def schedule(self, migration_id: str, when: datetime) -> Migration:
        """
        Set the due time of a scheduled migration and re-arm its coverage.

        A time that is already due promotes the migration immediately.

        Raises:
            MigrationNotFoundError: If the id is unknown
            SchedulerError: If the migration is no longer scheduled
        """
        when = ensure_utc(when)
        await self._get_scheduled(migration_id)

        self._disarm(migration_id)
        if not await self.storage.update_schedule(migration_id, when):
            msg = f"Migration {migration_id} left scheduled before it could be rescheduled"
            raise SchedulerError(msg)

        logger.info(f"Migration {migration_id} scheduled for {when.isoformat()}")
        await self.storage.add_log(migration_id, "info", f"Scheduled for {when.isoformat()}")
        await self.publisher.migration_updated(migration_id)

        migration = await self.storage.get_migration(migration_id)
        if when <= utc_now():
            await self.promote(migration_id, "reschedule")
        else:
            await self.track(migration)

        return await self.storage.get_migration(migration_id)

    async def reschedule(self, migration_id: str, new_time: datetime) -> Migration:
        """Move a scheduled migration to ``new_time``."""
        return await self.schedule(migration_id, new_time)

    async def cancel(self, migration_id: str) -> bool:
        """
        Cancel a scheduled migration without involving the supervisor.

        Returns:
            True if this call cancelled it, False if it was no longer scheduled

        Raises:
            MigrationNotFoundError: If the id is unknown
        """
        migration = await self.storage.get_migration(migration_id)
        if migration is None:
            raise MigrationNotFoundError(migration_id)

        self._disarm(migration_id)
        applied = await self.storage.transition(
            migration_id,
            [MigrationStatus.SCHEDULED],
            MigrationStatus.CANCELLED,
            scheduled_time=None,
            execution_status=ExecutionStatus.CANCELLED,
        )
        if applied:
            logger.info(f"Scheduled migration {migration_id} cancelled")
            await self.storage.add_log(migration_id, "warning", "Scheduled migration cancelled")
            await self.publisher.migration_updated(migration_id)
        return applied

    async def stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = dict(await self.storage.get_schedule_statistics(utc_now()))
        stats.update(
            {
                "active_timers": len(self._timers),
                "is_running": self._running,
                "poll_interval_seconds": self.config.poll_interval_seconds,
                "timer_lookahead_seconds": self.config.timer_lookahead_seconds,
            }
        )
        return stats

    async def list_scheduled(self) -> list[Migration]:
        return await self.storage.list_scheduled()
