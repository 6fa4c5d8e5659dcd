"""
Streaming Reconciliation Engine.

Compares the source and destination inventories of a completed transfer
without holding either listing in memory:

1. Inventory: both endpoints are listed concurrently; records are written to
   a scratch SQLite relation in fixed-size chunks.
2. Comparison: distinct keys are paged in key order; each page is
   outer-joined against both sides and classified. Matches are only counted;
   non-matches are kept as differences.
3. Reporting: a summary and recommendations are derived from the counts and
   stored as the migration's report artifact. The scratch relation is dropped.

A listing failure fails only the reconciliation: the migration returns to
COMPLETED with ``reconciliation.status == failed``.

Usage:
    >>> engine = ReconciliationEngine(storage, publisher, McObjectLister("mc"), config)
    >>> reconciliation = await engine.reconcile(migration_id)
"""

import asyncio
import math
from pathlib import Path

from mcmigrate.core.clock import utc_now
from mcmigrate.core.config import MigratorConfig
from mcmigrate.core.exceptions import MigrationNotFoundError, ReconciliationAbandonedError
from mcmigrate.core.logger import get_logger
from mcmigrate.monitoring import metrics
from mcmigrate.monitoring.logging import migration_log_context
from mcmigrate.notifications.publisher import MigrationUpdatePublisher
from mcmigrate.reconciliation.lister import ObjectLister
from mcmigrate.reconciliation.report import build_report, export_report
from mcmigrate.storage.backends.sqlite import InventoryRow, SQLiteInventoryStore
from mcmigrate.storage.base import MigrationStorage
from mcmigrate.types import (
    Difference,
    DifferenceKind,
    Endpoint,
    InventorySide,
    Migration,
    MigrationStatus,
    ObjectRecord,
    ObjectStats,
    Reconciliation,
    ReconciliationStatus,
    ReconciliationSummary,
)

logger = get_logger(__name__)


def classify(row: InventoryRow) -> DifferenceKind | None:
    """
    Classify one joined key. None means the key matches on both sides.

    A missing fingerprint compares as the empty string.
    """
    if not row.in_destination:
        return DifferenceKind.MISSING_IN_DESTINATION
    if not row.in_source:
        return DifferenceKind.MISSING_IN_SOURCE
    if row.source_size != row.dest_size:
        return DifferenceKind.SIZE_MISMATCH
    if (row.source_etag or "") != (row.dest_etag or ""):
        return DifferenceKind.CONTENT_MISMATCH
    return None


class ReconciliationEngine:
    """
    Runs reconciliations and owns the reconciliation sub-record of each migration.
    """

    def __init__(
        self,
        storage: MigrationStorage,
        publisher: MigrationUpdatePublisher,
        lister: ObjectLister,
        config: MigratorConfig | None = None,
    ):
        config = config or MigratorConfig(scratch_dir=None)
        self.storage = storage
        self.publisher = publisher
        self.lister = lister
        self.chunk_size = config.inventory_chunk_size
        self.batch_size = config.comparison_batch_size
        self.scratch_dir = config.scratch_dir
        self.reports_dir = config.reports_dir

        self._in_flight: set[str] = set()
        self._abandoned: set[str] = set()

    def scratch_path(self, migration_id: str) -> str:
        if self.scratch_dir is None:
            return ":memory:"
        return str(Path(self.scratch_dir) / f"reconciliation_{migration_id}.db")

    def is_running(self, migration_id: str) -> bool:
        return migration_id in self._in_flight

    def abandon(self, migration_id: str) -> bool:
        """
        Flag an in-flight reconciliation as abandoned.

        The work in progress finishes its current step, then stops without
        writing further results.
        """
        if migration_id not in self._in_flight:
            return False
        self._abandoned.add(migration_id)
        logger.info(f"Reconciliation of migration {migration_id} abandoned")
        return True

    def abandon_all(self) -> None:
        for migration_id in list(self._in_flight):
            self.abandon(migration_id)

    async def discard_scratch(self, migration_id: str) -> None:
        """Remove a scratch relation left behind by an interrupted run."""
        if self.scratch_dir is not None:
            await SQLiteInventoryStore(self.scratch_path(migration_id)).destroy()

    def _ensure_live(self, migration_id: str) -> None:
        if migration_id in self._abandoned:
            msg = f"Reconciliation of migration {migration_id} was abandoned"
            raise ReconciliationAbandonedError(msg)

    async def reconcile(self, migration_id: str) -> Reconciliation | None:
        """
        Reconcile a COMPLETED migration.

        Returns:
            The final reconciliation sub-record, or None if the migration was
            not in COMPLETED (already reconciled, cancelled, ...) or the run
            was abandoned

        Raises:
            MigrationNotFoundError: If the id is unknown
        """
        migration = await self.storage.get_migration(migration_id)
        if migration is None:
            raise MigrationNotFoundError(migration_id)

        reconciliation = Reconciliation()
        started = await self.storage.transition(
            migration_id,
            [MigrationStatus.COMPLETED],
            MigrationStatus.RECONCILING,
            reconciliation=reconciliation,
        )
        if not started:
            logger.warning(
                f"Migration {migration_id} is {migration.status.value}, not completed; "
                "reconciliation skipped"
            )
            return None

        self._in_flight.add(migration_id)
        await self.storage.add_log(migration_id, "info", "Reconciliation started")
        await self.publisher.migration_updated(migration_id)

        store = SQLiteInventoryStore(self.scratch_path(migration_id))
        try:
            with migration_log_context(migration_id, phase="reconciliation"):
                await self._run(migration, reconciliation, store)
        except ReconciliationAbandonedError as e:
            logger.info(str(e))
            return None
        except Exception as e:
            await self._fail(migration, reconciliation, e)
        finally:
            await store.destroy()
            self._in_flight.discard(migration_id)
            self._abandoned.discard(migration_id)

        return reconciliation

    async def _run(
        self, migration: Migration, reconciliation: Reconciliation, store: SQLiteInventoryStore
    ) -> None:
        source_stats, dest_stats = await self._inventory(migration, reconciliation, store)
        reconciliation.source_stats = source_stats
        reconciliation.dest_stats = dest_stats
        reconciliation.phase = "comparison"
        await self._checkpoint(migration.id, reconciliation)

        await self._compare(migration.id, reconciliation, store)

        reconciliation.phase = "reporting"
        counts = reconciliation.counts
        reconciliation.summary = ReconciliationSummary(
            object_count_match=source_stats.object_count == dest_stats.object_count,
            total_size_match=source_stats.total_size == dest_stats.total_size,
            differences_found=counts.total_differences > 0,
        )
        reconciliation.status = ReconciliationStatus.COMPLETED
        reconciliation.end_time = utc_now()
        reconciliation.phase = "done"

        self._ensure_live(migration.id)
        report = build_report(migration, reconciliation)
        await self.storage.save_report(migration.id, report)
        if self.reports_dir:
            path = export_report(report, self.reports_dir)
            logger.info(f"Reconciliation report written to {path}")

        target = (
            MigrationStatus.COMPLETED_WITH_DIFFERENCES
            if reconciliation.summary.differences_found
            else MigrationStatus.VERIFIED
        )
        applied = await self.storage.transition(
            migration.id,
            [MigrationStatus.RECONCILING],
            target,
            reconciliation=reconciliation,
        )
        if not applied:
            logger.warning(
                f"Migration {migration.id} left reconciling before the result was written"
            )
            return

        metrics.record_differences(counts)
        metrics.RECONCILIATION_RESULTS.labels(result=target.value).inc()
        await self.storage.add_log(
            migration.id,
            "info",
            f"Reconciliation finished: {target.value} "
            f"({counts.matches} matches, {counts.total_differences} differences)",
        )
        await self.publisher.migration_updated(migration.id)

    async def _inventory(
        self, migration: Migration, reconciliation: Reconciliation, store: SQLiteInventoryStore
    ) -> tuple[ObjectStats, ObjectStats]:
        """List both endpoints concurrently into the scratch relation."""
        tasks = [
            asyncio.create_task(
                self._collect(migration.id, InventorySide.SOURCE, migration.source, reconciliation, store)
            ),
            asyncio.create_task(
                self._collect(
                    migration.id, InventorySide.DESTINATION, migration.destination, reconciliation, store
                )
            ),
        ]
        try:
            source_stats, dest_stats = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return source_stats, dest_stats

    async def _collect(
        self,
        migration_id: str,
        side: InventorySide,
        endpoint: Endpoint,
        reconciliation: Reconciliation,
        store: SQLiteInventoryStore,
    ) -> ObjectStats:
        chunk: list[ObjectRecord] = []
        chunk_id = 0

        with migration_log_context(migration_id, phase="inventory", side=side.value):
            async for record in self.lister.list_objects(endpoint):
                chunk.append(record)
                if len(chunk) >= self.chunk_size:
                    await self._flush(migration_id, side, chunk_id, chunk, reconciliation, store)
                    chunk_id += 1
                    chunk = []

            if chunk:
                await self._flush(migration_id, side, chunk_id, chunk, reconciliation, store)
                chunk_id += 1

            stats = await store.side_stats(side)
            logger.info(
                f"Inventoried {stats.object_count} objects ({stats.total_size} bytes) "
                f"from {endpoint} in {chunk_id} chunks"
            )
            return stats

    async def _flush(
        self,
        migration_id: str,
        side: InventorySide,
        chunk_id: int,
        chunk: list[ObjectRecord],
        reconciliation: Reconciliation,
        store: SQLiteInventoryStore,
    ) -> None:
        self._ensure_live(migration_id)
        await store.insert_chunk(side, chunk_id, chunk)
        if side is InventorySide.SOURCE:
            reconciliation.source_processed += len(chunk)
        else:
            reconciliation.dest_processed += len(chunk)
        await self._checkpoint(migration_id, reconciliation)

    async def _compare(
        self, migration_id: str, reconciliation: Reconciliation, store: SQLiteInventoryStore
    ) -> None:
        """Page through the distinct keys in key order and classify each one."""
        self._ensure_live(migration_id)
        total_keys = await store.count_keys()
        logger.info(
            f"Comparing {total_keys} distinct keys in "
            f"{math.ceil(total_keys / self.batch_size)} pages of {self.batch_size}"
        )
        after_key: str | None = None
        compared = 0

        while compared < total_keys:
            self._ensure_live(migration_id)
            page = await store.compare_page(after_key, self.batch_size)
            if not page:
                break

            for row in page:
                kind = classify(row)
                reconciliation.counts.record(kind)
                if kind is not None:
                    reconciliation.differences.append(
                        Difference(
                            path=row.key,
                            kind=kind,
                            source_size=row.source_size,
                            dest_size=row.dest_size,
                        )
                    )

            compared += len(page)
            reconciliation.pages_completed += 1
            after_key = page[-1].key
            logger.debug(
                f"Compared page {reconciliation.pages_completed} "
                f"({compared}/{total_keys} keys)"
            )

    async def _checkpoint(self, migration_id: str, reconciliation: Reconciliation) -> None:
        """Persist progress of a running reconciliation and broadcast it."""
        self._ensure_live(migration_id)
        written = await self.storage.update_reconciliation(
            migration_id, reconciliation, expected_status=MigrationStatus.RECONCILING
        )
        if not written:
            msg = f"Migration {migration_id} is no longer reconciling"
            raise ReconciliationAbandonedError(msg)
        await self.publisher.migration_updated(migration_id)

    async def _fail(
        self, migration: Migration, reconciliation: Reconciliation, error: Exception
    ) -> None:
        logger.error(f"Reconciliation of migration {migration.id} failed: {error}")

        reconciliation.status = ReconciliationStatus.FAILED
        reconciliation.error = str(error)
        reconciliation.end_time = utc_now()

        applied = await self.storage.transition(
            migration.id,
            [MigrationStatus.RECONCILING],
            MigrationStatus.COMPLETED,
            reconciliation=reconciliation,
            error=f"Reconciliation failed: {error}",
        )
        if not applied:
            return

        metrics.RECONCILIATION_RESULTS.labels(result="failed").inc()
        await self.storage.add_log(migration.id, "error", f"Reconciliation failed: {error}")
        await self.publisher.migration_updated(migration.id)
