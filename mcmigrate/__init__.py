"""
mcmigrate - Supervised object storage bucket migrations with verification.

Runs ``mc mirror`` between two ``alias/bucket`` endpoints, tracks progress
from the tool's output, and verifies the result by comparing streamed
inventories of both sides:
- Durable job repository (SQLite) with atomic state transitions
- Immediate or scheduled execution (near-term timers + periodic poll)
- Streaming reconciliation with a per-migration report
- migration_update events on every state change
- Restart recovery of orphaned migrations

Usage:
    >>> from mcmigrate import MigrationService, MigratorConfig, InMemorySink
    >>>
    >>> service = MigrationService(MigratorConfig(db_path="./data/migrations.db"))
    >>> sink = InMemorySink()
    >>> service.bus.subscribe(sink)
    >>>
    >>> async with service:
    ...     migration = await service.submit("a/bucket1", "b/bucket2")
    ...     migration = await service.wait(migration.id)
    ...     print(migration.status)  # MigrationStatus.VERIFIED
"""

__version__ = "0.1.0"

from mcmigrate.core.config import MigratorConfig, configure, get_config
from mcmigrate.core.exceptions import (
    DuplicateActiveMigrationError,
    InvalidConfigError,
    InvalidStateTransitionError,
    ListingError,
    MigrationError,
    MigrationNotFoundError,
    MissingDependencyError,
    ReconciliationError,
    SchedulerError,
    TransferSpawnError,
    TransferTimeoutError,
)
from mcmigrate.notifications import (
    EventBus,
    InMemorySink,
    LoggingSink,
    MigrationUpdateEvent,
    NotificationSink,
    Subscription,
)
from mcmigrate.service import MigrationService
from mcmigrate.state_machine import MigrationStateMachine
from mcmigrate.types import (
    Difference,
    DifferenceKind,
    Endpoint,
    ExecutionStatus,
    Migration,
    MigrationOptions,
    MigrationStats,
    MigrationStatus,
    ObjectRecord,
    Reconciliation,
    ReconciliationStatus,
)

__all__ = [
    "__version__",
    # Service
    "MigrationService",
    "MigrationStateMachine",
    # Config
    "MigratorConfig",
    "configure",
    "get_config",
    # Types
    "Difference",
    "DifferenceKind",
    "Endpoint",
    "ExecutionStatus",
    "Migration",
    "MigrationOptions",
    "MigrationStats",
    "MigrationStatus",
    "ObjectRecord",
    "Reconciliation",
    "ReconciliationStatus",
    # Notifications
    "EventBus",
    "InMemorySink",
    "LoggingSink",
    "MigrationUpdateEvent",
    "NotificationSink",
    "Subscription",
    # Exceptions
    "DuplicateActiveMigrationError",
    "InvalidConfigError",
    "InvalidStateTransitionError",
    "ListingError",
    "MigrationError",
    "MigrationNotFoundError",
    "MissingDependencyError",
    "ReconciliationError",
    "SchedulerError",
    "TransferSpawnError",
    "TransferTimeoutError",
]
