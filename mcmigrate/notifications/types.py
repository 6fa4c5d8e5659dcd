"""
Event types emitted to notification sinks.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from mcmigrate.core.clock import to_iso, utc_now
from mcmigrate.types import Migration

MIGRATION_UPDATE = "migration_update"


@dataclass(frozen=True)
class MigrationUpdateEvent:
    """
    State snapshot of one migration, emitted on every state-affecting change.

    Built from the repository row right after the write, so a subscriber
    always sees persisted state.

    Attributes:
        migration_id: Id of the migration
        status: Status value after the change
        progress: Percent complete
        stats: Transfer statistics dict
        errors: Error log so far
        reconciliation: Reconciliation sub-record dict, if any
        start_time: ISO start of the transfer phase
        end_time: ISO end of the transfer phase
        duration: Seconds between start and end (or now)
        timestamp: When the event was built
    """

    migration_id: str
    status: str
    progress: int
    stats: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    reconciliation: dict[str, Any] | None = None
    start_time: str | None = None
    end_time: str | None = None
    duration: float | None = None
    timestamp: datetime = field(default_factory=utc_now)

    event_type = MIGRATION_UPDATE

    @classmethod
    def from_migration(cls, migration: Migration) -> "MigrationUpdateEvent":
        return cls(
            migration_id=migration.id,
            status=migration.status.value,
            progress=migration.progress,
            stats=migration.stats.to_dict(),
            errors=list(migration.errors),
            reconciliation=migration.reconciliation.to_dict() if migration.reconciliation else None,
            start_time=to_iso(migration.start_time),
            end_time=to_iso(migration.end_time),
            duration=migration.duration,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "timestamp": to_iso(self.timestamp),
            "data": {
                "id": self.migration_id,
                "status": self.status,
                "progress": self.progress,
                "stats": self.stats,
                "errors": self.errors,
                "reconciliation": self.reconciliation,
                "start_time": self.start_time,
                "end_time": self.end_time,
                "duration": self.duration,
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())
