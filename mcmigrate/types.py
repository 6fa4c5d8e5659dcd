"""
Core types for the migration lifecycle.

A Migration is one requested bulk transfer between two object-storage
endpoints. It moves through the statuses below and, after a successful
transfer, carries a Reconciliation sub-record describing how the source
and destination inventories compare.

Quick Start:
    >>> from mcmigrate.types import Endpoint, Migration, MigrationOptions
    >>>
    >>> migration = Migration(
    ...     source=Endpoint.parse("a/bucket1"),
    ...     destination=Endpoint.parse("b/bucket2"),
    ...     options=MigrationOptions(overwrite=True, exclude=["*.tmp"]),
    ... )
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from mcmigrate.core.clock import parse_datetime, to_iso, utc_now


class MigrationStatus(Enum):
    """
    Status of a migration in its lifecycle.

    State transitions:
        SCHEDULED → STARTING → RUNNING → COMPLETED → RECONCILING → VERIFIED
                                  ↓                      ↓
                               FAILED          COMPLETED_WITH_DIFFERENCES

        SCHEDULED | STARTING | RUNNING → CANCELLED
    """

    SCHEDULED = "scheduled"
    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    RECONCILING = "reconciling"
    VERIFIED = "verified"
    COMPLETED_WITH_DIFFERENCES = "completed_with_differences"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES


ACTIVE_STATUSES = frozenset(
    {
        MigrationStatus.SCHEDULED,
        MigrationStatus.STARTING,
        MigrationStatus.RUNNING,
        MigrationStatus.RECONCILING,
    }
)

TERMINAL_STATUSES = frozenset(
    {
        MigrationStatus.FAILED,
        MigrationStatus.CANCELLED,
        MigrationStatus.VERIFIED,
        MigrationStatus.COMPLETED_WITH_DIFFERENCES,
    }
)


class ExecutionStatus(Enum):
    """How the migration was (or will be) started."""

    IMMEDIATE = "immediate"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    CANCELLED = "cancelled"


class ReconciliationStatus(Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class DifferenceKind(Enum):
    """Classification of one object key that does not match across sides."""

    MISSING_IN_DESTINATION = "missing_in_destination"
    MISSING_IN_SOURCE = "missing_in_source"
    SIZE_MISMATCH = "size_mismatch"
    CONTENT_MISMATCH = "content_mismatch"


class InventorySide(Enum):
    SOURCE = "source"
    DESTINATION = "destination"


@dataclass(frozen=True)
class Endpoint:
    """
    An ``alias/bucket[/path]`` address understood by the transfer tool.

    Attributes:
        alias: Configured tool alias (e.g. "prod-minio")
        bucket_path: Bucket name, optionally followed by an object prefix
    """

    alias: str
    bucket_path: str

    @classmethod
    def parse(cls, address: str) -> "Endpoint":
        """Split an address on its first slash. Missing parts become empty strings."""
        address = (address or "").strip()
        alias, _, rest = address.partition("/")
        return cls(alias=alias.strip(), bucket_path=rest.strip().strip("/"))

    @property
    def bucket(self) -> str:
        return self.bucket_path.split("/", 1)[0]

    @property
    def is_complete(self) -> bool:
        """True when both the alias and the bucket component are present."""
        return bool(self.alias) and bool(self.bucket)

    def __str__(self) -> str:
        return f"{self.alias}/{self.bucket_path}"


@dataclass
class MigrationOptions:
    """
    Transfer flags, passed one-to-one to the transfer tool.

    Attributes:
        overwrite: Overwrite objects that already exist on the destination
        remove: Delete destination objects absent from the source
        exclude: Glob patterns of objects to skip
        checksum: Checksum algorithm used to verify copied objects
        preserve: Preserve object metadata and attributes
        retry: Let the tool retry failed objects
        dry_run: Report what would be copied without copying
        watch: Keep mirroring new changes after the initial copy
    """

    overwrite: bool = False
    remove: bool = False
    exclude: list[str] = field(default_factory=list)
    checksum: str | None = None
    preserve: bool = False
    retry: bool = False
    dry_run: bool = False
    watch: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "overwrite": self.overwrite,
            "remove": self.remove,
            "exclude": list(self.exclude),
            "checksum": self.checksum,
            "preserve": self.preserve,
            "retry": self.retry,
            "dry_run": self.dry_run,
            "watch": self.watch,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "MigrationOptions":
        data = data or {}
        exclude = data.get("exclude") or []
        if isinstance(exclude, str):
            exclude = [exclude]
        return cls(
            overwrite=bool(data.get("overwrite", False)),
            remove=bool(data.get("remove", False)),
            exclude=[pattern for pattern in exclude if pattern],
            checksum=data.get("checksum") or None,
            preserve=bool(data.get("preserve", False)),
            retry=bool(data.get("retry", False)),
            dry_run=bool(data.get("dry_run", data.get("dryRun", False))),
            watch=bool(data.get("watch", False)),
        )


@dataclass
class MigrationStats:
    """Transfer statistics refined from the tool's output."""

    total_objects: int = 0
    transferred_objects: int = 0
    total_size: int = 0
    transferred_size: int = 0
    speed: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_objects": self.total_objects,
            "transferred_objects": self.transferred_objects,
            "total_size": self.total_size,
            "transferred_size": self.transferred_size,
            "speed": self.speed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "MigrationStats":
        data = data or {}
        return cls(
            total_objects=int(data.get("total_objects", 0) or 0),
            transferred_objects=int(data.get("transferred_objects", 0) or 0),
            total_size=int(data.get("total_size", 0) or 0),
            transferred_size=int(data.get("transferred_size", 0) or 0),
            speed=float(data.get("speed", 0.0) or 0.0),
        )


@dataclass(frozen=True)
class ObjectRecord:
    """One entry of a recursive endpoint listing."""

    key: str
    size: int = 0
    etag: str = ""
    last_modified: str | None = None


@dataclass
class ObjectStats:
    """Object count and total size of one endpoint inventory."""

    object_count: int = 0
    total_size: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"object_count": self.object_count, "total_size": self.total_size}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ObjectStats":
        data = data or {}
        return cls(
            object_count=int(data.get("object_count", 0) or 0),
            total_size=int(data.get("total_size", 0) or 0),
        )


@dataclass(frozen=True)
class Difference:
    path: str
    kind: DifferenceKind
    source_size: int | None = None
    dest_size: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "kind": self.kind.value,
            "source_size": self.source_size,
            "dest_size": self.dest_size,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Difference":
        return cls(
            path=data["path"],
            kind=DifferenceKind(data["kind"]),
            source_size=data.get("source_size"),
            dest_size=data.get("dest_size"),
        )


@dataclass
class DifferenceCounts:
    """Running counts accumulated page by page during comparison."""

    matches: int = 0
    missing_in_destination: int = 0
    missing_in_source: int = 0
    size_mismatches: int = 0
    content_mismatches: int = 0

    _FIELDS = {
        DifferenceKind.MISSING_IN_DESTINATION: "missing_in_destination",
        DifferenceKind.MISSING_IN_SOURCE: "missing_in_source",
        DifferenceKind.SIZE_MISMATCH: "size_mismatches",
        DifferenceKind.CONTENT_MISMATCH: "content_mismatches",
    }

    def record(self, kind: DifferenceKind | None) -> None:
        """Count one compared key. ``None`` counts a match."""
        if kind is None:
            self.matches += 1
            return
        attr = self._FIELDS[kind]
        setattr(self, attr, getattr(self, attr) + 1)

    def count(self, kind: DifferenceKind) -> int:
        return getattr(self, self._FIELDS[kind])

    @property
    def total_differences(self) -> int:
        return (
            self.missing_in_destination
            + self.missing_in_source
            + self.size_mismatches
            + self.content_mismatches
        )

    @property
    def total_compared(self) -> int:
        return self.matches + self.total_differences

    def to_dict(self) -> dict[str, int]:
        return {
            "matches": self.matches,
            "missing_in_destination": self.missing_in_destination,
            "missing_in_source": self.missing_in_source,
            "size_mismatches": self.size_mismatches,
            "content_mismatches": self.content_mismatches,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "DifferenceCounts":
        data = data or {}
        return cls(**{key: int(data.get(key, 0) or 0) for key in cls().to_dict()})


@dataclass
class ReconciliationSummary:
    object_count_match: bool
    total_size_match: bool
    differences_found: bool

    def to_dict(self) -> dict[str, bool]:
        return {
            "object_count_match": self.object_count_match,
            "total_size_match": self.total_size_match,
            "differences_found": self.differences_found,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ReconciliationSummary | None":
        if not data:
            return None
        return cls(
            object_count_match=bool(data["object_count_match"]),
            total_size_match=bool(data["total_size_match"]),
            differences_found=bool(data["differences_found"]),
        )


@dataclass
class Reconciliation:
    """
    Verification sub-record of a migration.

    Created when the migration enters RECONCILING. While running, ``phase``
    and the per-side counters show how far the inventory and comparison
    have progressed.

    Attributes:
        status: running, completed or failed
        start_time: When reconciliation started
        end_time: When reconciliation finished (either way)
        source_stats: Object count and size of the source inventory
        dest_stats: Object count and size of the destination inventory
        differences: Non-matching keys in key order
        counts: Per-kind counts including matches
        summary: Set once the comparison has finished
        phase: inventory, comparison, reporting or done
        source_processed: Source objects inventoried so far
        dest_processed: Destination objects inventoried so far
        pages_completed: Comparison pages processed so far
        error: Causal error when status is failed
    """

    status: ReconciliationStatus = ReconciliationStatus.RUNNING
    start_time: datetime = field(default_factory=utc_now)
    end_time: datetime | None = None
    source_stats: ObjectStats = field(default_factory=ObjectStats)
    dest_stats: ObjectStats = field(default_factory=ObjectStats)
    differences: list[Difference] = field(default_factory=list)
    counts: DifferenceCounts = field(default_factory=DifferenceCounts)
    summary: ReconciliationSummary | None = None
    phase: str = "inventory"
    source_processed: int = 0
    dest_processed: int = 0
    pages_completed: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "start_time": to_iso(self.start_time),
            "end_time": to_iso(self.end_time),
            "source_stats": self.source_stats.to_dict(),
            "dest_stats": self.dest_stats.to_dict(),
            "differences": [difference.to_dict() for difference in self.differences],
            "counts": self.counts.to_dict(),
            "summary": self.summary.to_dict() if self.summary else None,
            "phase": self.phase,
            "source_processed": self.source_processed,
            "dest_processed": self.dest_processed,
            "pages_completed": self.pages_completed,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Reconciliation | None":
        if not data:
            return None
        return cls(
            status=ReconciliationStatus(data.get("status", "running")),
            start_time=parse_datetime(data.get("start_time")) or utc_now(),
            end_time=parse_datetime(data.get("end_time")),
            source_stats=ObjectStats.from_dict(data.get("source_stats")),
            dest_stats=ObjectStats.from_dict(data.get("dest_stats")),
            differences=[Difference.from_dict(item) for item in data.get("differences", [])],
            counts=DifferenceCounts.from_dict(data.get("counts")),
            summary=ReconciliationSummary.from_dict(data.get("summary")),
            phase=data.get("phase", "inventory"),
            source_processed=int(data.get("source_processed", 0)),
            dest_processed=int(data.get("dest_processed", 0)),
            pages_completed=int(data.get("pages_completed", 0)),
            error=data.get("error"),
        )


@dataclass
class Migration:
    """
    One requested bulk transfer between two object-storage endpoints.

    Endpoints and options are immutable after creation. ``errors`` is an
    append-only log; ``progress`` and ``stats`` only ever grow while the
    transfer is running.

    Example:
        >>> migration = Migration(
        ...     source=Endpoint.parse("a/bucket1"),
        ...     destination=Endpoint.parse("b/bucket2"),
        ... )
        >>> migration.status
        <MigrationStatus.STARTING: 'starting'>
    """

    source: Endpoint
    destination: Endpoint
    options: MigrationOptions = field(default_factory=MigrationOptions)

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: MigrationStatus = MigrationStatus.STARTING
    execution_status: ExecutionStatus = ExecutionStatus.IMMEDIATE
    progress: int = 0
    stats: MigrationStats = field(default_factory=MigrationStats)
    scheduled_time: datetime | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    errors: list[str] = field(default_factory=list)
    reconciliation: Reconciliation | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def duration(self) -> float | None:
        """Seconds spent transferring; measured to now while still running."""
        if self.start_time is None:
            return None
        end = self.end_time or utc_now()
        return max(0.0, (end - self.start_time).total_seconds())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": str(self.source),
            "destination": str(self.destination),
            "options": self.options.to_dict(),
            "status": self.status.value,
            "execution_status": self.execution_status.value,
            "progress": self.progress,
            "stats": self.stats.to_dict(),
            "scheduled_time": to_iso(self.scheduled_time),
            "start_time": to_iso(self.start_time),
            "end_time": to_iso(self.end_time),
            "duration": self.duration,
            "errors": list(self.errors),
            "reconciliation": self.reconciliation.to_dict() if self.reconciliation else None,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Migration":
        return cls(
            id=data["id"],
            source=Endpoint.parse(data["source"]),
            destination=Endpoint.parse(data["destination"]),
            options=MigrationOptions.from_dict(data.get("options")),
            status=MigrationStatus(data.get("status", "starting")),
            execution_status=ExecutionStatus(data.get("execution_status", "immediate")),
            progress=int(data.get("progress", 0)),
            stats=MigrationStats.from_dict(data.get("stats")),
            scheduled_time=parse_datetime(data.get("scheduled_time")),
            start_time=parse_datetime(data.get("start_time")),
            end_time=parse_datetime(data.get("end_time")),
            errors=list(data.get("errors") or []),
            reconciliation=Reconciliation.from_dict(data.get("reconciliation")),
            created_at=parse_datetime(data.get("created_at")) or utc_now(),
            updated_at=parse_datetime(data.get("updated_at")) or utc_now(),
        )
