"""
Pytest configuration and shared fixtures for mcmigrate tests

External tools are replaced by small shell scripts written to tmp_path;
endpoint listings are served by InMemoryObjectLister.
"""

import dataclasses
from datetime import timedelta

import pytest

from mcmigrate.core.clock import utc_now
from mcmigrate.core.config import MigratorConfig
from mcmigrate.notifications import EventBus, InMemorySink, MigrationUpdatePublisher
from mcmigrate.reconciliation import InMemoryObjectLister, ReconciliationEngine
from mcmigrate.storage import SQLiteMigrationStorage
from mcmigrate.types import (
    Endpoint,
    ExecutionStatus,
    Migration,
    MigrationStatus,
    ObjectRecord,
)

# ============================================
# HELPERS
# ============================================


def make_migration(
    source: str = "a/bucket1",
    destination: str = "b/bucket2",
    status: MigrationStatus = MigrationStatus.STARTING,
    **fields,
) -> Migration:
    """Build a Migration in any status for direct insertion."""
    if status is MigrationStatus.SCHEDULED:
        fields.setdefault("execution_status", ExecutionStatus.SCHEDULED)
        fields.setdefault("scheduled_time", utc_now() + timedelta(minutes=5))
    elif status is not MigrationStatus.STARTING:
        fields.setdefault("start_time", utc_now())
    return Migration(
        source=Endpoint.parse(source),
        destination=Endpoint.parse(destination),
        status=status,
        **fields,
    )


def sample_objects(count: int, prefix: str = "data/file") -> list[ObjectRecord]:
    return [
        ObjectRecord(key=f"{prefix}-{i:04d}.bin", size=100 + i, etag=f"etag-{i}")
        for i in range(count)
    ]


class RecordingSupervisor:
    """Stands in for TransferSupervisor where only hand-off matters."""

    def __init__(self):
        self.launched: list[str] = []

    def launch(self, migration_id: str) -> None:
        self.launched.append(migration_id)


# ============================================
# FIXTURES
# ============================================


@pytest.fixture
async def storage():
    """In-memory SQLite job repository."""
    storage = SQLiteMigrationStorage(":memory:")
    async with storage:
        yield storage


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def sink(bus):
    """Records every migration_update event published on the bus."""
    sink = InMemorySink()
    bus.subscribe(sink)
    return sink


@pytest.fixture
def publisher(storage, bus):
    return MigrationUpdatePublisher(storage, bus)


@pytest.fixture
def lister():
    return InMemoryObjectLister()


@pytest.fixture
def config(tmp_path):
    """Configuration with short timings and tiny reconciliation batches."""
    return MigratorConfig(
        db_path=":memory:",
        scratch_dir=str(tmp_path / "scratch"),
        poll_interval_seconds=0.05,
        timer_lookahead_seconds=60,
        transfer_timeout_seconds=10,
        terminate_grace_seconds=1,
        inventory_chunk_size=3,
        comparison_batch_size=2,
    )


@pytest.fixture
def engine(storage, publisher, lister, config):
    return ReconciliationEngine(storage, publisher, lister, config)


@pytest.fixture
def make_tool(tmp_path):
    """
    Factory writing an executable shell script that stands in for ``mc``.

    Usage:
        tool = make_tool('echo "Total: 3 objects"\\nexit 0')
    """

    def make(body: str, name: str = "mc") -> str:
        path = tmp_path / name
        path.write_text(f"#!/bin/sh\n{body}\n")
        path.chmod(0o755)
        return str(path)

    return make


@pytest.fixture
def with_tool(config):
    """Copy of the test config pointing at a given tool path."""

    def make(tool_path: str, **overrides) -> MigratorConfig:
        return dataclasses.replace(config, tool_path=tool_path, **overrides)

    return make


SUCCESSFUL_MIRROR = "\n".join(
    [
        'echo "Total: 3 objects"',
        "echo '`a/bucket1/one.txt` -> `b/bucket2/one.txt`'",
        "echo '`a/bucket1/two.txt` -> `b/bucket2/two.txt`'",
        "echo '`a/bucket1/three.txt` -> `b/bucket2/three.txt`'",
        'echo "Transferred: 3 objects, 12.5 MiB/s"',
        "exit 0",
    ]
)


@pytest.fixture
def migration_factory():
    """make_migration() as a fixture, for tests that build migrations directly."""
    return make_migration


@pytest.fixture
def objects_factory():
    """sample_objects() as a fixture."""
    return sample_objects


@pytest.fixture
def recording_supervisor():
    return RecordingSupervisor()


@pytest.fixture
def mirror_script():
    """Body of a fake ``mc mirror`` that copies three objects and exits 0."""
    return SUCCESSFUL_MIRROR
