"""
Tests for migration types.
"""

from datetime import UTC, datetime, timedelta

from mcmigrate.types import (
    ACTIVE_STATUSES,
    DifferenceCounts,
    DifferenceKind,
    Endpoint,
    Migration,
    MigrationOptions,
    MigrationStatus,
    Reconciliation,
    ReconciliationStatus,
    ReconciliationSummary,
)


class TestEndpoint:
    """Tests for alias/bucket parsing."""

    def test_parse_alias_and_bucket(self):
        endpoint = Endpoint.parse("prod-minio/bucket1")

        assert endpoint.alias == "prod-minio"
        assert endpoint.bucket_path == "bucket1"
        assert endpoint.bucket == "bucket1"
        assert endpoint.is_complete
        assert str(endpoint) == "prod-minio/bucket1"

    def test_parse_keeps_prefix(self):
        endpoint = Endpoint.parse("a/bucket1/photos/2024/")

        assert endpoint.bucket == "bucket1"
        assert endpoint.bucket_path == "bucket1/photos/2024"

    def test_missing_bucket_is_incomplete(self):
        assert not Endpoint.parse("a").is_complete
        assert not Endpoint.parse("a/").is_complete

    def test_missing_alias_is_incomplete(self):
        assert not Endpoint.parse("/bucket1").is_complete
        assert not Endpoint.parse("").is_complete


class TestMigrationStatus:
    def test_terminal_statuses(self):
        assert MigrationStatus.VERIFIED.is_terminal
        assert MigrationStatus.COMPLETED_WITH_DIFFERENCES.is_terminal
        assert MigrationStatus.FAILED.is_terminal
        assert MigrationStatus.CANCELLED.is_terminal
        assert not MigrationStatus.COMPLETED.is_terminal

    def test_active_statuses(self):
        assert ACTIVE_STATUSES == {
            MigrationStatus.SCHEDULED,
            MigrationStatus.STARTING,
            MigrationStatus.RUNNING,
            MigrationStatus.RECONCILING,
        }


class TestMigrationOptions:
    def test_from_dict_accepts_camel_case_dry_run(self):
        options = MigrationOptions.from_dict({"dryRun": True, "exclude": "*.tmp"})

        assert options.dry_run is True
        assert options.exclude == ["*.tmp"]

    def test_from_dict_defaults(self):
        options = MigrationOptions.from_dict(None)

        assert options == MigrationOptions()


class TestDifferenceCounts:
    def test_record_and_totals(self):
        counts = DifferenceCounts()
        for kind in (
            None,
            None,
            DifferenceKind.MISSING_IN_DESTINATION,
            DifferenceKind.SIZE_MISMATCH,
            DifferenceKind.SIZE_MISMATCH,
        ):
            counts.record(kind)

        assert counts.matches == 2
        assert counts.count(DifferenceKind.SIZE_MISMATCH) == 2
        assert counts.total_differences == 3
        assert counts.total_compared == 5


class TestMigration:
    def test_new_migration_defaults(self):
        migration = Migration(source=Endpoint.parse("a/b1"), destination=Endpoint.parse("b/b2"))

        assert migration.status == MigrationStatus.STARTING
        assert migration.progress == 0
        assert migration.errors == []
        assert migration.reconciliation is None
        assert migration.duration is None

    def test_duration_uses_end_time(self):
        start = datetime(2024, 1, 1, tzinfo=UTC)
        migration = Migration(
            source=Endpoint.parse("a/b1"),
            destination=Endpoint.parse("b/b2"),
            start_time=start,
            end_time=start + timedelta(seconds=90),
        )

        assert migration.duration == 90.0

    def test_dict_round_trip_with_reconciliation(self):
        reconciliation = Reconciliation(
            status=ReconciliationStatus.COMPLETED,
            summary=ReconciliationSummary(True, True, False),
        )
        migration = Migration(
            source=Endpoint.parse("a/b1"),
            destination=Endpoint.parse("b/b2"),
            status=MigrationStatus.VERIFIED,
            progress=100,
            errors=["warning"],
            reconciliation=reconciliation,
        )

        restored = Migration.from_dict(migration.to_dict())

        assert restored.id == migration.id
        assert restored.status == MigrationStatus.VERIFIED
        assert restored.errors == ["warning"]
        assert restored.reconciliation.summary == ReconciliationSummary(True, True, False)
