"""
Tests for reconciliation reports.
"""

import json
from datetime import timedelta

from mcmigrate.reconciliation import (
    build_report,
    export_report,
    generate_recommendations,
    success_rate,
)
from mcmigrate.types import (
    Difference,
    DifferenceCounts,
    DifferenceKind,
    ObjectStats,
    Reconciliation,
    ReconciliationStatus,
    ReconciliationSummary,
)


class TestRecommendations:
    def test_perfect_migration(self):
        recommendations = generate_recommendations(DifferenceCounts(matches=10))

        assert [r["type"] for r in recommendations] == ["perfect_migration"]
        assert recommendations[0]["severity"] == "info"

    def test_one_per_category_in_severity_order(self):
        counts = DifferenceCounts(
            matches=1,
            missing_in_destination=2,
            missing_in_source=1,
            size_mismatches=3,
            content_mismatches=4,
        )

        recommendations = generate_recommendations(counts)

        assert [(r["type"], r["severity"], r["count"]) for r in recommendations] == [
            ("missing_files", "high", 2),
            ("size_mismatches", "high", 3),
            ("content_mismatches", "medium", 4),
            ("extra_files", "low", 1),
        ]
        assert recommendations[0]["message"] == "2 files are missing in destination"

    def test_zero_categories_are_omitted(self):
        recommendations = generate_recommendations(DifferenceCounts(missing_in_source=5))

        assert [r["type"] for r in recommendations] == ["extra_files"]


class TestSuccessRate:
    def test_nothing_compared(self):
        assert success_rate(DifferenceCounts()) == 100.0

    def test_partial(self):
        assert success_rate(DifferenceCounts(matches=2, size_mismatches=1)) == 66.67


class TestBuildReport:
    def make_reconciliation(self):
        reconciliation = Reconciliation(
            status=ReconciliationStatus.COMPLETED,
            source_stats=ObjectStats(3, 300),
            dest_stats=ObjectStats(2, 200),
            differences=[Difference("c", DifferenceKind.MISSING_IN_DESTINATION, 100, None)],
            counts=DifferenceCounts(matches=2, missing_in_destination=1),
            summary=ReconciliationSummary(False, False, True),
            source_processed=3,
            dest_processed=2,
            pages_completed=2,
        )
        reconciliation.end_time = reconciliation.start_time + timedelta(seconds=5)
        return reconciliation

    def test_sections(self, migration_factory):
        migration = migration_factory()

        report = build_report(migration, self.make_reconciliation())

        assert report["migration_id"] == migration.id
        assert report["source"] == "a/bucket1"
        assert report["summary"]["total_objects_compared"] == 3
        assert report["summary"]["perfect_matches"] == 2
        assert report["summary"]["success_rate"] == 66.67
        assert report["summary"]["source"] == {"object_count": 3, "total_size": 300}
        assert report["breakdown"]["missing_in_destination"] == 1
        assert report["performance"]["duration_seconds"] == 5.0
        assert report["performance"]["objects_per_second"] == 1.0
        assert report["recommendations"][0]["type"] == "missing_files"
        assert report["differences"] == [
            {"path": "c", "kind": "missing_in_destination", "source_size": 100, "dest_size": None}
        ]

    def test_export_writes_json(self, migration_factory, tmp_path):
        report = build_report(migration_factory(), self.make_reconciliation())

        path = export_report(report, tmp_path / "reports")

        assert path.name == f"reconciliation_report_{report['migration_id']}.json"
        assert json.loads(path.read_text()) == report
