"""
Tests for Prometheus metric hooks.
"""

from prometheus_client import REGISTRY

from mcmigrate.monitoring import metrics
from mcmigrate.types import DifferenceCounts, MigrationStatus


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_record_transition_counts_outcomes():
    transitions_before = sample(
        "mcmigrate_migration_transitions_total", from_status="reconciling", to_status="verified"
    )
    outcomes_before = sample("mcmigrate_migration_outcomes_total", status="verified")

    metrics.record_transition("m-1", MigrationStatus.RECONCILING, MigrationStatus.VERIFIED)

    assert (
        sample(
            "mcmigrate_migration_transitions_total",
            from_status="reconciling",
            to_status="verified",
        )
        == transitions_before + 1
    )
    assert sample("mcmigrate_migration_outcomes_total", status="verified") == outcomes_before + 1


def test_non_terminal_transition_has_no_outcome():
    before = sample("mcmigrate_migration_outcomes_total", status="running")

    metrics.record_transition("m-1", MigrationStatus.STARTING, MigrationStatus.RUNNING)

    assert sample("mcmigrate_migration_outcomes_total", status="running") == before


def test_record_differences():
    before = sample("mcmigrate_reconciliation_differences_total", kind="size_mismatch")

    metrics.record_differences(DifferenceCounts(matches=4, size_mismatches=3))

    assert (
        sample("mcmigrate_reconciliation_differences_total", kind="size_mismatch") == before + 3
    )
