"""
Prometheus metrics for the migration service.

Metrics are module-level collectors registered once per process.

Quick Start:
    >>> from mcmigrate.monitoring.metrics import start_metrics_server
    >>> start_metrics_server(port=9108)
    >>> # Metrics available at http://localhost:9108/metrics
"""

from prometheus_client import Counter, Gauge, start_http_server

from mcmigrate.core.logger import get_logger
from mcmigrate.types import DifferenceCounts, DifferenceKind, MigrationStatus

logger = get_logger(__name__)

MIGRATIONS_SUBMITTED = Counter(
    "mcmigrate_migrations_submitted_total",
    "Total migrations accepted by submit",
    ["mode"],  # immediate | scheduled
)

MIGRATIONS_REJECTED = Counter(
    "mcmigrate_migrations_rejected_total",
    "Total submissions rejected synchronously",
    ["reason"],  # invalid_config | duplicate_active
)

MIGRATION_TRANSITIONS = Counter(
    "mcmigrate_migration_transitions_total",
    "Total applied status transitions",
    ["from_status", "to_status"],
)

MIGRATION_OUTCOMES = Counter(
    "mcmigrate_migration_outcomes_total",
    "Total migrations reaching a terminal status",
    ["status"],
)

TRANSFER_LINES = Counter(
    "mcmigrate_transfer_output_lines_total",
    "Transfer tool output lines by classification",
    ["kind"],  # stats | progress | error | ignored
)

ACTIVE_TRANSFERS = Gauge(
    "mcmigrate_active_transfers",
    "Transfer processes currently supervised",
)

SCHEDULER_PROMOTIONS = Counter(
    "mcmigrate_scheduler_promotions_total",
    "Scheduled migrations promoted to starting",
    ["path"],  # timer | poll | immediate
)

SCHEDULER_TIMERS = Gauge(
    "mcmigrate_scheduler_active_timers",
    "Near-term timers currently armed",
)

RECONCILIATION_DIFFERENCES = Counter(
    "mcmigrate_reconciliation_differences_total",
    "Differences found by reconciliation",
    ["kind"],
)

RECONCILIATION_RESULTS = Counter(
    "mcmigrate_reconciliations_total",
    "Finished reconciliations by result",
    ["result"],  # verified | completed_with_differences | failed
)

RECOVERED_ORPHANS = Counter(
    "mcmigrate_recovered_orphans_total",
    "Migrations failed by restart recovery",
    ["status"],
)


def record_transition(
    migration_id: str, from_status: MigrationStatus, to_status: MigrationStatus
) -> None:
    """State machine hook: count every applied transition and terminal outcome."""
    MIGRATION_TRANSITIONS.labels(from_status=from_status.value, to_status=to_status.value).inc()
    if to_status.is_terminal:
        MIGRATION_OUTCOMES.labels(status=to_status.value).inc()


def record_differences(counts: DifferenceCounts) -> None:
    for kind in DifferenceKind:
        found = counts.count(kind)
        if found:
            RECONCILIATION_DIFFERENCES.labels(kind=kind.value).inc(found)


def start_metrics_server(port: int = 9108, addr: str = "0.0.0.0") -> None:
    """
    Start a Prometheus HTTP metrics server.

    Args:
        port: Port to listen on
        addr: Address to bind to (default: all interfaces)
    """
    start_http_server(port, addr)
    logger.info(f"Prometheus metrics server started on port {port}")
