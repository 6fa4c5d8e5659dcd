"""
Monitoring: structured logging and Prometheus metrics.
"""

from .logging import (
    MigrationContextFilter,
    MigrationJsonFormatter,
    migration_context,
    migration_log_context,
    setup_logging,
)

__all__ = [
    "MigrationContextFilter",
    "MigrationJsonFormatter",
    "migration_context",
    "migration_log_context",
    "setup_logging",
]
