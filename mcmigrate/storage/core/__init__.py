"""
Shared infrastructure for storage backends: errors, serialization, health.
"""

from .errors import ConnectionError, SerializationError, StorageError
from .health import (
    HealthCheckable,
    HealthCheckResult,
    HealthStatus,
    MigrationStatistics,
    check_health_with_timeout,
)
from .serialization import decode_column, encode_column

__all__ = [
    "ConnectionError",
    "HealthCheckResult",
    "HealthCheckable",
    "HealthStatus",
    "MigrationStatistics",
    "SerializationError",
    "StorageError",
    "check_health_with_timeout",
    "decode_column",
    "encode_column",
]
