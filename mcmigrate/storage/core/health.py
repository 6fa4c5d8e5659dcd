"""
Health and statistics reporting for the job repository.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from mcmigrate.core.clock import to_iso, utc_now


class HealthStatus(Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthCheckResult:
    """
    Outcome of one repository probe.

    Attributes:
        status: HEALTHY when the repository answered a query
        latency_ms: Round-trip time of the probe
        message: One-line summary for the CLI
        details: Backend figures (path, active migrations, error type)
        checked_at: When the probe ran
    """

    status: HealthStatus
    latency_ms: float
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    checked_at: datetime = field(default_factory=utc_now)

    @property
    def is_healthy(self) -> bool:
        return self.status is HealthStatus.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
            "message": self.message,
            "details": self.details,
            "checked_at": to_iso(self.checked_at),
        }


@dataclass
class MigrationStatistics:
    """
    Aggregate figures over the whole repository.

    Attributes:
        total: Number of migrations ever recorded
        by_status: Count per status value
        total_data_transferred: Sum of transferred bytes
        average_speed: Mean reported speed (bytes/s) of migrations that reported one
        recent_activity: Migrations created in the last 24 hours
        success_rate: Percentage of finished migrations whose transfer succeeded
    """

    total: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    total_data_transferred: int = 0
    average_speed: float = 0.0
    recent_activity: int = 0
    success_rate: float = 0.0

    def count(self, status: str) -> int:
        return self.by_status.get(status, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "by_status": dict(self.by_status),
            "total_data_transferred": self.total_data_transferred,
            "average_speed": self.average_speed,
            "recent_activity": self.recent_activity,
            "success_rate": self.success_rate,
        }


class HealthCheckable(ABC):
    """Backends that can probe themselves and summarize their contents."""

    @abstractmethod
    async def health_check(self) -> HealthCheckResult: ...

    @abstractmethod
    async def get_statistics(self) -> MigrationStatistics: ...


async def check_health_with_timeout(
    checker: HealthCheckable,
    timeout_seconds: float = 5.0,
) -> HealthCheckResult:
    """
    Probe ``checker`` without letting a stuck backend block the caller.

    A probe that times out or raises is reported as UNHEALTHY.
    """
    start = time.perf_counter()

    try:
        return await asyncio.wait_for(checker.health_check(), timeout=timeout_seconds)
    except TimeoutError:
        message = f"Health check timed out after {timeout_seconds}s"
        details: dict[str, Any] = {}
    except Exception as e:
        message = f"Health check failed: {e}"
        details = {"error": str(e), "error_type": type(e).__name__}

    return HealthCheckResult(
        status=HealthStatus.UNHEALTHY,
        latency_ms=(time.perf_counter() - start) * 1000,
        message=message,
        details=details,
    )
