"""
Tests for health check helpers.
"""

import asyncio

import pytest

from mcmigrate.storage.core import HealthStatus, check_health_with_timeout


class SlowChecker:
    async def health_check(self):
        await asyncio.sleep(5)


class BrokenChecker:
    async def health_check(self):
        raise RuntimeError("disk I/O error")


@pytest.mark.asyncio
async def test_healthy_repository(storage):
    result = await check_health_with_timeout(storage)

    assert result.status == HealthStatus.HEALTHY
    assert result.is_healthy


@pytest.mark.asyncio
async def test_timeout_reports_unhealthy():
    result = await check_health_with_timeout(SlowChecker(), timeout_seconds=0.05)

    assert result.status == HealthStatus.UNHEALTHY
    assert "timed out after 0.05s" in result.message


@pytest.mark.asyncio
async def test_failure_reports_unhealthy():
    result = await check_health_with_timeout(BrokenChecker())

    assert result.status == HealthStatus.UNHEALTHY
    assert result.details["error_type"] == "RuntimeError"
