"""
Tests for the mcmigrate CLI.

Each command runs against a file repository under tmp_path; only commands
that never spawn the transfer tool are exercised.
"""

import asyncio
import logging
from datetime import timedelta

import pytest
from click.testing import CliRunner

from mcmigrate.cli import cli
from mcmigrate.core.clock import utc_now
from mcmigrate.storage import SQLiteMigrationStorage
from mcmigrate.types import MigrationStatus


@pytest.fixture(autouse=True)
def restore_logging():
    """The group installs a console handler bound to the runner's stream."""
    logger = logging.getLogger("mcmigrate")
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers = handlers
    logger.setLevel(level)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def db(tmp_path):
    return str(tmp_path / "jobs.db")


@pytest.fixture
def invoke(runner, db):
    def run(*args):
        return runner.invoke(cli, ["--db", db, *args])

    return run


def stored_migrations(db):
    async def load():
        async with SQLiteMigrationStorage(db) as storage:
            return await storage.list_migrations()

    return asyncio.run(load())


def in_one_hour():
    return (utc_now() + timedelta(hours=1)).isoformat()


class TestInspection:
    def test_list_empty(self, invoke):
        result = invoke("list")

        assert result.exit_code == 0
        assert "No migrations found" in result.output

    def test_status_unknown(self, invoke):
        result = invoke("status", "missing")

        assert result.exit_code == 1
        assert "Migration not found: missing" in result.output

    def test_stats(self, invoke):
        result = invoke("stats")

        assert result.exit_code == 0
        assert "total_scheduled" in result.output
        assert "success_rate" in result.output
        assert '"status": "healthy"' in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "mcmigrate" in result.output


class TestScheduledSubmission:
    def test_submit_at_future_time(self, invoke, db):
        result = invoke("submit", "a/bucket1", "b/bucket2", "--at", in_one_hour(), "--overwrite")

        assert result.exit_code == 0, result.output
        assert "scheduled" in result.output
        (migration,) = stored_migrations(db)
        assert migration.status == MigrationStatus.SCHEDULED
        assert migration.options.overwrite is True

    def test_scheduled_listing_and_status(self, invoke, db):
        invoke("submit", "a/bucket1", "b/bucket2", "--at", in_one_hour())
        (migration,) = stored_migrations(db)

        listed = invoke("scheduled")
        status = invoke("status", migration.id, "--json")
        logs = invoke("logs", migration.id)

        assert listed.exit_code == 0
        assert "Scheduled migrations" in listed.output
        assert status.exit_code == 0
        assert '"status": "scheduled"' in status.output
        assert "Migration scheduled for" in logs.output

    def test_duplicate_pair_rejected(self, invoke):
        invoke("submit", "a/bucket1", "b/bucket2", "--at", in_one_hour())

        result = invoke("submit", "a/bucket1", "b/bucket2", "--at", in_one_hour())

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_invalid_endpoint(self, invoke):
        result = invoke("submit", "a", "b/bucket2", "--at", in_one_hour())

        assert result.exit_code == 1
        assert "alias/bucket" in result.output

    def test_bad_timestamp(self, invoke):
        result = invoke("submit", "a/bucket1", "b/bucket2", "--at", "next tuesday")

        assert result.exit_code == 2
        assert "ISO-8601" in result.output

    def test_cancel_then_cancel_again(self, invoke, db):
        invoke("submit", "a/bucket1", "b/bucket2", "--at", in_one_hour())
        (migration,) = stored_migrations(db)

        first = invoke("cancel", migration.id)
        second = invoke("cancel", migration.id)

        assert first.exit_code == 0
        assert second.exit_code == 1
        assert stored_migrations(db)[0].status == MigrationStatus.CANCELLED

    def test_reschedule(self, invoke, db):
        invoke("submit", "a/bucket1", "b/bucket2", "--at", in_one_hour())
        (migration,) = stored_migrations(db)
        new_time = utc_now() + timedelta(days=1)

        result = invoke("reschedule", migration.id, new_time.isoformat())

        assert result.exit_code == 0, result.output
        assert stored_migrations(db)[0].scheduled_time == new_time

    def test_report_missing(self, invoke, db):
        invoke("submit", "a/bucket1", "b/bucket2", "--at", in_one_hour())
        (migration,) = stored_migrations(db)

        result = invoke("report", migration.id)

        assert result.exit_code == 1
        assert "No reconciliation report" in result.output


def test_submit_now_requires_tool(invoke, monkeypatch, tmp_path):
    monkeypatch.setenv("MC_PATH", str(tmp_path / "no-such-mc"))

    result = invoke("submit", "a/bucket1", "b/bucket2")

    assert result.exit_code == 1
    assert "Missing Dependency" in result.output
