"""
Tests for structured migration logging.
"""

import json
import logging

import pytest

from mcmigrate.monitoring import (
    MigrationContextFilter,
    MigrationJsonFormatter,
    migration_context,
    migration_log_context,
    setup_logging,
)


def make_record(message="hello", **extra):
    record = logging.LogRecord("mcmigrate.test", logging.INFO, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_mcmigrate_logger():
    logger = logging.getLogger("mcmigrate")
    handlers, level = list(logger.handlers), logger.level
    yield logger
    logger.handlers = handlers
    logger.setLevel(level)


class TestMigrationLogContext:
    def test_nested_contexts_merge_and_restore(self):
        with migration_log_context("m-1", phase="reconciliation"):
            with migration_log_context("m-1", side="source"):
                assert migration_context.get() == {
                    "migration_id": "m-1",
                    "phase": "reconciliation",
                    "side": "source",
                }
            assert "side" not in migration_context.get()

        assert migration_context.get() == {}


class TestMigrationJsonFormatter:
    def test_includes_context(self):
        formatter = MigrationJsonFormatter()

        with migration_log_context("m-1", phase="transfer"):
            entry = json.loads(formatter.format(make_record("spawned")))

        assert entry["message"] == "spawned"
        assert entry["level"] == "INFO"
        assert entry["migration_id"] == "m-1"
        assert entry["phase"] == "transfer"

    def test_record_extras(self):
        entry = json.loads(MigrationJsonFormatter().format(make_record(returncode=1, side="")))

        assert entry["returncode"] == 1
        assert "side" not in entry


class TestMigrationContextFilter:
    def test_adds_context_fields(self):
        record = make_record()

        with migration_log_context("m-2", phase="inventory", side="destination"):
            assert MigrationContextFilter().filter(record)

        assert record.migration_id == "m-2"
        assert record.phase == "inventory"
        assert record.side == "destination"

    def test_outside_context(self):
        record = make_record()

        MigrationContextFilter().filter(record)

        assert record.migration_id == ""


class TestSetupLogging:
    def test_replaces_console_handler(self, restore_mcmigrate_logger):
        setup_logging(logging.DEBUG)
        handler = setup_logging("WARNING", json_format=True)

        stream_handlers = [
            h for h in restore_mcmigrate_logger.handlers if not isinstance(h, logging.NullHandler)
        ]
        assert stream_handlers == [handler]
        assert isinstance(handler.formatter, MigrationJsonFormatter)
        assert restore_mcmigrate_logger.level == logging.WARNING
