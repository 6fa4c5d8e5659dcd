"""
Tests for the pluggable logger.
"""

import logging

import pytest

from mcmigrate.core.logger import NullLogger, get_logger, set_logger


@pytest.fixture
def reset_logger():
    yield
    set_logger(None)


class TestDefaultLogging:
    def test_module_logger(self):
        logger = get_logger("mcmigrate.transfer.supervisor")

        assert isinstance(logger, logging.Logger)
        assert logger.name == "mcmigrate.transfer.supervisor"

    def test_foreign_names_join_namespace(self):
        assert get_logger("plugins.webhook").name == "mcmigrate.plugins.webhook"


class TestSetLogger:
    def test_shared_instance(self, reset_logger):
        silent = NullLogger()
        set_logger(silent)

        assert get_logger("mcmigrate.a") is silent
        assert get_logger("mcmigrate.b") is silent
        silent.info("dropped", extra={"migration_id": "m-1"})
        silent.log(logging.WARNING, "dropped")

    def test_factory_receives_name(self, reset_logger):
        names = []

        def factory(name):
            names.append(name)
            return logging.getLogger(f"custom.{name}")

        set_logger(factory)

        assert get_logger("mcmigrate.scheduler").name == "custom.mcmigrate.scheduler"
        assert names == ["mcmigrate.scheduler"]

    def test_reset_to_standard_logging(self, reset_logger):
        set_logger(NullLogger())
        set_logger(None)

        assert isinstance(get_logger(), logging.Logger)
