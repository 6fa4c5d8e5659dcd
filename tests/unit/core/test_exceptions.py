"""
Tests for migration exceptions.
"""

from mcmigrate.core.exceptions import (
    DuplicateActiveMigrationError,
    ListingError,
    MigrationError,
    MissingDependencyError,
    ReconciliationAbandonedError,
    ReconciliationError,
    TransferTimeoutError,
)


def test_duplicate_active_mentions_existing_id():
    error = DuplicateActiveMigrationError("a/bucket1", "b/bucket2", existing_id="m-1")

    assert isinstance(error, MigrationError)
    assert "a/bucket1 -> b/bucket2" in str(error)
    assert "m-1" in str(error)


def test_listing_error_message():
    error = ListingError("b/bucket2", 1, "Access Denied")

    assert isinstance(error, ReconciliationError)
    assert str(error) == "Listing b/bucket2 failed with exit code 1: Access Denied"


def test_abandoned_is_a_reconciliation_error():
    assert issubclass(ReconciliationAbandonedError, ReconciliationError)


def test_transfer_timeout_message():
    error = TransferTimeoutError("m-1", 90)

    assert "90s" in str(error)
    assert error.timeout_seconds == 90


class TestMissingDependencyError:
    def test_known_tool_has_install_hint(self):
        error = MissingDependencyError("mc", "running transfers")

        assert "brew install minio/stable/mc" in str(error)
        assert "running transfers" in str(error)

    def test_unknown_package_defaults_to_pip(self):
        error = MissingDependencyError("somepackage")

        assert "pip install somepackage" in str(error)
        assert error.feature is None
