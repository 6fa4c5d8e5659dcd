"""
Job repository abstractions and implementations.

Quick Start:
    >>> from mcmigrate.storage import create_storage
    >>>
    >>> # In-memory (for development/testing)
    >>> storage = create_storage(":memory:")
    >>>
    >>> # File-based
    >>> storage = create_storage("sqlite:///./data/migrations.db")
"""

from .backends.sqlite import SQLiteInventoryStore, SQLiteMigrationStorage
from .base import MigrationStorage
from .core import StorageError


def create_storage(location: str = ":memory:") -> MigrationStorage:
    """
    Create a job repository from a path or ``sqlite://`` URL.

    Raises:
        ValueError: If the URL scheme is not supported
    """
    if location.startswith("sqlite://"):
        location = location[len("sqlite://"):]
        # sqlite:///relative -> /relative is stripped to relative; sqlite:////abs keeps /abs
        if location.startswith("/"):
            location = location[1:]
        return SQLiteMigrationStorage(location or ":memory:")

    if "://" in location:
        msg = f"Unsupported storage URL: {location}"
        raise ValueError(msg)

    return SQLiteMigrationStorage(location)


__all__ = [
    "MigrationStorage",
    "SQLiteInventoryStore",
    "SQLiteMigrationStorage",
    "StorageError",
    "create_storage",
]
