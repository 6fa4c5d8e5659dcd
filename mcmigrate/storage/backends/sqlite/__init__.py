"""
SQLite Storage Backends.

Usage:
    >>> from mcmigrate.storage.backends.sqlite import SQLiteMigrationStorage, SQLiteInventoryStore
    >>>
    >>> # Job repository
    >>> storage = SQLiteMigrationStorage("./data/migrations.db")
    >>>
    >>> # Scratch inventory of one reconciliation
    >>> inventory = SQLiteInventoryStore("./data/scratch/reconciliation_m-1.db")
"""

from .inventory import InventoryRow, SQLiteInventoryStore
from .migration import SQLiteMigrationStorage

__all__ = [
    "InventoryRow",
    "SQLiteInventoryStore",
    "SQLiteMigrationStorage",
]
