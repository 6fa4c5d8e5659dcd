"""
Errors raised by the job repository and the scratch inventory stores.

Both inherit from StorageError and carry the database path they concern,
so a caller can report which file was unusable.
"""


class StorageError(Exception):
    """Base exception for repository and scratch-store failures."""

    def __init__(self, message: str, db_path: str | None = None):
        super().__init__(message)
        self.message = message
        self.db_path = db_path

    def __str__(self) -> str:
        if self.db_path:
            return f"{self.message} [{self.db_path}]"
        return self.message


class ConnectionError(StorageError):
    """
    A database file could not be opened.

    Raised when the file or its parent directory cannot be created, or
    when SQLite refuses the file (not a database, permissions).
    """


class SerializationError(StorageError):
    """
    A JSON column could not be written or read back.

    Attributes:
        column: Name of the offending column ("options", "errors", ...)
    """

    def __init__(self, message: str, column: str | None = None, db_path: str | None = None):
        super().__init__(message, db_path=db_path)
        self.column = column
