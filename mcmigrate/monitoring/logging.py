"""
Structured logging for migrations

JSON log lines carrying the migration id and phase of the code that emitted
them, propagated through a ContextVar so that nested coroutines (output
readers, inventory streams) inherit the context of the task that spawned them.
"""

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variables for propagating migration context
migration_context: ContextVar[dict[str, Any]] = ContextVar("migration_context", default={})


class MigrationJsonFormatter(logging.Formatter):
    """
    JSON formatter for migration logs with structured fields
    """

    # Fields to extract from log record if present
    _EXTRA_FIELDS = (
        "migration_id",
        "phase",
        "side",
        "status",
        "returncode",
        "duration_ms",
        "error_type",
    )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON"""
        log_entry = self._build_base_entry(record)
        self._add_migration_context(log_entry)
        self._add_record_extras(log_entry, record)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)

    def _build_base_entry(self, record: logging.LogRecord) -> dict[str, Any]:
        return {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

    def _add_migration_context(self, log_entry: dict[str, Any]) -> None:
        context = migration_context.get({})
        for key, value in context.items():
            if value is not None:
                log_entry[key] = value

    def _add_record_extras(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self._EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value not in (None, ""):
                log_entry[field] = value


class MigrationContextFilter(logging.Filter):
    """
    Logging filter that adds migration context to log records
    """

    def filter(self, record: logging.LogRecord) -> bool:
        context = migration_context.get({})

        record.migration_id = getattr(record, "migration_id", None) or context.get(
            "migration_id", ""
        )
        record.phase = getattr(record, "phase", None) or context.get("phase", "")
        record.side = getattr(record, "side", None) or context.get("side", "")

        return True


@contextmanager
def migration_log_context(
    migration_id: str, phase: str | None = None, side: str | None = None
) -> Iterator[dict[str, Any]]:
    """
    Set the migration context for the current task and restore it on exit.

    Example:
        >>> with migration_log_context("m-1", phase="transfer"):
        ...     logger.info("spawned")  # JSON line carries migration_id and phase
    """
    context = {**migration_context.get({}), "migration_id": migration_id}
    if phase is not None:
        context["phase"] = phase
    if side is not None:
        context["side"] = side

    token = migration_context.set(context)
    try:
        yield context
    finally:
        migration_context.reset(token)


def setup_logging(level: int | str = logging.INFO, json_format: bool = False) -> logging.Handler:
    """
    Install a console handler on the ``mcmigrate`` logger.

    Returns:
        The installed handler
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(MigrationContextFilter())
    if json_format:
        handler.setFormatter(MigrationJsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root = logging.getLogger("mcmigrate")
    for existing in [h for h in root.handlers if not isinstance(h, logging.NullHandler)]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
    return handler
