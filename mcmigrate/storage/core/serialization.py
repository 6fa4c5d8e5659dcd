"""
JSON columns of the job repository.

``options``, ``errors``, ``reconciliation`` and stored reports are TEXT
columns holding JSON. Datetimes are written as ISO-8601 UTC strings and
enums as their values; anything with ``to_dict()`` is written in that form.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any

from mcmigrate.core.clock import to_iso

from .errors import SerializationError


def _column_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return to_iso(obj)
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"{type(obj).__name__} is not JSON serializable")


def encode_column(column: str, value: Any) -> str | None:
    """
    Encode a value for a JSON column; ``None`` stays SQL NULL.

    Raises:
        SerializationError: If the value cannot be encoded
    """
    if value is None:
        return None
    try:
        return json.dumps(value, default=_column_default, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot encode column {column!r}: {e}", column=column) from e


def decode_column(column: str, raw: str | None, default: Any = None) -> Any:
    """
    Decode a JSON column; NULL yields ``default``.

    Raises:
        SerializationError: If the stored text is not valid JSON
    """
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except ValueError as e:
        raise SerializationError(f"Corrupt JSON in column {column!r}: {e}", column=column) from e
