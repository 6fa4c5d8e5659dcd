"""
Best-effort parsing of transfer tool output.

The tool writes free text (or JSON lines with ``--json``) whose format is not
a stable contract, so every rule here is a heuristic calibrated on observed
``mc mirror`` output. A line yields at most two kinds of update:

- a stat refinement (object counts, sizes, speed), and
- a progress refinement (percent from transferred / max(total, 1), capped
  while the process is alive).

Parsing never raises; unrecognized or partial lines are simply ignored.
"""

import json
import math
import re
from dataclasses import dataclass

from mcmigrate.types import MigrationStats

SIZE_UNITS = {
    "B": 1,
    "KB": 1024,
    "KIB": 1024,
    "MB": 1024**2,
    "MIB": 1024**2,
    "GB": 1024**3,
    "GIB": 1024**3,
    "TB": 1024**4,
    "TIB": 1024**4,
    "PB": 1024**5,
    "PIB": 1024**5,
}

_SPEED = re.compile(r"(\d+(?:\.\d+)?)\s*([KMGTP]?i?B)/s", re.IGNORECASE)
_TOTAL_SIZE = re.compile(r"Total:\s*(\d+(?:\.\d+)?)\s*([KMGTP]?i?B)\b", re.IGNORECASE)
_TOTAL_OBJECTS = re.compile(r"(?:Total:|total objects:?)\s*(\d+)(?![\d.])", re.IGNORECASE)
_SIZE_TEXT = re.compile(r"(\d+(?:\.\d+)?)\s*([KMGTP]?i?B)?(?:/s)?", re.IGNORECASE)
_TRANSFER_MARKERS = ("->", "copied", "COPY", "PUT")
_ERROR_MARKER = re.compile(r"<ERROR>|\berror\b", re.IGNORECASE)

# Any output at all proves the tool is alive and working.
ACTIVITY_FLOOR = 5


def parse_size(value: str | float, unit: str = "B") -> int:
    """Convert a number and a unit such as ``KiB`` or ``MB`` to bytes."""
    multiplier = SIZE_UNITS.get(unit.upper(), 1)
    return int(float(value) * multiplier)


def _json_number(value, cast):
    """``cast(value)``, or None for nulls, booleans and non-numeric values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return cast(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _json_size(value) -> int | None:
    """Byte count from a JSON number or a string such as ``"1.2MiB"`` or ``"3 MB/s"``."""
    if isinstance(value, str):
        match = _SIZE_TEXT.fullmatch(value.strip())
        if match:
            return parse_size(match.group(1), match.group(2) or "B")
    number = _json_number(value, float)
    if number is None or not math.isfinite(number) or number < 0:
        return None
    return int(number)


@dataclass(frozen=True)
class LineUpdate:
    """What one output line changed."""

    stats_changed: bool = False
    progress_changed: bool = False
    error: str | None = None

    @property
    def classified(self) -> bool:
        """True when the line refined stats or progress."""
        return self.stats_changed or self.progress_changed

    @property
    def kind(self) -> str:
        if self.error:
            return "error"
        if self.stats_changed:
            return "stats"
        if self.progress_changed:
            return "progress"
        return "ignored"


class TransferOutputParser:
    """
    Accumulates stats and progress for one transfer from its output lines.

    Stats and progress only ever grow, except ``speed``, which is the last
    reading seen.

    Usage:
        >>> parser = TransferOutputParser()
        >>> parser.feed("Total: 10 objects")
        LineUpdate(stats_changed=True, progress_changed=True, error=None)
        >>> parser.feed("`a/b1/x.txt` -> `b/b2/x.txt`").classified
        True
        >>> parser.progress
        10
    """

    def __init__(
        self,
        stats: MigrationStats | None = None,
        progress: int = 0,
        max_progress: int = 95,
    ):
        self.stats = stats or MigrationStats()
        self.progress = progress
        self.max_progress = max_progress

    def feed(self, line: str, stream: str = "stdout") -> LineUpdate:
        line = line.strip()
        if not line:
            return LineUpdate()

        error: str | None = None
        if line.startswith("{"):
            try:
                data = json.loads(line)
            except ValueError:
                data = None
            if isinstance(data, dict):
                stats_changed, error = self._apply_json(data)
                if error is None and stream == "stderr":
                    error = line
                return LineUpdate(stats_changed, self._refresh_progress(), error)

        stats_changed = self._apply_text(line)
        if stream == "stderr" or _ERROR_MARKER.search(line):
            error = line
        return LineUpdate(stats_changed, self._refresh_progress(), error)

    def _apply_text(self, line: str) -> bool:
        changed = False

        if "Total:" in line or "total objects" in line.lower():
            size_match = _TOTAL_SIZE.search(line)
            if size_match:
                changed |= self._raise("total_size", parse_size(*size_match.groups()))
            else:
                objects_match = _TOTAL_OBJECTS.search(line)
                if objects_match:
                    changed |= self._raise("total_objects", int(objects_match.group(1)))

        speed_match = _SPEED.search(line)
        if speed_match:
            speed = float(parse_size(*speed_match.groups()))
            if speed != self.stats.speed:
                self.stats.speed = speed
                changed = True

        if any(marker in line for marker in _TRANSFER_MARKERS):
            self.stats.transferred_objects += 1
            changed = True

        return changed

    def _apply_json(self, data: dict) -> tuple[bool, str | None]:
        """Apply one ``--json`` record. Returns (stats changed, error message)."""
        if data.get("status") == "error":
            error = data.get("error")
            if isinstance(error, dict):
                cause = error.get("cause")
                message = error.get("message") or (
                    cause.get("message") if isinstance(cause, dict) else cause
                )
            else:
                message = error
            return False, str(message or "transfer tool reported an error")

        changed = False
        total_count = _json_number(data.get("totalCount"), int)
        if total_count is not None:
            changed |= self._raise("total_objects", total_count)
        total_size = _json_size(data.get("totalSize"))
        if total_size is not None:
            changed |= self._raise("total_size", total_size)
        if "source" in data and "target" in data:
            self.stats.transferred_objects += 1
            self.stats.transferred_size += _json_size(data.get("size")) or 0
            changed = True
        speed = _json_size(data.get("speed"))
        if speed is not None:
            self.stats.speed = float(speed)
            changed = True
        return changed, None

    def _raise(self, attr: str, value: int) -> bool:
        if value > getattr(self.stats, attr):
            setattr(self.stats, attr, value)
            return True
        return False

    def _refresh_progress(self) -> bool:
        estimate = int(self.stats.transferred_objects / max(self.stats.total_objects, 1) * 100)
        estimate = min(self.max_progress, estimate)
        estimate = max(estimate, min(ACTIVITY_FLOOR, self.max_progress))
        if estimate > self.progress:
            self.progress = estimate
            return True
        return False
