"""
Endpoint listers - stream every object of an endpoint, recursively.

``McObjectLister`` runs ``mc ls --recursive --json`` and yields one
ObjectRecord per line, so memory use is independent of the listing size.
"""

import asyncio
import json
import re
from collections import deque
from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from mcmigrate.core.exceptions import ListingError
from mcmigrate.core.logger import get_logger
from mcmigrate.core.streams import read_lines
from mcmigrate.types import Endpoint, ObjectRecord

logger = get_logger(__name__)

# Errors that mean "nothing there" rather than "listing failed".
_ABSENT = re.compile(
    r"does not exist|NoSuchBucket|NoSuchKey|Object does not exist|bucket not found",
    re.IGNORECASE,
)


@runtime_checkable
class ObjectLister(Protocol):
    """
    Protocol for endpoint listers.
    """

    def list_objects(self, endpoint: Endpoint) -> AsyncIterator[ObjectRecord]:
        """
        Stream every object under ``endpoint``.

        An empty or absent bucket yields nothing.

        Raises:
            ListingError: On any other listing failure
        """
        ...


def parse_listing_line(line: str) -> ObjectRecord | str | None:
    """
    Interpret one ``mc ls --json`` line.

    Returns:
        An ObjectRecord for objects, the error message for error records,
        or None for folders and anything unparseable
    """
    try:
        data = json.loads(line)
    except ValueError:
        return None

    if not isinstance(data, dict):
        return None

    if data.get("status") == "error":
        error = data.get("error") or {}
        if isinstance(error, dict):
            cause = error.get("cause")
            cause_message = cause.get("message") if isinstance(cause, dict) else cause
            parts = [part for part in (error.get("message"), cause_message) if part]
            return ": ".join(str(part) for part in parts) or "listing error"
        return str(error)

    if data.get("type") == "folder" or not data.get("key"):
        return None

    try:
        size = int(data.get("size") or 0)
    except (TypeError, ValueError):
        size = 0

    return ObjectRecord(
        key=data["key"],
        size=size,
        etag=str(data.get("etag") or "").strip('"'),
        last_modified=data.get("lastModified"),
    )


class McObjectLister:
    """
    Lists an endpoint by running the transfer tool's ``ls`` command.

    Usage:
        >>> lister = McObjectLister("mc")
        >>> async for record in lister.list_objects(Endpoint.parse("a/bucket1")):
        ...     print(record.key, record.size)
    """

    def __init__(self, tool_path: str = "mc"):
        self.tool_path = tool_path

    async def list_objects(self, endpoint: Endpoint) -> AsyncIterator[ObjectRecord]:
        try:
            process = await asyncio.create_subprocess_exec(
                self.tool_path,
                "ls",
                "--recursive",
                "--json",
                str(endpoint),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ListingError(str(endpoint), None, f"cannot start {self.tool_path}: {e}") from e

        stderr_tail: deque[str] = deque(maxlen=20)
        reported: list[str] = []
        skipped = 0
        stderr_task = asyncio.create_task(self._drain(process.stderr, stderr_tail))

        try:
            async for line in read_lines(process.stdout):
                line = line.strip()
                if not line:
                    continue
                parsed = parse_listing_line(line)
                if isinstance(parsed, ObjectRecord):
                    yield parsed
                elif isinstance(parsed, str):
                    reported.append(parsed)
                elif '"folder"' not in line:
                    skipped += 1
            returncode = await process.wait()
            await stderr_task
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()
            if not stderr_task.done():
                stderr_task.cancel()

        if skipped:
            logger.warning(f"Skipped {skipped} unparseable listing lines for {endpoint}")

        for line in stderr_tail:
            parsed = parse_listing_line(line)
            reported.append(parsed if isinstance(parsed, str) else line)

        detail = "; ".join(reported)
        if returncode == 0 and not reported:
            return
        if _ABSENT.search(detail):
            logger.warning(f"Endpoint {endpoint} is empty or absent, treating as zero objects: {detail}")
            return
        # error records mean the listing is incomplete, whatever the exit code
        raise ListingError(str(endpoint), returncode, detail)

    @staticmethod
    async def _drain(stream: asyncio.StreamReader, tail: deque) -> None:
        async for line in read_lines(stream):
            line = line.strip()
            if line:
                tail.append(line)


class InMemoryObjectLister:
    """
    Serves listings from memory, for testing and development.

    Endpoints with no listing behave like an absent bucket (zero objects);
    endpoints registered with ``fail()`` raise ListingError.

    Usage:
        >>> lister = InMemoryObjectLister({"a/bucket1": [ObjectRecord("x.txt", 3, "e1")]})
        >>> lister.fail("b/bucket2", "Access Denied")
    """

    def __init__(self, listings: dict[str, list[ObjectRecord]] | None = None):
        self.listings: dict[str, list[ObjectRecord]] = dict(listings or {})
        self.failures: dict[str, str] = {}
        self.calls: list[str] = []

    def set_listing(self, endpoint: str, records: list[ObjectRecord]) -> None:
        self.listings[endpoint] = list(records)

    def fail(self, endpoint: str, message: str = "listing failed") -> None:
        self.failures[endpoint] = message

    async def list_objects(self, endpoint: Endpoint) -> AsyncIterator[ObjectRecord]:
        address = str(endpoint)
        self.calls.append(address)
        for index, record in enumerate(self.listings.get(address, [])):
            if index % 1000 == 0:
                await asyncio.sleep(0)
            yield record
        if address in self.failures:
            raise ListingError(address, 1, self.failures[address])
