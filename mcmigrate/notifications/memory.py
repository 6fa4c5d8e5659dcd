"""
In-Memory Notification Sink - For testing and development.
"""

import asyncio
from collections.abc import Callable

from mcmigrate.notifications.types import MigrationUpdateEvent


class InMemorySink:
    """
    Records every delivered event so it can be inspected.

    Usage:
        >>> sink = InMemorySink()
        >>> bus.subscribe(sink)
        >>> ...
        >>> await sink.wait_for_status(migration_id, "verified", timeout=5)
        >>> assert sink.statuses_for(migration_id)[-1] == "verified"
    """

    def __init__(self):
        self.events: list[MigrationUpdateEvent] = []
        self._changed = asyncio.Condition()

    async def deliver(self, event: MigrationUpdateEvent) -> None:
        async with self._changed:
            self.events.append(event)
            self._changed.notify_all()

    def events_for(self, migration_id: str) -> list[MigrationUpdateEvent]:
        return [event for event in self.events if event.migration_id == migration_id]

    def statuses_for(self, migration_id: str) -> list[str]:
        """Distinct consecutive statuses seen for a migration."""
        statuses: list[str] = []
        for event in self.events_for(migration_id):
            if not statuses or statuses[-1] != event.status:
                statuses.append(event.status)
        return statuses

    async def wait_for(
        self,
        predicate: Callable[[MigrationUpdateEvent], bool],
        timeout: float = 5.0,
    ) -> MigrationUpdateEvent:
        """
        Wait until an event matching ``predicate`` has been delivered.

        Raises:
            TimeoutError: If no matching event arrives in time
        """

        def first_match() -> MigrationUpdateEvent | None:
            return next((event for event in self.events if predicate(event)), None)

        async def wait() -> MigrationUpdateEvent:
            async with self._changed:
                await self._changed.wait_for(lambda: first_match() is not None)
                return first_match()

        return await asyncio.wait_for(wait(), timeout=timeout)

    async def wait_for_status(
        self, migration_id: str, status: str, timeout: float = 5.0
    ) -> MigrationUpdateEvent:
        return await self.wait_for(
            lambda event: event.migration_id == migration_id and event.status == status,
            timeout=timeout,
        )

    def clear(self) -> None:
        self.events.clear()
