"""
Notification Sink Protocol - Abstract interface for event delivery.

The core never knows who is listening; it publishes MigrationUpdateEvents
to an EventBus, which fans them out to every subscribed sink (websocket
relay, log, test recorder, ...).
"""

from typing import Protocol, runtime_checkable

from mcmigrate.notifications.types import MigrationUpdateEvent


@runtime_checkable
class NotificationSink(Protocol):
    """
    Protocol for notification sinks.
    """

    async def deliver(self, event: MigrationUpdateEvent) -> None:
        """
        Deliver one event.
        """
        ...