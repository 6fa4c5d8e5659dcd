"""
Notification delivery for migration state changes.

Quick Start:
    >>> from mcmigrate.notifications import EventBus, InMemorySink
    >>>
    >>> bus = EventBus()
    >>> sink = InMemorySink()
    >>> with bus.subscribe(sink):
    ...     await bus.publish(event)
"""

from .base import NotificationSink
from .bus import CallbackSink, EventBus, Subscription
from .logging import LoggingSink
from .memory import InMemorySink
from .publisher import MigrationUpdatePublisher
from .types import MIGRATION_UPDATE, MigrationUpdateEvent

__all__ = [
    "MIGRATION_UPDATE",
    "CallbackSink",
    "EventBus",
    "InMemorySink",
    "LoggingSink",
    "MigrationUpdateEvent",
    "MigrationUpdatePublisher",
    "NotificationSink",
    "Subscription",
]
