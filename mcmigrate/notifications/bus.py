"""
Event bus - typed publish/subscribe with an explicit subscription lifecycle.

Usage:
    >>> bus = EventBus()
    >>> sink = InMemorySink()
    >>> subscription = bus.subscribe(sink)
    >>> await bus.publish(event)
    >>> subscription.close()
"""

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from mcmigrate.core.logger import get_logger
from mcmigrate.notifications.base import NotificationSink
from mcmigrate.notifications.types import MigrationUpdateEvent

logger = get_logger(__name__)


@dataclass(eq=False)
class Subscription:
    """
    Handle returned by EventBus.subscribe.

    Closing it (directly or by leaving a ``with`` block) unsubscribes the sink.
    ``migration_id`` restricts delivery to events of a single migration.
    """

    sink: NotificationSink
    bus: "EventBus"
    migration_id: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def matches(self, event: MigrationUpdateEvent) -> bool:
        return self.migration_id is None or self.migration_id == event.migration_id

    @property
    def active(self) -> bool:
        return self.bus.is_subscribed(self)

    def close(self) -> None:
        self.bus.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class CallbackSink:
    """Adapts an async callable to the NotificationSink protocol."""

    def __init__(self, callback: Callable[[MigrationUpdateEvent], Awaitable[None]]):
        self._callback = callback

    async def deliver(self, event: MigrationUpdateEvent) -> None:
        await self._callback(event)


class EventBus:
    """
    Fans events out to subscribed sinks in subscription order.

    A failing sink is logged and skipped; it never affects the publisher
    or the other sinks.
    """

    def __init__(self):
        self._subscriptions: dict[str, Subscription] = {}

    def subscribe(
        self,
        sink: NotificationSink | Callable[[MigrationUpdateEvent], Awaitable[None]],
        migration_id: str | None = None,
    ) -> Subscription:
        if not isinstance(sink, NotificationSink):
            sink = CallbackSink(sink)
        subscription = Subscription(sink=sink, bus=self, migration_id=migration_id)
        self._subscriptions[subscription.id] = subscription
        logger.debug(f"Subscribed {type(sink).__name__} ({subscription.id})")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        removed = self._subscriptions.pop(subscription.id, None) is not None
        if removed:
            logger.debug(f"Unsubscribed {type(subscription.sink).__name__} ({subscription.id})")
        return removed

    def is_subscribed(self, subscription: Subscription) -> bool:
        return subscription.id in self._subscriptions

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def publish(self, event: MigrationUpdateEvent) -> int:
        """
        Deliver an event to every matching subscriber.

        Returns:
            Number of sinks that accepted the event
        """
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if not subscription.matches(event):
                continue
            try:
                await subscription.sink.deliver(event)
                delivered += 1
            except Exception as e:
                logger.warning(
                    f"Notification sink {type(subscription.sink).__name__} failed "
                    f"for migration {event.migration_id}: {e}"
                )
        return delivered

    def clear(self) -> None:
        self._subscriptions.clear()
