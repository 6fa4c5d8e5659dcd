"""
Tests for the event bus, sinks and the update publisher.
"""

import json
import logging

import pytest

from mcmigrate.notifications import (
    EventBus,
    InMemorySink,
    LoggingSink,
    MigrationUpdateEvent,
    MigrationUpdatePublisher,
    NotificationSink,
)
from mcmigrate.types import MigrationStatus


def event(migration_id="m-1", status="running", progress=10, errors=None):
    return MigrationUpdateEvent(
        migration_id=migration_id,
        status=status,
        progress=progress,
        stats={"transferred_objects": 1, "total_objects": 10},
        errors=errors or [],
    )


class FailingSink:
    async def deliver(self, event):
        raise RuntimeError("socket closed")


class TestEventBus:
    @pytest.mark.asyncio
    async def test_publish_to_all_subscribers(self):
        bus = EventBus()
        first, second = InMemorySink(), InMemorySink()
        bus.subscribe(first)
        bus.subscribe(second)

        delivered = await bus.publish(event())

        assert delivered == 2
        assert len(first.events) == len(second.events) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe_via_context_manager(self):
        bus = EventBus()
        sink = InMemorySink()

        with bus.subscribe(sink) as subscription:
            await bus.publish(event())
            assert subscription.active

        await bus.publish(event())

        assert len(sink.events) == 1
        assert not subscription.active
        assert bus.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_filter_by_migration(self):
        bus = EventBus()
        sink = InMemorySink()
        bus.subscribe(sink, migration_id="m-2")

        await bus.publish(event("m-1"))
        await bus.publish(event("m-2"))

        assert [e.migration_id for e in sink.events] == ["m-2"]

    @pytest.mark.asyncio
    async def test_failing_sink_is_isolated(self, caplog):
        bus = EventBus()
        sink = InMemorySink()
        bus.subscribe(FailingSink())
        bus.subscribe(sink)

        with caplog.at_level(logging.WARNING):
            delivered = await bus.publish(event())

        assert delivered == 1
        assert len(sink.events) == 1
        assert "socket closed" in caplog.text

    @pytest.mark.asyncio
    async def test_callback_subscriber(self):
        bus = EventBus()
        received = []

        async def on_update(update):
            received.append(update.status)

        bus.subscribe(on_update)
        await bus.publish(event(status="completed"))

        assert received == ["completed"]

    def test_sinks_satisfy_protocol(self):
        assert isinstance(InMemorySink(), NotificationSink)
        assert isinstance(LoggingSink(), NotificationSink)


class TestInMemorySink:
    @pytest.mark.asyncio
    async def test_statuses_collapse_repeats(self):
        sink = InMemorySink()
        for status in ["running", "running", "completed", "reconciling", "reconciling"]:
            await sink.deliver(event(status=status))

        assert sink.statuses_for("m-1") == ["running", "completed", "reconciling"]

    @pytest.mark.asyncio
    async def test_wait_for_status_times_out(self):
        with pytest.raises(TimeoutError):
            await InMemorySink().wait_for_status("m-1", "verified", timeout=0.05)


class TestLoggingSink:
    @pytest.mark.asyncio
    async def test_warns_on_new_errors(self, caplog):
        sink = LoggingSink()

        with caplog.at_level(logging.INFO, logger="mcmigrate.notifications"):
            await sink.deliver(event())
            await sink.deliver(event(errors=["Access Denied"]))
            await sink.deliver(event(errors=["Access Denied"]))

        levels = [record.levelno for record in caplog.records]
        assert levels == [logging.INFO, logging.WARNING, logging.INFO]
        assert "error: Access Denied" in caplog.records[1].getMessage()
        assert "[m-1] running 10% (1/10 objects)" in caplog.records[0].getMessage()


class TestMigrationUpdatePublisher:
    @pytest.mark.asyncio
    async def test_publishes_persisted_state(self, storage, bus, sink, migration_factory):
        migration = await storage.insert_migration(
            migration_factory(status=MigrationStatus.RUNNING, progress=40)
        )

        published = await MigrationUpdatePublisher(storage, bus).migration_updated(migration.id)

        assert published.status == "running"
        assert published.progress == 40
        assert sink.events == [published]
        payload = json.loads(published.to_json())
        assert payload["type"] == "migration_update"
        assert payload["data"]["id"] == migration.id

    @pytest.mark.asyncio
    async def test_unknown_migration(self, storage, bus, sink):
        assert await MigrationUpdatePublisher(storage, bus).migration_updated("missing") is None
        assert sink.events == []
