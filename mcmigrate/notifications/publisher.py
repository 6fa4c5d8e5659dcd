"""
Builds migration_update events from repository state and publishes them.
"""

from mcmigrate.core.logger import get_logger
from mcmigrate.notifications.bus import EventBus
from mcmigrate.notifications.types import MigrationUpdateEvent
from mcmigrate.storage.base import MigrationStorage

logger = get_logger(__name__)


class MigrationUpdatePublisher:
    """
    Re-reads a migration after each write and publishes its snapshot.

    Components never publish their own in-memory view: the event always
    reflects what the repository holds.
    """

    def __init__(self, storage: MigrationStorage, bus: EventBus):
        self.storage = storage
        self.bus = bus

    async def migration_updated(self, migration_id: str) -> MigrationUpdateEvent | None:
        migration = await self.storage.get_migration(migration_id)
        if migration is None:
            logger.warning(f"Cannot publish update for unknown migration {migration_id}")
            return None

        event = MigrationUpdateEvent.from_migration(migration)
        await self.bus.publish(event)
        return event
