"""
Logging Notification Sink - writes one log line per migration update.
"""

import logging

from mcmigrate.core.logger import get_logger
from mcmigrate.notifications.types import MigrationUpdateEvent


class LoggingSink:
    """
    Logs migration updates, at WARNING when the update carries new errors.
    """

    def __init__(self, logger=None, level: int = logging.INFO):
        self._logger = logger or get_logger("mcmigrate.notifications")
        self._level = level
        self._error_counts: dict[str, int] = {}

    async def deliver(self, event: MigrationUpdateEvent) -> None:
        seen = self._error_counts.get(event.migration_id, 0)
        self._error_counts[event.migration_id] = len(event.errors)

        stats = event.stats
        line = (
            f"[{event.migration_id}] {event.status} {event.progress}% "
            f"({stats.get('transferred_objects', 0)}/{stats.get('total_objects', 0)} objects)"
        )

        if len(event.errors) > seen:
            self._logger.warning(f"{line} error: {event.errors[-1]}")
        else:
            self._logger.log(self._level, line)
