"""
Core module for mcmigrate - configuration, environment, exceptions, logging.
"""

from mcmigrate.core.config import MigratorConfig, configure, get_config
from mcmigrate.core.env import EnvManager, get_env
from mcmigrate.core.exceptions import (
    DuplicateActiveMigrationError,
    InvalidConfigError,
    InvalidStateTransitionError,
    ListingError,
    MigrationError,
    MigrationNotFoundError,
    MissingDependencyError,
    ReconciliationAbandonedError,
    ReconciliationError,
    SchedulerError,
    TransferSpawnError,
    TransferTimeoutError,
)
from mcmigrate.core.logger import NullLogger, get_logger, set_logger

__all__ = [
    # Config
    "EnvManager",
    "MigratorConfig",
    "configure",
    "get_config",
    "get_env",
    # Exceptions
    "DuplicateActiveMigrationError",
    "InvalidConfigError",
    "InvalidStateTransitionError",
    "ListingError",
    "MigrationError",
    "MigrationNotFoundError",
    "MissingDependencyError",
    "ReconciliationAbandonedError",
    "ReconciliationError",
    "SchedulerError",
    "TransferSpawnError",
    "TransferTimeoutError",
    # Logging
    "NullLogger",
    "get_logger",
    "set_logger",
]
