"""
MigratorConfig - Unified configuration for the migration service.

One type-safe object carries every tunable of the service: where the job
repository lives, which transfer tool to run, scheduler timings and the
reconciliation batch sizes.

Example:
    >>> from mcmigrate.core.config import MigratorConfig, configure
    >>>
    >>> config = MigratorConfig(
    ...     db_path="./data/migrations.db",
    ...     tool_path="/usr/local/bin/mc",
    ...     poll_interval_seconds=30,
    ... )
    >>> configure(config)

Example (YAML file):
    >>> config = MigratorConfig.from_file("mcmigrate.yaml")

    # In mcmigrate.yaml:
    # storage:
    #   db_path: ${MCMIGRATE_DB_PATH:-./data/migrations.db}
    # transfer:
    #   tool_path: /usr/local/bin/mc
    # scheduler:
    #   poll_interval_seconds: 30
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# YAML section -> {yaml key: config field}
_FILE_SECTIONS: dict[str, dict[str, str]] = {
    "storage": {
        "db_path": "db_path",
        "scratch_dir": "scratch_dir",
        "reports_dir": "reports_dir",
    },
    "transfer": {
        "tool_path": "tool_path",
        "timeout_seconds": "transfer_timeout_seconds",
        "terminate_grace_seconds": "terminate_grace_seconds",
        "max_progress_while_running": "max_progress_while_running",
    },
    "scheduler": {
        "poll_interval_seconds": "poll_interval_seconds",
        "timer_lookahead_seconds": "timer_lookahead_seconds",
    },
    "reconciliation": {
        "inventory_chunk_size": "inventory_chunk_size",
        "comparison_batch_size": "comparison_batch_size",
    },
    "recovery": {
        "staleness_seconds": "staleness_seconds",
    },
    "observability": {
        "metrics_port": "metrics_port",
        "log_level": "log_level",
        "json_logs": "json_logs",
    },
}


@dataclass
class MigratorConfig:
    """
    Configuration for the migration service.

    Attributes:
        db_path: SQLite job repository file, or ":memory:"
        tool_path: Transfer tool executable (``mc``)
        scratch_dir: Directory for reconciliation scratch databases;
            None keeps scratch inventories in memory
        reports_dir: Directory to export reconciliation reports as JSON;
            None disables file export (reports are always kept in the repository)
        staleness_seconds: Age after which an active migration found at
            startup is presumed orphaned
        poll_interval_seconds: Scheduler poll period
        timer_lookahead_seconds: Jobs due within this window get a timer
        inventory_chunk_size: Listing records persisted per scratch write
        comparison_batch_size: Keys compared per comparison page
        transfer_timeout_seconds: Hard wall-clock ceiling of one transfer
        terminate_grace_seconds: Wait between terminate and kill
        max_progress_while_running: Progress cap while the tool is alive
        metrics_port: Port for the Prometheus endpoint; None disables it
        log_level: Console log level name
        json_logs: Emit JSON log lines instead of plain text
    """

    db_path: str = "./data/migrations.db"
    tool_path: str = "mc"
    scratch_dir: str | None = "./data/scratch"
    reports_dir: str | None = None
    staleness_seconds: float = 600.0
    poll_interval_seconds: float = 60.0
    timer_lookahead_seconds: float = 3600.0
    inventory_chunk_size: int = 10_000
    comparison_batch_size: int = 5_000
    transfer_timeout_seconds: float = 86_400.0
    terminate_grace_seconds: float = 10.0
    max_progress_while_running: int = 95
    metrics_port: int | None = None
    log_level: str = "INFO"
    json_logs: bool = False

    def __post_init__(self) -> None:
        for name in (
            "staleness_seconds",
            "poll_interval_seconds",
            "transfer_timeout_seconds",
        ):
            if getattr(self, name) <= 0:
                msg = f"{name} must be positive, got {getattr(self, name)}"
                raise ValueError(msg)

        for name in ("timer_lookahead_seconds", "terminate_grace_seconds"):
            if getattr(self, name) < 0:
                msg = f"{name} must not be negative, got {getattr(self, name)}"
                raise ValueError(msg)

        for name in ("inventory_chunk_size", "comparison_batch_size"):
            if int(getattr(self, name)) < 1:
                msg = f"{name} must be at least 1, got {getattr(self, name)}"
                raise ValueError(msg)

        if not 0 <= self.max_progress_while_running <= 100:
            msg = (
                "max_progress_while_running must be between 0 and 100, "
                f"got {self.max_progress_while_running}"
            )
            raise ValueError(msg)

        if not self.tool_path:
            msg = "tool_path must not be empty"
            raise ValueError(msg)

        self.log_level = self.log_level.upper()
        if logging.getLevelName(self.log_level) == f"Level {self.log_level}":
            msg = f"Unknown log level: {self.log_level}"
            raise ValueError(msg)

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.log_level)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_env(cls, load_dotenv: bool = True) -> MigratorConfig:
        """
        Create configuration from environment variables.

        Environment variables:
            MCMIGRATE_DB_PATH, MCMIGRATE_SCRATCH_DIR, MCMIGRATE_REPORTS_DIR
            MC_PATH or MCMIGRATE_TOOL_PATH
            MCMIGRATE_STALENESS_SECONDS, MCMIGRATE_POLL_INTERVAL,
            MCMIGRATE_TIMER_LOOKAHEAD, MCMIGRATE_TRANSFER_TIMEOUT,
            MCMIGRATE_TERMINATE_GRACE
            MCMIGRATE_INVENTORY_CHUNK_SIZE, MCMIGRATE_COMPARISON_BATCH_SIZE
            MCMIGRATE_METRICS_PORT, MCMIGRATE_LOG_LEVEL, MCMIGRATE_JSON_LOGS

        Args:
            load_dotenv: If True, loads .env file before reading variables
        """
        from mcmigrate.core.env import get_env

        env = get_env()
        if load_dotenv:
            env.load()

        defaults = cls()
        return cls(
            db_path=env.get("MCMIGRATE_DB_PATH", defaults.db_path),
            tool_path=env.get_first("MC_PATH", "MCMIGRATE_TOOL_PATH", default=defaults.tool_path),
            scratch_dir=env.get("MCMIGRATE_SCRATCH_DIR", defaults.scratch_dir) or None,
            reports_dir=env.get("MCMIGRATE_REPORTS_DIR", defaults.reports_dir) or None,
            staleness_seconds=env.get_float(
                "MCMIGRATE_STALENESS_SECONDS", defaults.staleness_seconds
            ),
            poll_interval_seconds=env.get_float(
                "MCMIGRATE_POLL_INTERVAL", defaults.poll_interval_seconds
            ),
            timer_lookahead_seconds=env.get_float(
                "MCMIGRATE_TIMER_LOOKAHEAD", defaults.timer_lookahead_seconds
            ),
            inventory_chunk_size=env.get_int(
                "MCMIGRATE_INVENTORY_CHUNK_SIZE", defaults.inventory_chunk_size
            ),
            comparison_batch_size=env.get_int(
                "MCMIGRATE_COMPARISON_BATCH_SIZE", defaults.comparison_batch_size
            ),
            transfer_timeout_seconds=env.get_float(
                "MCMIGRATE_TRANSFER_TIMEOUT", defaults.transfer_timeout_seconds
            ),
            terminate_grace_seconds=env.get_float(
                "MCMIGRATE_TERMINATE_GRACE", defaults.terminate_grace_seconds
            ),
            metrics_port=env.get_int("MCMIGRATE_METRICS_PORT", None),
            log_level=env.get("MCMIGRATE_LOG_LEVEL", defaults.log_level),
            json_logs=env.get_bool("MCMIGRATE_JSON_LOGS", defaults.json_logs),
        )

    @classmethod
    def from_file(cls, file_path: str | Path, substitute_env: bool = True) -> MigratorConfig:
        """
        Load configuration from a YAML file.

        Supports environment variable substitution using ${VAR} syntax.
        Unknown sections and keys are ignored with a warning.
        """
        import yaml

        from mcmigrate.core.env import get_env

        path = Path(file_path)
        if not path.exists():
            msg = f"Configuration file not found: {file_path}"
            raise FileNotFoundError(msg)

        with path.open() as f:
            data = yaml.safe_load(f)

        if not data:
            return cls()

        if substitute_env:
            env = get_env()
            env.load()
            data = env.substitute_dict(data)

        values: dict[str, Any] = {}
        for section, content in data.items():
            mapping = _FILE_SECTIONS.get(section)
            if mapping is None or not isinstance(content, dict):
                logger.warning(f"Ignoring unknown configuration section: {section}")
                continue
            for key, value in content.items():
                if key not in mapping:
                    logger.warning(f"Ignoring unknown configuration key: {section}.{key}")
                    continue
                values[mapping[key]] = value

        return cls(**cls._coerce(values))

    @classmethod
    def _coerce(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Convert substituted strings back to the field types."""
        defaults = cls()
        coerced: dict[str, Any] = {}
        for name, value in values.items():
            default = getattr(defaults, name)
            if value is None or (isinstance(value, str) and value == ""):
                coerced[name] = None if name in ("reports_dir", "scratch_dir", "metrics_port") else default
            elif isinstance(default, bool):
                coerced[name] = value if isinstance(value, bool) else str(value).lower() in ("true", "1", "yes", "on")
            elif isinstance(default, int) or name == "metrics_port":
                coerced[name] = int(value)
            elif isinstance(default, float):
                coerced[name] = float(value)
            else:
                coerced[name] = str(value)
        return coerced


_global_config: MigratorConfig | None = None


def get_config() -> MigratorConfig:
    """Get the global migrator configuration."""
    global _global_config
    if _global_config is None:
        _global_config = MigratorConfig()
    return _global_config


def configure(config: MigratorConfig) -> None:
    """Set the global migrator configuration."""
    global _global_config
    _global_config = config
    logger.info(f"Migrator configured: db_path={config.db_path}, tool_path={config.tool_path}")
