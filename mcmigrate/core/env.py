"""
Environment variable management with .env file support.

Loads ``.env`` files through python-dotenv, reads typed values and
substitutes ``${VAR}`` references in values loaded from YAML configs.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

_BRACED_PATTERN = re.compile(r"\$\{([^}:]+)(?::([?-])([^}]*))?\}")
_BARE_PATTERN = re.compile(r"\$([A-Z_][A-Z0-9_]*)")


class EnvManager:
    """
    Manages environment variables for mcmigrate.

    Example:
        >>> env = EnvManager()
        >>> env.load()  # Loads .env if exists
        >>> db_path = env.get("MCMIGRATE_DB_PATH")
    """

    def __init__(self, project_root: Path | str | None = None, auto_load: bool = True):
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self.loaded_from: Path | None = None

        if auto_load:
            self.load()

    def load(self, env_file: str | Path | None = None, override: bool = False) -> bool:
        """
        Load environment variables from a .env file.

        Args:
            env_file: Path to .env file (defaults to .env in project root)
            override: Whether to override existing environment variables

        Returns:
            True if the file was loaded, False if it does not exist
        """
        env_file = self.project_root / ".env" if env_file is None else Path(env_file)

        if not env_file.exists():
            return False

        load_dotenv(env_file, override=override)
        self.loaded_from = env_file
        return True

    def get(self, key: str, default: str | None = None, required: bool = False) -> str | None:
        value = os.environ.get(key, default)

        if required and value is None:
            msg = f"Required environment variable not set: {key}"
            raise ValueError(msg)

        return value

    def get_first(self, *keys: str, default: str | None = None) -> str | None:
        """Value of the first variable in ``keys`` that is set."""
        for key in keys:
            value = os.environ.get(key)
            if value is not None and value != "":
                return value
        return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key, "").lower()
        if value in ("true", "1", "yes", "on"):
            return True
        if value in ("false", "0", "no", "off"):
            return False
        return default

    def get_int(self, key: str, default: int | None = 0) -> int | None:
        return self._get_number(key, int, default, "an integer")

    def get_float(self, key: str, default: float) -> float:
        return self._get_number(key, float, default, "a number")

    def _get_number(self, key: str, cast: type, default: Any, kind: str) -> Any:
        raw = self.get(key)
        if raw is None or not raw.strip():
            return default
        try:
            return cast(raw)
        except ValueError:
            msg = f"Environment variable {key} must be {kind}, got {raw!r}"
            raise ValueError(msg) from None

    def substitute(self, text: str) -> str:
        """
        Substitute environment variables in text.

        Supports:
        - ${VAR} - variable substitution (left as-is when unset)
        - ${VAR:-default} - with default value
        - ${VAR:?error} - required variable (raises ValueError if not set)
        - $VAR - bare upper-case variable
        """

        def replace(match: re.Match) -> str:
            var_name, operator, operand = match.group(1), match.group(2), match.group(3)
            value = os.environ.get(var_name)

            if operator == "-":
                return value if value is not None else operand
            if operator == "?":
                if value is None:
                    raise ValueError(operand or f"Required variable not set: {var_name}")
                return value
            return value if value is not None else f"${{{var_name}}}"

        text = _BRACED_PATTERN.sub(replace, text)
        return _BARE_PATTERN.sub(lambda m: os.environ.get(m.group(1), m.group(0)), text)

    def substitute_dict(self, data: dict[str, Any]) -> dict[str, Any]:
        """Recursively substitute environment variables in dictionary values."""
        return {key: self._substitute_value(value) for key, value in data.items()}

    def _substitute_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.substitute(value)
        if isinstance(value, dict):
            return self.substitute_dict(value)
        if isinstance(value, list):
            return [self._substitute_value(item) for item in value]
        return value


_global_env: EnvManager | None = None


def get_env() -> EnvManager:
    """Get the global environment manager instance."""
    global _global_env
    if _global_env is None:
        _global_env = EnvManager(auto_load=False)
    return _global_env
