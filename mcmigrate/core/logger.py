"""
Logger lookup for mcmigrate modules.

Modules call ``get_logger(__name__)``. By default that is a standard
``logging`` logger under the ``mcmigrate`` namespace; ``set_logger()``
swaps in another backend for every module at once.

    import structlog
    from mcmigrate.core.logger import set_logger
    set_logger(structlog.get_logger)      # factory, called with each name
    set_logger(NullLogger())              # silence everything
"""

import logging
from collections.abc import Callable
from typing import Any

NAMESPACE = "mcmigrate"

_override: Any = None

logging.getLogger(NAMESPACE).addHandler(logging.NullHandler())


class NullLogger:
    """Accepts any logging call and drops it."""

    def __getattr__(self, name: str) -> Callable[..., None]:
        return lambda *args, **kwargs: None


def set_logger(logger: Any) -> None:
    """
    Route all mcmigrate logging to ``logger``.

    ``logger`` is either a logger object shared by every module, or a
    callable taking a module name and returning a logger. ``None``
    restores standard logging.
    """
    global _override
    _override = logger


def get_logger(name: str = NAMESPACE) -> Any:
    if _override is None:
        if name != NAMESPACE and not name.startswith(NAMESPACE + "."):
            name = f"{NAMESPACE}.{name}"
        return logging.getLogger(name)
    if callable(_override):
        return _override(name)
    return _override
