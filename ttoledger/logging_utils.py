"""Mini README: Application-wide logging helpers for the TTO ledger.

Structure:
    * configure_root_logger - one-time root handler setup, accepts level names.
    * get_logger - module logger factory ensuring baseline configuration.
    * operation_logger - adapter that prefixes log lines with operation context.

Usage:
    Modules declare ``LOGGER = get_logger(__name__)``. Engines that run a
    multi-step operation wrap their logger with ``operation_logger`` so every
    line of one allocation or payment carries the same project/person tags,
    which keeps interleaved concurrent requests readable in the console.
"""

from __future__ import annotations

import logging
from typing import Any, MutableMapping, Optional, Tuple, Union

_LOGGER_INITIALISED = False

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s - %(message)s"


def _coerce_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def configure_root_logger(level: Union[int, str] = logging.INFO) -> None:
    """Attach the console handler to the root logger exactly once."""

    global _LOGGER_INITIALISED
    if _LOGGER_INITIALISED:
        logging.getLogger().setLevel(_coerce_level(level))
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root_logger = logging.getLogger()
    root_logger.setLevel(_coerce_level(level))
    root_logger.addHandler(handler)
    _LOGGER_INITIALISED = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module-specific logger ensuring baseline configuration."""

    if not _LOGGER_INITIALISED:
        configure_root_logger()
    return logging.getLogger(name)


class _OperationAdapter(logging.LoggerAdapter):
    """Prefix messages with ``key=value`` pairs describing the operation."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        context = " ".join(f"{key}={value}" for key, value in self.extra.items())
        return f"[{context}] {msg}", kwargs


def operation_logger(logger: logging.Logger, **context: object) -> logging.LoggerAdapter:
    """Wrap ``logger`` so each message carries the supplied context."""

    return _OperationAdapter(logger, {key: value for key, value in context.items() if value is not None})
