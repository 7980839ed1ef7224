"""Centralised logging configuration with JSON output.

Every event is rendered as one JSON line stamped with the service name and
environment. Request-scoped values (path, client, run id) are attached with
``bind_context`` and flow into every event logged by the same task.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Dict

import structlog

from .config import settings

DEFAULT_LOG_LEVEL = settings.log_level

_configured = False


def _add_service(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict.setdefault("service", settings.service_name)
    event_dict.setdefault("env", settings.environment)
    return event_dict


def _configure_structlog(level: str) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_service,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Set up stdlib and structlog once per process; later calls are no-ops."""

    global _configured
    if _configured:
        return
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )
    _configure_structlog(level)
    _configured = True


def get_logger(name: str, **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Return a bound structured logger."""

    configure_logging()
    logger = structlog.get_logger(name)
    if initial_values:
        return logger.bind(**initial_values)
    return logger


def bind_context(**values: Any) -> None:
    """Attach ``values`` to every event logged by the current task."""
    structlog.contextvars.bind_contextvars(**values)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


__all__ = ["configure_logging", "get_logger", "bind_context", "clear_context"]
