"""
Structured logging for dyntable.

dyntable logs through structlog. Library modules call
``get_logger(__name__)`` and emit dotted event names with keyword fields::

    logger.debug("command.execute", provider="postgresql", sql=sql, params=3)

Nothing is printed until the host application calls ``configure_logging``
(or configures structlog itself); the default structlog configuration
applies otherwise.

Processor chain built by ``configure_logging``:
    1. level filter (stdlib logger level)
    2. TimeStamper (optional)
    3. add_log_level / add_logger_name
    4. StackInfoRenderer / format_exc_info
    5. service metadata
    6. SQL truncation (long statements are cut to ``max_sql_length``)
    7. JSONRenderer (or ConsoleRenderer for a tty)

Examples:
    >>> from dyntable.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> logger = get_logger(__name__)
    >>> logger.debug("schema.loaded", table="Products", columns=7)

Tags:
    logging, structlog, observability, dyntable
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Set once by configure_logging
_SERVICE_NAME = "dyntable"
_MAX_SQL_LENGTH = 2000


def _add_service_metadata(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def _truncate_sql(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Cut oversized ``sql`` fields so batch statements don't flood the log."""
    sql = event_dict.get("sql")
    if isinstance(sql, str) and len(sql) > _MAX_SQL_LENGTH:
        event_dict["sql"] = sql[:_MAX_SQL_LENGTH] + "..."
        event_dict["sql_length"] = len(sql)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "dyntable",
    add_timestamp: bool = True,
    max_sql_length: int = 2000,
) -> None:
    """Configure structured logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs
        max_sql_length: Longest SQL text logged before truncation
    """
    global _SERVICE_NAME, _MAX_SQL_LENGTH
    _SERVICE_NAME = service
    _MAX_SQL_LENGTH = max_sql_length

    if json_format is None:
        json_format = not sys.stdout.isatty()

    log_level = getattr(logging, level.upper())

    shared_processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_service_metadata,
        _truncate_sql,
    ]

    if add_timestamp:
        shared_processors.insert(1, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Configure stdlib logging to match
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True,
    )
    logging.getLogger("dyntable").setLevel(log_level)


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs.

    Example:
        bind_context(table="Products", provider="sqlite")
        logger.debug("command.execute")  # includes table and provider
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(table="Products"):
            model.save(row)
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
