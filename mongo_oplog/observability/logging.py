"""
Structured Logging Configuration with structlog

The library only calls structlog.get_logger(); applications decide how logs are
rendered by calling configure_logging() once at startup.
"""

import logging
import sys
from typing import Any, MutableMapping

import structlog
from bson import Timestamp

from mongo_oplog.models.timestamp import LogicalTimestamp


def render_timestamps(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Render oplog positions (LogicalTimestamp or bson Timestamp) as "seconds.increment" """
    for key, value in event_dict.items():
        if isinstance(value, LogicalTimestamp):
            event_dict[key] = str(value)
        elif isinstance(value, Timestamp):
            event_dict[key] = f"{value.time}.{value.inc}"
    return event_dict


def configure_logging(
    log_level: str = "INFO", log_format: str = "json", driver_log_level: str = "WARNING"
) -> None:
    """
    Configure structlog on top of stdlib logging

    Args:
        log_level: Level for mongo_oplog and the application (DEBUG ... CRITICAL)
        log_format: "json" for one JSON object per line, "console" for development
        driver_log_level: Level for the "pymongo" loggers, which are chatty at DEBUG
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )
    logging.getLogger("pymongo").setLevel(getattr(logging, driver_log_level.upper()))

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        render_timestamps,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_context(**kwargs: Any) -> None:
    """
    Replace the context bound to every log line of the current thread or task

    A consumer typically binds the oplog namespace or replica set name once.
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**kwargs)
