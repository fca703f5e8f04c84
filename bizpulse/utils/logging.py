"""
Structured logging for the analytics engine.

Every report computation binds its report name, tenant and branch into
structlog's context variables, so events emitted deep inside a fan-out
(store queries, sub-aggregation failures, cache warnings) carry the report
they belong to.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog
from structlog.types import EventDict, Processor

from bizpulse.config import get_settings

SERVICE_NAME = "bizpulse"


def add_severity(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mirror the level as `severity` for log collectors that expect it."""
    event_dict["severity"] = method_name.upper()
    return event_dict


def add_service(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """
    Configure structlog on top of the standard library logger.

    Args:
        level: Log level name; defaults to `Settings.log_level`
        fmt: `json` or `console`; defaults to `Settings.log_format`. JSON is
            only used outside dev mode unless requested explicitly.
    """
    settings = get_settings()
    level = (level or settings.log_level).upper()
    if fmt is None:
        fmt = "json" if settings.log_format == "json" and not settings.dev_mode else "console"

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level, logging.INFO),
    )

    renderer: Processor
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            add_service,
            add_severity,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def report_context(**fields: Any) -> Iterator[None]:
    """Bind report-identifying fields to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(**{k: v for k, v in fields.items() if v is not None}):
        yield


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    return structlog.get_logger(name)
