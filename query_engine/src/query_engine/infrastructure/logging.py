"""Structured logging for the query engine.

Executor events carry the query id (bound per query through contextvars)
and, on failure, the operator and rendered row that raised. Rendered plans
and rows can be arbitrarily long, so they are clipped to
``max_field_chars`` before rendering.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterable, Iterator

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

CLIPPED_FIELDS = ("plan", "row", "message")


def clip_fields(max_chars: int, fields: Iterable[str] = CLIPPED_FIELDS) -> Processor:
    """
    Build a processor that shortens long string values.

    Args:
        max_chars: Longest value kept as is
        fields: Event keys to clip

    Returns:
        A structlog processor
    """
    names = tuple(fields)

    def processor(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        for name in names:
            value = event_dict.get(name)
            if isinstance(value, str) and len(value) > max_chars:
                event_dict[name] = f"{value[:max_chars]}... [{len(value)} chars]"
        return event_dict

    return processor


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    max_field_chars: int = 2000,
) -> None:
    """
    Configure structlog for the engine.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: 'json' for machine-readable lines, 'console' for humans
        max_field_chars: Clip rendered plans and rows longer than this
    """
    numeric_level = getattr(logging, level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        clip_fields(max_field_chars),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """Get a structlog logger, optionally bound to ``initial_context``."""
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


@contextmanager
def query_log_context(query_id: int, **context: Any) -> Iterator[None]:
    """Bind ``query_id`` (and any extra pairs) to every event emitted while a query runs.

    Pairs bound by an enclosing query are restored on exit.
    """
    bound = {"query_id": query_id, **context}
    previous = structlog.contextvars.get_contextvars()
    structlog.contextvars.bind_contextvars(**bound)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*bound)
        restored = {key: previous[key] for key in bound if key in previous}
        if restored:
            structlog.contextvars.bind_contextvars(**restored)
