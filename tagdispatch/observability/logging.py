"""
Structured logging setup using structlog.

Worker, reconciler and API processes all log through stdlib logging with
a structlog formatter, so handler threads and third-party libraries end
up in the same JSON (or console) stream. Job execution binds the job id
and tags as context variables; anything logged while a job body runs,
including from handler modules, carries them.
"""

import logging
import sys
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from opentelemetry import trace

from tagdispatch.config import get_settings

# Libraries that log every statement or request at INFO
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "httpx")


def add_trace_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Attach the current OpenTelemetry trace and span ids, if a span is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def add_service_name(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    # Matches the OpenTelemetry resource name so logs and traces join up
    event_dict.setdefault("service", get_settings().otel_service_name)
    return event_dict


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """
    Configure structured logging for the process.

    Args:
        level: Log level name. Defaults to LOG_LEVEL.
        fmt: "json" or "console". Defaults to LOG_FORMAT.
    """
    settings = get_settings()
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    log_format = fmt or settings.log_format

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        add_service_name,
        add_trace_context,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    if log_format == "json":
        renderers: list[Any] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *renderers,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, optionally with context bound to every message."""
    return structlog.get_logger(name, **initial_values)


def bind_context(**kwargs: Any) -> None:
    """Bind context to every later message in this process (e.g. worker_id)."""
    structlog.contextvars.bind_contextvars(**kwargs)


@contextmanager
def job_context(job_id: str, tags: Iterable[str] = ()) -> Iterator[None]:
    """
    Bind a job's id and tags to messages logged inside the block.

    Each asyncio task runs in its own copy of the context, so concurrent
    jobs on one worker do not see each other's bindings.
    """
    with structlog.contextvars.bound_contextvars(job_id=job_id, tags=list(tags)):
        yield
