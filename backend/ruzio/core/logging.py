"""
Structured logging configuration with request and actor correlation.

structlog is configured once at application start. Every event carries the
request id and the acting (actor_id, actor_role) pair when they are bound in
the current context, so a single order's lifecycle can be followed across
restaurant, customer and delivery partner requests.
"""

import logging
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

import structlog
from structlog.types import EventDict, Processor

from ruzio.core.config import get_settings

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
actor_ctx: ContextVar[Optional[tuple[str, str]]] = ContextVar("actor", default=None)


def add_request_id(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add the request id bound in the current context."""
    request_id = request_id_ctx.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def add_actor(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add the acting user id and role bound in the current context."""
    actor = actor_ctx.get()
    if actor is not None:
        event_dict.setdefault("actor_id", actor[0])
        event_dict.setdefault("actor_role", actor[1])
    return event_dict


def add_timestamp(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add an ISO-8601 UTC timestamp."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def configure_logging() -> None:
    """
    Configure structured logging.

    Uses the console renderer in development and JSON output everywhere
    else. Standard library logging is routed to stdout at the configured
    level so SQLAlchemy and uvicorn records end up in the same stream.
    """
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_timestamp,
        add_request_id,
        add_actor,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_development:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        structlog logger bound to the given name
    """
    return structlog.get_logger(name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Bind a request id to the current context.

    Args:
        request_id: Incoming request id, a UUID is generated when omitted

    Returns:
        The request id that was bound
    """
    if request_id is None:
        request_id = str(uuid4())
    request_id_ctx.set(request_id)
    return request_id


def get_request_id() -> str:
    """Return the request id bound in the current context."""
    return request_id_ctx.get()


def bind_actor(actor_id: str, actor_role: str) -> None:
    """Bind the acting user to the current context."""
    actor_ctx.set((actor_id, actor_role))


def clear_context() -> None:
    """
    Clear all correlation context.

    Called at the end of each request so context never leaks between
    requests served by the same worker.
    """
    request_id_ctx.set("")
    actor_ctx.set(None)


class PerformanceLogger:
    """Context manager that logs the duration of a block."""

    SLOW_THRESHOLD_MS = 500

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        **context: Any,
    ):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.start_time: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = time.perf_counter()
        self.logger.debug(
            "Operation started",
            operation=self.operation,
            **self.context,
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is None:
            return

        duration_ms = round((time.perf_counter() - self.start_time) * 1000, 2)

        if exc_type is not None:
            # Domain errors are logged by the services; only record timing here
            self.logger.info(
                "Operation aborted",
                operation=self.operation,
                duration_ms=duration_ms,
                error_type=exc_type.__name__,
                **self.context,
            )
            return

        log_method = (
            self.logger.warning
            if duration_ms > self.SLOW_THRESHOLD_MS
            else self.logger.info
        )
        log_method(
            "Operation completed",
            operation=self.operation,
            duration_ms=duration_ms,
            **self.context,
        )


def log_performance(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    **context: Any,
) -> PerformanceLogger:
    """
    Create a performance logging context manager.

    Example:
        >>> logger = get_logger(__name__)
        >>> with log_performance(logger, "place_order", restaurant_id=rid):
        ...     ...
    """
    return PerformanceLogger(logger, operation, **context)
