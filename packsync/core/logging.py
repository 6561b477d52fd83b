"""Structured logging configuration.

Features:
- JSON-formatted log output for production
- Human-readable format for development
- Service context on every event
- Context variables bound per sync session (repo, uuid, session_id)
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import Processor

from packsync.core.config import get_settings


def add_service_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add service context to all log entries.

    Args:
        logger: The wrapped logger object.
        method_name: The name of the method called on the logger.
        event_dict: The event dictionary to process.

    Returns:
        Updated event dictionary with service context.
    """
    settings = get_settings()
    event_dict["service"] = settings.service_name
    event_dict["environment"] = settings.environment
    return event_dict


def configure_logging() -> None:
    """Configure structured logging for the host application.

    In development: Human-readable colored output
    In production: JSON-formatted structured logs
    """
    settings = get_settings()

    use_json = settings.environment in ("production", "staging")

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_service_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if use_json:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=logging.getLevelName(settings.log_level.upper()),
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("filelock").setLevel(logging.WARNING)


@contextmanager
def bind_context(**fields: Any) -> Iterator[None]:
    """Bind ``fields`` to every event logged inside the ``with`` block.

    Bindings live in contextvars, so each asyncio task sees only its own
    session's fields. Tasks created inside the block inherit a copy.

    Example:
        ```python
        with bind_context(session_id=session.session_id, repo=repo):
            logger.info("Manifest fetched")  # carries session_id and repo
        ```
    """
    with structlog.contextvars.bound_contextvars(**fields):
        yield


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Optional logger name (module name recommended).

    Returns:
        Configured structlog logger.

    Example:
        ```python
        from packsync.core.logging import get_logger

        logger = get_logger(__name__)
        logger.info("Cache hit", layer="memory", key="owner/repo-1234")
        ```
    """
    return structlog.get_logger(name)

