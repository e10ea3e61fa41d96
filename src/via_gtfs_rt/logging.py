"""Structured logging configuration."""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from structlog.types import Processor

from via_gtfs_rt.config import get_settings

# Transport loggers that would otherwise log every upstream request
QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        level: Root log level, defaults to ``settings.log_level``.
        json_output: Render JSON lines instead of the console format. Defaults
            to JSON everywhere except the development environment.
    """
    settings = get_settings()
    level = (level or settings.log_level).upper()
    if json_output is None:
        json_output = settings.environment != "development"

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    renderer: Processor
    if json_output:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # stdout is reserved for the JSON feed dump of the command entry
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.stdlib.get_logger(name)


def bind_poll_context(**kwargs: Any) -> None:
    """Bind context variables (e.g. poll_id) for the current poll cycle."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_poll_context() -> None:
    """Clear context variables after a poll cycle completes."""
    structlog.contextvars.clear_contextvars()
