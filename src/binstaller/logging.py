"""Logging configuration for binstaller.

Diagnostics go to stderr, as structured events (JSON, or a console renderer in
development). Stdout is left to the CLI for results, so that
``binstaller --json ...`` output can be piped straight into other tools.
"""

import logging
import sys

import structlog

from binstaller.config import get_settings


def setup_logging(level: str | None = None) -> None:
    """Configure structured logging.

    ``level`` overrides the configured ``log_level`` (used by the CLI's
    ``--verbose`` flag).
    """
    settings = get_settings()

    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer(colors=True)
                if settings.is_development
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Also configure standard library logging for third-party packages
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=log_level,
    )

    # Reduce noise from httpx
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
