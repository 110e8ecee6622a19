"""Structured logging configuration using structlog."""

import logging
import sys

import structlog

from sharepoint_fs.config import get_settings


def configure_logging() -> None:
    """Configure structured logging for the library and its scripts."""
    settings = get_settings()

    # Map string log level to logging constant
    log_level = getattr(logging, settings.log_level, logging.INFO)

    # Common processors for all environments
    shared_processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.is_development:
        # Human-readable console output for development
        shared_processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        # JSON output for staging/production (log aggregation friendly)
        shared_processors.extend(
            [
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ]
        )

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Configure stdlib logging to use structlog
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    # MSAL logs through stdlib logging; verbose only in debug mode
    logging.getLogger("msal").setLevel(
        logging.DEBUG if settings.sharepoint_debug else logging.WARNING
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)
