"""
Logging configuration.

Provides a single entry point for configuring structured logging.
Supports environment-based configuration for:
- Log level (DEBUG, INFO, WARNING, ERROR)
- Output format (json, console)

Configuration is read from environment variables when not passed:
- MOREDIS_LOG_LEVEL: DEBUG | INFO | WARNING | ERROR (default: INFO)
- MOREDIS_LOG_FORMAT: json | console (default: console)

Usage:
    # Configure at application startup
    from moredis.framework.logging import configure_logging
    configure_logging()

    # Or with explicit settings
    configure_logging(level="DEBUG", format="json")
"""

import logging
import os
import sys
from typing import Literal

import structlog
from structlog.types import Processor

from moredis.framework.logging.context import add_context_processor

# Track if logging has been configured
_configured = False


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
    force: bool = False,
) -> None:
    """
    Configure structured logging for the application.

    Should be called once at startup (CLI entry). Subsequent calls are
    no-ops unless force=True.

    Args:
        level: Log level (overrides MOREDIS_LOG_LEVEL env var)
        format: Output format (overrides MOREDIS_LOG_FORMAT env var)
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    log_level = (level or os.environ.get("MOREDIS_LOG_LEVEL", "INFO")).upper()
    log_format = (format or os.environ.get("MOREDIS_LOG_FORMAT", "console")).lower()

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        # UTC ISO-8601 timestamps
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        # run / cache / collection context from contextvars
        add_context_processor,
        structlog.processors.format_exc_info,
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level),
        force=True,
    )

    logging.getLogger("moredis").setLevel(getattr(logging, log_level))
    # driver chatter stays at WARNING unless we are debugging
    if log_level != "DEBUG":
        logging.getLogger("pymongo").setLevel(logging.WARNING)

    _configured = True


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured
