"""
moredis logging - structured, run-aware logging.

This module provides:
- Structured logging with structlog
- Run context propagation via contextvars
- Timing utilities for per-step durations
- Environment-based configuration

Usage:
    from moredis.framework.logging import get_logger, configure_logging, log_step, bind_context

    # Configure once at startup
    configure_logging()

    # Get a logger
    log = get_logger(__name__)

    # Bind run context (automatically attached to all logs)
    bind_context(run_id="3f9c0a1b2c4d", cache="users")

    # Log with timing
    with log_step("collection", collection="users"):
        process_collection()
"""

from moredis.framework.logging.config import configure_logging
from moredis.framework.logging.context import (
    LogContext,
    bind_context,
    clear_context,
    get_context,
    get_logger,
    new_run_id,
    push_context,
    set_context,
)
from moredis.framework.logging.timing import StepTimer, log_step

__all__ = [
    # Configuration
    "configure_logging",
    # Context
    "get_logger",
    "set_context",
    "clear_context",
    "get_context",
    "bind_context",
    "push_context",
    "new_run_id",
    "LogContext",
    # Timing
    "log_step",
    "StepTimer",
]
