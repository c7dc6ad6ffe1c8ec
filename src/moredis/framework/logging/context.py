"""
Logging context management using contextvars.

This module provides run-aware context that automatically attaches to all
log entries. Context is propagated through the call stack without explicit
parameter passing: the populator binds the cache and collection it is
working on and every log line below it (allocator, writer, swapper)
carries them.
"""

import uuid
from contextvars import ContextVar, Token
from dataclasses import asdict, dataclass
from typing import Any

import structlog


def new_run_id() -> str:
    """Generate a short run ID (12 hex chars)."""
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class LogContext:
    """
    Context attached to all log entries.

    Run identity:
        run_id: Unique ID of one cache build
        cache: Cache being populated

    Position in the run:
        collection: Collection being processed
        map_name: Map being swapped
        stage: Populator stage

    Tracing (for nested timing blocks):
        span_id: Current span identifier
        parent_span_id: Parent span for nested operations
        step: Current timed step name
    """

    run_id: str | None = None
    cache: str | None = None

    collection: str | None = None
    map_name: str | None = None
    stage: str | None = None

    span_id: str | None = None
    parent_span_id: str | None = None
    step: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "LogContext":
        """Create new context with merged values."""
        current = asdict(self)
        current.update({k: v for k, v in kwargs.items() if v is not None})
        return LogContext(**current)


_log_context: ContextVar[LogContext] = ContextVar("log_context")  # noqa: B039


def get_context() -> LogContext:
    """Get the current log context."""
    return _log_context.get(LogContext())


def set_context(
    run_id: str | None = None,
    cache: str | None = None,
    collection: str | None = None,
    map_name: str | None = None,
    stage: str | None = None,
) -> LogContext:
    """
    Set the current log context.

    This replaces the current context. Use bind_context() to add to existing.
    """
    ctx = LogContext(run_id=run_id, cache=cache, collection=collection, map_name=map_name, stage=stage)
    _log_context.set(ctx)
    return ctx


def bind_context(**kwargs) -> LogContext:
    """
    Bind additional values to current context.

    This merges with the existing context rather than replacing it.
    """
    updated = get_context().merge(**kwargs)
    _log_context.set(updated)
    return updated


def clear_context() -> None:
    """Clear the current context (reset to empty)."""
    _log_context.set(LogContext())


class _ContextToken:
    """Token for restoring context after a scoped operation."""

    def __init__(self, token: Token):
        self._token = token

    def restore(self) -> None:
        """Restore the previous context."""
        _log_context.reset(self._token)


def push_context(**kwargs) -> _ContextToken:
    """
    Push new context values, returning a token to restore later.

    Usage:
        token = push_context(collection="users")
        try:
            process()
        finally:
            token.restore()
    """
    updated = get_context().merge(**kwargs)
    return _ContextToken(_log_context.set(updated))


def add_context_processor(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """
    Structlog processor that adds the run context to every log entry.

    Explicit keys on the log call win over context values.
    """
    for key, value in get_context().to_dict().items():
        if key not in event_dict:
            event_dict[key] = value
    return event_dict


def get_logger(name: str | None = None) -> Any:
    """
    Get a structured logger.

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name)
