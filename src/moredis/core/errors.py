"""
Structured error types for moredis.

Every failure a cache run can hit is represented by a typed error carrying a
category, a structured context (which cache, collection, map and stage were
being processed) and the chained underlying exception. None of these errors
are recovered locally: the first one raised aborts the run and is surfaced to
the caller with enough context to diagnose it.

Manifesto:
    - **Typed hierarchy:** One error type per failure mode of the pipeline
    - **Rich context:** Errors carry cache/collection/map/stage metadata
    - **Error chaining:** The driver exception is preserved as ``cause``
    - **Terminal:** Nothing here is retryable; a failed run is rerun whole

Architecture:
    ::

        MoredisError  (category, context, cause)
        ├── TemplateError          TEMPLATE
        │   ├── TemplateSyntaxError
        │   └── TemplateExecutionError
        ├── QueryParseError        PARSE
        ├── StoreError             STORE
        │   ├── AllocationError
        │   ├── WriteError
        │   └── ReferenceSwapError
        │       └── SwapCleanupError
        ├── SourceIterationError   SOURCE
        ├── ConfigError            CONFIG
        │   ├── InvalidConfigError
        │   ├── CacheNotFoundError
        │   └── InvalidParamsError
        └── ConnectionSetupError   CONNECTION

Examples:
    >>> err = WriteError("pipeline flush failed")
    >>> err.with_context(cache="users", collection="accounts")
    WriteError('pipeline flush failed', category=STORE)
    >>> err.context.collection
    'accounts'

Tags:
    error-handling, exception-hierarchy, error-context, moredis

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for classification in logs and CLI output."""

    TEMPLATE = "TEMPLATE"         # Template compile/render
    PARSE = "PARSE"               # Rendered query is not a JSON object
    STORE = "STORE"               # Redis command failures
    SOURCE = "SOURCE"             # MongoDB cursor failures
    CONFIG = "CONFIG"             # Config file, cache lookup, run params
    CONNECTION = "CONNECTION"     # Connection establishment

    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        cache: Name of the cache being populated
        collection: Source collection being processed
        map_name: Pointer-name template of the map involved
        stage: Populator stage that failed (see ``CollectionStage``)
        hash_key: Allocated hash key involved
        pointer: Rendered pointer name involved in a swap
        metadata: Additional key-value pairs
    """

    cache: str | None = None
    collection: str | None = None
    map_name: str | None = None
    stage: str | None = None
    hash_key: str | None = None
    pointer: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["cache", "collection", "map_name", "stage", "hash_key", "pointer"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class MoredisError(Exception):
    """
    Base exception for all moredis errors.

    Subclasses set ``default_category``. Context can be attached after
    creation with :meth:`with_context`, which is how the populator stamps the
    failing cache, collection and stage onto errors raised by lower layers.

    Examples:
        >>> try:
        ...     raise ConnectionRefusedError("connection refused")
        ... except ConnectionRefusedError as e:
        ...     error = AllocationError("INCR failed", cause=e)
        >>> error.cause
        ConnectionRefusedError('connection refused')
        >>> error.to_dict()["category"]
        'STORE'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> MoredisError:
        """
        Add context to this error (fluent API).

        Fields already set are kept, so the innermost layer that knew a
        value wins over outer layers re-stamping the same error.

        Usage:
            raise WriteError("flush failed").with_context(
                cache="users", collection="accounts"
            )
        """
        for key, value in kwargs.items():
            if value is None:
                continue
            if hasattr(self.context, key) and key != "metadata":
                if getattr(self.context, key) is None:
                    setattr(self.context, key, value)
            else:
                self.context.metadata.setdefault(key, value)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __str__(self) -> str:
        context_dict = self.context.to_dict()
        if not context_dict:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in context_dict.items())
        return f"{self.message} ({details})"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TEMPLATE ERRORS
# =============================================================================


class TemplateError(MoredisError):
    """Base class for template compile and render failures."""

    default_category = ErrorCategory.TEMPLATE


class TemplateSyntaxError(TemplateError):
    """Malformed template text, or a reference to an unknown function."""

    def __init__(self, message: str, *, template: str | None = None, position: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.template = template
        self.position = position
        if template is not None:
            self.context.metadata["template"] = template
        if position is not None:
            self.context.metadata["position"] = position


class TemplateExecutionError(TemplateError):
    """Template could not be rendered against its context."""


# =============================================================================
# QUERY ERRORS
# =============================================================================


class QueryParseError(MoredisError):
    """Rendered query or projection is not a JSON object."""

    default_category = ErrorCategory.PARSE

    def __init__(self, message: str, *, rendered: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.rendered = rendered
        if rendered is not None:
            self.context.metadata["rendered"] = rendered


# =============================================================================
# STORE ERRORS
# =============================================================================


class StoreError(MoredisError):
    """Base class for Redis command failures."""

    default_category = ErrorCategory.STORE


class AllocationError(StoreError):
    """Atomic increment of the map index counter failed."""


class WriteError(StoreError):
    """Pipelined write or flush failed."""


class ReferenceSwapError(StoreError):
    """Atomic read-and-set of a pointer failed; the pointer is unchanged."""


class SwapCleanupError(ReferenceSwapError):
    """
    The pointer flip succeeded but deleting the previous hash failed.

    The new hash is live. ``stale_key`` names the hash that was left behind
    and must be reclaimed out of band.
    """

    def __init__(self, message: str, *, stale_key: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.stale_key = stale_key
        if stale_key is not None:
            self.context.metadata["stale_key"] = stale_key


# =============================================================================
# SOURCE ERRORS
# =============================================================================


class SourceIterationError(MoredisError):
    """Reading from, or closing, a source cursor failed."""

    default_category = ErrorCategory.SOURCE


# =============================================================================
# CONFIG ERRORS
# =============================================================================


class ConfigError(MoredisError):
    """Configuration error (never recoverable without a config change)."""

    default_category = ErrorCategory.CONFIG


class InvalidConfigError(ConfigError):
    """Config file could not be read or does not match the schema."""


class CacheNotFoundError(ConfigError):
    """Requested cache is not defined in the config file."""

    def __init__(self, cache_name: str, **kwargs: Any):
        super().__init__(f"cache not found in config: {cache_name}", **kwargs)
        self.cache_name = cache_name
        self.context.cache = cache_name


class InvalidParamsError(ConfigError):
    """Run parameters are not a flat JSON object of strings."""


# =============================================================================
# CONNECTION ERRORS
# =============================================================================


class ConnectionSetupError(MoredisError):
    """A backing store could not be reached when the run started."""

    default_category = ErrorCategory.CONNECTION


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "MoredisError",
    "TemplateError",
    "TemplateSyntaxError",
    "TemplateExecutionError",
    "QueryParseError",
    "StoreError",
    "AllocationError",
    "WriteError",
    "ReferenceSwapError",
    "SwapCleanupError",
    "SourceIterationError",
    "ConfigError",
    "InvalidConfigError",
    "CacheNotFoundError",
    "InvalidParamsError",
    "ConnectionSetupError",
]
