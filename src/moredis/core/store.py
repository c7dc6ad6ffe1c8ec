"""
Store capability protocols.

The subset of the redis-py client the cache pipeline relies on. A
``redis.Redis`` instance satisfies :class:`RedisStore` directly; tests use
in-memory fakes with the same surface.

Cross-run safety rests on two store-side atomic primitives only:
``INCR`` for hash key allocation and ``GETSET`` for the pointer flip.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from redis.exceptions import RedisError

# Errors a store command may raise. ValueError/TypeError cover replies that
# cannot be interpreted (e.g. a non-integer counter).
STORE_ERRORS: tuple[type[Exception], ...] = (RedisError, ValueError, TypeError)


@runtime_checkable
class StorePipeline(Protocol):
    """Buffered command queue; nothing is sent until ``execute()``."""

    def execute_command(self, *args: Any, **options: Any) -> Any:
        ...

    def execute(self, raise_on_error: bool = True) -> list[Any]:
        ...


@runtime_checkable
class RedisStore(Protocol):
    """Commands issued against the cache store."""

    def pipeline(self, transaction: bool = True, shard_hint: Any = None) -> StorePipeline:
        ...

    def incr(self, name: str, amount: int = 1) -> int:
        ...

    def getset(self, name: str, value: Any) -> Any:
        ...

    def delete(self, *names: str) -> int:
        ...

    def ping(self, **kwargs: Any) -> Any:
        ...

    def close(self) -> None:
        ...


def decode_reply(value: Any) -> str | None:
    """Decode a bytes reply; ``None`` stays ``None``."""
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


__all__ = [
    "STORE_ERRORS",
    "RedisStore",
    "StorePipeline",
    "decode_reply",
]
