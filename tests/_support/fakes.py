"""
In-memory fakes for the store and source capability protocols.

- FakeStore / FakePipeline: stand-in for ``redis.Redis`` that records every
  command and can be told to fail on a given operation
- FakeCursor / FakeSource: document source with closable cursors
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from pymongo.errors import OperationFailure
from redis.exceptions import ConnectionError as RedisConnectionError

# =============================================================================
# Store fakes
# =============================================================================


class FakePipeline:
    """Non-transactional pipeline: commands apply on ``execute()``."""

    def __init__(self, store: FakeStore, transaction: bool):
        self.store = store
        self.transaction = transaction
        self.queued: list[tuple[Any, ...]] = []
        self.execute_calls = 0

    def execute_command(self, *args: Any, **options: Any) -> FakePipeline:
        self.store._maybe_fail("queue")
        self.queued.append(args)
        return self

    def execute(self, raise_on_error: bool = True) -> list[Any]:
        self.execute_calls += 1
        self.store._maybe_fail("execute")
        replies = [self.store._apply(args) for args in self.queued]
        self.queued = []
        return replies


class FakeStore:
    """
    In-memory Redis with the subset of commands moredis issues.

    Attributes:
        strings: plain keys (counter, pointers)
        hashes: hash keys to field/value dicts
        commands: every command applied, as space-joined strings
        fail_on: operation names that raise a redis ConnectionError
    """

    def __init__(self) -> None:
        self.strings: dict[str, Any] = {}
        self.hashes: dict[str, dict[str, Any]] = {}
        self.commands: list[str] = []
        self.pipelines: list[FakePipeline] = []
        self.deleted: list[str] = []
        self.ping_count = 0
        self.closed = False
        self.fail_on: set[str] = set()

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RedisConnectionError(f"{operation} failed")

    def _log(self, *args: Any) -> None:
        self.commands.append(" ".join(str(arg) for arg in args))

    def _apply(self, args: tuple[Any, ...]) -> Any:
        self._log(*args)
        command = str(args[0]).upper()
        if command == "HSET":
            _, name, field, value = args
            self.hashes.setdefault(name, {})[field] = value
            return 1
        raise NotImplementedError(command)

    # ── RedisStore surface ───────────────────────────────────────

    def pipeline(self, transaction: bool = True, shard_hint: Any = None) -> FakePipeline:
        pipe = FakePipeline(self, transaction)
        self.pipelines.append(pipe)
        return pipe

    def incr(self, name: str, amount: int = 1) -> int:
        self._maybe_fail("incr")
        self._log("INCR", name)
        value = int(self.strings.get(name, 0)) + amount
        self.strings[name] = value
        return value

    def getset(self, name: str, value: Any) -> Any:
        self._maybe_fail("getset")
        self._log("GETSET", name, value)
        old = self.strings.get(name)
        self.strings[name] = value
        return old

    def delete(self, *names: str) -> int:
        self._maybe_fail("delete")
        self._log("DEL", *names)
        count = 0
        for name in names:
            self.deleted.append(name)
            if self.hashes.pop(name, None) is not None or self.strings.pop(name, None) is not None:
                count += 1
        return count

    def ping(self, **kwargs: Any) -> bool:
        self._maybe_fail("ping")
        self.ping_count += 1
        return True

    def close(self) -> None:
        self.closed = True

    # ── helpers ──────────────────────────────────────────────────

    @property
    def writes(self) -> list[str]:
        return [command for command in self.commands if command.startswith("HSET")]


# =============================================================================
# Source fakes
# =============================================================================


class FakeCursor:
    """Forward-only cursor over a list of records."""

    def __init__(
        self,
        records: list[dict[str, Any]],
        *,
        fail_at: int | None = None,
        close_error: Exception | None = None,
    ):
        self.records = records
        self.fail_at = fail_at
        self.close_error = close_error
        self.closed = False
        self.yielded = 0

    def __iter__(self) -> Iterator[dict[str, Any]]:
        for index, record in enumerate(self.records):
            if index == self.fail_at:
                raise OperationFailure("cursor died")
            self.yielded += 1
            yield record

    def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class FakeSource:
    """Document source keyed by collection name."""

    def __init__(self) -> None:
        self.collections: dict[str, list[dict[str, Any]]] = {}
        self.queries: list[tuple[str, dict[str, Any], dict[str, Any] | None]] = []
        self.cursors: list[FakeCursor] = []
        self.cursor_options: dict[str, dict[str, Any]] = {}
        self.closed = False

    def add(self, collection: str, records: list[dict[str, Any]], **cursor_options: Any) -> None:
        self.collections[collection] = records
        self.cursor_options[collection] = cursor_options

    def find(
        self,
        collection: str,
        filter: dict[str, Any],
        projection: dict[str, Any] | None = None,
    ) -> FakeCursor:
        self.queries.append((collection, filter, projection))
        cursor = FakeCursor(self.collections.get(collection, []), **self.cursor_options.get(collection, {}))
        self.cursors.append(cursor)
        return cursor

    def close(self) -> None:
        self.closed = True
