"""
Record sources.

The populator reads documents through two small capability protocols so it
can run against in-memory fakes as easily as against MongoDB:

- :class:`RecordCursor`: forward-only iteration plus an explicit ``close()``.
  A pymongo ``Cursor`` satisfies it as is.
- :class:`DocumentSource`: ``find(collection, filter, projection)`` returning
  a cursor.

Driver failures surface as :class:`~moredis.core.errors.SourceIterationError`
through :func:`iterate_records` and :func:`close_cursor`.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any, Protocol, runtime_checkable

from pymongo.database import Database
from pymongo.errors import PyMongoError

from moredis.core.errors import SourceIterationError

SourceRecord = Mapping[str, Any]


@runtime_checkable
class RecordCursor(Protocol):
    """Forward-only handle over query results."""

    def __iter__(self) -> Iterator[SourceRecord]:
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class DocumentSource(Protocol):
    """Anything that can run a filtered, optionally projected query."""

    def find(
        self,
        collection: str,
        filter: dict[str, Any],
        projection: dict[str, Any] | None = None,
    ) -> RecordCursor:
        ...


class MongoSource:
    """MongoDB database exposed as a :class:`DocumentSource`.

    Owns the database's client: :meth:`close` closes it.
    """

    def __init__(self, database: Database):
        self._database = database

    @property
    def database(self) -> Database:
        return self._database

    def find(
        self,
        collection: str,
        filter: dict[str, Any],
        projection: dict[str, Any] | None = None,
    ) -> RecordCursor:
        try:
            return self._database[collection].find(filter, projection)
        except PyMongoError as exc:
            raise SourceIterationError(f"find failed: {exc}", cause=exc).with_context(
                collection=collection
            ) from exc

    def close(self) -> None:
        self._database.client.close()


def iterate_records(cursor: RecordCursor) -> Iterator[SourceRecord]:
    """Yield records from ``cursor``, translating driver errors."""
    try:
        yield from cursor
    except PyMongoError as exc:
        raise SourceIterationError(f"cursor iteration failed: {exc}", cause=exc) from exc


def close_cursor(cursor: RecordCursor) -> None:
    """Close ``cursor``, translating driver errors."""
    try:
        cursor.close()
    except PyMongoError as exc:
        raise SourceIterationError(f"cursor close failed: {exc}", cause=exc) from exc


__all__ = [
    "DocumentSource",
    "MongoSource",
    "RecordCursor",
    "SourceRecord",
    "close_cursor",
    "iterate_records",
]
