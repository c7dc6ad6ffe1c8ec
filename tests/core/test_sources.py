"""Tests for moredis.core.sources module."""

from unittest.mock import MagicMock

import pytest
from pymongo.errors import OperationFailure

from moredis.core.errors import SourceIterationError
from moredis.core.sources import (
    DocumentSource,
    MongoSource,
    RecordCursor,
    close_cursor,
    iterate_records,
)
from tests._support.fakes import FakeCursor, FakeSource


class TestProtocols:
    def test_fakes_satisfy_protocols(self):
        assert isinstance(FakeCursor([]), RecordCursor)
        assert isinstance(FakeSource(), DocumentSource)

    def test_mongo_source_satisfies_protocol(self):
        assert isinstance(MongoSource(MagicMock()), DocumentSource)


class TestIterateRecords:
    def test_yields_in_order(self):
        records = [{"n": 1}, {"n": 2}]
        assert list(iterate_records(FakeCursor(records))) == records

    def test_driver_error_is_wrapped(self):
        cursor = FakeCursor([{"n": 1}, {"n": 2}], fail_at=1)
        iterator = iterate_records(cursor)
        assert next(iterator) == {"n": 1}
        with pytest.raises(SourceIterationError) as exc_info:
            next(iterator)
        assert isinstance(exc_info.value.cause, OperationFailure)


class TestCloseCursor:
    def test_closes(self):
        cursor = FakeCursor([])
        close_cursor(cursor)
        assert cursor.closed

    def test_driver_error_is_wrapped(self):
        cursor = FakeCursor([], close_error=OperationFailure("close failed"))
        with pytest.raises(SourceIterationError):
            close_cursor(cursor)


class TestMongoSource:
    def test_find_passes_filter_and_projection(self):
        database = MagicMock()
        source = MongoSource(database)

        cursor = source.find("users", {"a": 1}, {"email": 1})

        database.__getitem__.assert_called_once_with("users")
        database.__getitem__.return_value.find.assert_called_once_with({"a": 1}, {"email": 1})
        assert cursor is database.__getitem__.return_value.find.return_value

    def test_find_error_is_wrapped(self):
        database = MagicMock()
        database.__getitem__.return_value.find.side_effect = OperationFailure("bad query")
        with pytest.raises(SourceIterationError) as exc_info:
            MongoSource(database).find("users", {})
        assert exc_info.value.context.collection == "users"

    def test_close_closes_client(self):
        database = MagicMock()
        MongoSource(database).close()
        database.client.close.assert_called_once_with()
