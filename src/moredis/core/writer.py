"""
Batched pipelined writes.

:class:`BatchWriter` queues commands on a non-transactional pipeline and
flushes automatically every ``flush_interval`` commands, so a large
collection is written in bounded batches instead of one round trip per
field.

Usage:
    writer = BatchWriter(store, flush_interval=100)
    for field, value in pairs:
        writer.send("HSET", "moredis:maps:7", field, value)
    writer.flush()
"""

from __future__ import annotations

from typing import Any

from redis.exceptions import RedisError

from moredis.core.errors import WriteError
from moredis.core.store import RedisStore
from moredis.framework.logging import get_logger

log = get_logger(__name__)

DEFAULT_FLUSH_INTERVAL = 100


class BatchWriter:
    """Pipelined writer with automatic flushing.

    Attributes:
        pending: Commands queued since the last flush.
        sent: Commands queued over the writer's lifetime.
        flushes: Non-empty flushes performed.
    """

    def __init__(self, store: RedisStore, flush_interval: int = DEFAULT_FLUSH_INTERVAL):
        if flush_interval < 1:
            raise ValueError(f"flush_interval must be >= 1, got {flush_interval}")
        self._store = store
        self._pipeline = store.pipeline(transaction=False)
        self._flush_interval = flush_interval
        self.pending = 0
        self.sent = 0
        self.flushes = 0

    @property
    def flush_interval(self) -> int:
        return self._flush_interval

    def send(self, command: str, *args: Any) -> None:
        """Queue ``command``; flush once ``flush_interval`` are pending.

        Raises:
            WriteError: Queuing or the automatic flush failed.
        """
        try:
            self._pipeline.execute_command(command, *args)
        except RedisError as exc:
            raise WriteError(f"failed to queue {command}: {exc}", cause=exc) from exc
        self.pending += 1
        self.sent += 1
        if self.pending >= self._flush_interval:
            self.flush()

    def flush(self) -> None:
        """Send everything pending and wait until every reply is drained.

        Ends with a ``PING`` round trip so no reply is outstanding when the
        caller moves on to a dependent operation such as a swap. A no-op
        when nothing is pending.

        Raises:
            WriteError: Executing the pipeline or the ping failed.
        """
        if self.pending == 0:
            return
        count = self.pending
        try:
            self._pipeline.execute()
            self._store.ping()
        except RedisError as exc:
            raise WriteError(f"failed to flush {count} commands: {exc}", cause=exc) from exc
        self.pending = 0
        self.flushes += 1
        log.debug("writer.flushed", commands=count)


__all__ = ["DEFAULT_FLUSH_INTERVAL", "BatchWriter"]
