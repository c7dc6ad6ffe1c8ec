"""
Hash key allocation.

Each map gets a fresh Redis hash per run, named from a shared counter::

    INCR moredis:mapindexcounter   ->  7
    hash key                       ->  moredis:maps:7

The counter lives in the store, so every allocation is a single atomic round
trip and concurrent runs against the same store never see the same value.
"""

from __future__ import annotations

from collections.abc import Iterable

from moredis.core.config.models import MapSpec
from moredis.core.errors import AllocationError
from moredis.core.store import STORE_ERRORS, RedisStore
from moredis.framework.logging import get_logger

log = get_logger(__name__)

DEFAULT_KEY_PREFIX = "moredis"


class HashKeyAllocator:
    """Mints globally unique hash keys from ``<prefix>:mapindexcounter``."""

    def __init__(self, store: RedisStore, prefix: str = DEFAULT_KEY_PREFIX):
        self._store = store
        self._prefix = prefix

    @property
    def counter_key(self) -> str:
        return f"{self._prefix}:mapindexcounter"

    def hash_key_for(self, index: int) -> str:
        return f"{self._prefix}:maps:{index}"

    def allocate(self) -> str:
        """Increment the counter once and return the new hash key.

        Raises:
            AllocationError: The increment failed or returned a non-integer.
        """
        try:
            index = int(self._store.incr(self.counter_key))
        except STORE_ERRORS as exc:
            raise AllocationError(f"failed to increment {self.counter_key}: {exc}", cause=exc) from exc
        return self.hash_key_for(index)

    def allocate_maps(self, maps: Iterable[MapSpec]) -> list[MapSpec]:
        """Return copies of ``maps``, in order, each with a fresh hash key."""
        allocated = []
        for map_spec in maps:
            try:
                hash_key = self.allocate()
            except AllocationError as exc:
                exc.with_context(map_name=map_spec.name)
                raise
            allocated.append(map_spec.with_hash_key(hash_key))
            log.debug("hash_key.allocated", map_name=map_spec.name, hash_key=hash_key)
        return allocated


__all__ = ["DEFAULT_KEY_PREFIX", "HashKeyAllocator"]
