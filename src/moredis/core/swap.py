"""
Atomic reference swap (double-buffering cutover).

Readers never read a map's hash directly; they resolve a stable pointer key
whose value is the current hash key. A refresh builds the new hash under a
private key, then flips the pointer in one store operation::

    GETSET <pointer> moredis:maps:8   ->  "moredis:maps:7"
    DEL moredis:maps:7

A reader resolving the pointer at any instant sees either the fully old or
the fully new hash. The old hash is only deleted after the flip. A reader
that resolved the pointer just before the flip can still be reading the old
hash when the ``DEL`` lands; that window is inherent to pointer-based double
buffering and accepted.

Manifesto:
    The swap is the only step of a run that readers can observe, so it runs
    strictly after the new hash is fully written and flushed. A failed run
    never reaches it, which leaves the previous cache live and the partial
    hash unreferenced.

Tags:
    redis, double-buffering, atomic-swap, moredis

Doc-Types:
    - API Reference
    - Technical Design
"""

from __future__ import annotations

from dataclasses import dataclass

from moredis.core.config.models import MapSpec, RunParameters
from moredis.core.errors import ReferenceSwapError, SwapCleanupError
from moredis.core.store import STORE_ERRORS, RedisStore, decode_reply
from moredis.core.templating import apply_template
from moredis.framework.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class SwapResult:
    """Outcome of one pointer flip."""

    pointer: str
    new_key: str
    old_key: str | None = None
    deleted: bool = False


class ReferenceSwapper:
    """Repoints map pointers at freshly populated hashes."""

    def __init__(self, store: RedisStore):
        self._store = store

    def swap(self, pointer: str, hash_key: str) -> SwapResult:
        """Point ``pointer`` at ``hash_key`` and delete the previous hash.

        Raises:
            ReferenceSwapError: The ``GETSET`` failed; the pointer is unchanged.
            SwapCleanupError: The pointer was flipped but deleting the
                previous hash failed.
        """
        try:
            old_key = decode_reply(self._store.getset(pointer, hash_key))
        except STORE_ERRORS as exc:
            raise ReferenceSwapError(f"failed to update pointer: {exc}", cause=exc).with_context(
                pointer=pointer, hash_key=hash_key
            ) from exc

        log.info("swap.updated", pointer=pointer, old_ref=old_key, new_ref=hash_key)
        if old_key is None:
            return SwapResult(pointer=pointer, new_key=hash_key)
        if old_key == hash_key:
            # pointer already referenced this hash; deleting it would drop live data
            return SwapResult(pointer=pointer, new_key=hash_key, old_key=old_key)

        try:
            self._store.delete(old_key)
        except STORE_ERRORS as exc:
            raise SwapCleanupError(
                f"pointer updated but failed to delete previous hash: {exc}",
                stale_key=old_key,
                cause=exc,
            ).with_context(pointer=pointer, hash_key=hash_key) from exc

        log.info("swap.deleted_previous", pointer=pointer, old_ref=old_key)
        return SwapResult(pointer=pointer, new_key=hash_key, old_key=old_key, deleted=True)

    def swap_map(self, map_spec: MapSpec, params: RunParameters) -> SwapResult:
        """Render the map's pointer name and swap it to the map's hash key."""
        if not map_spec.hash_key:
            raise ValueError(f"map {map_spec.name!r} has no allocated hash key")
        pointer = apply_template(map_spec.name, params)
        return self.swap(pointer, map_spec.hash_key)


__all__ = ["ReferenceSwapper", "SwapResult"]
