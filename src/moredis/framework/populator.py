"""
Cache population.

Drives one cache build: every collection of a :class:`CacheDefinition` is
taken, strictly one at a time, through a fixed sequence of stages::

    ALLOCATE_KEYS -> COMPILE_TEMPLATES -> BUILD_QUERY -> ITERATE_AND_WRITE
                  -> FLUSH_WRITER -> SWAP_REFERENCES -> DONE

Manifesto:
    The first error aborts the run. Nothing is retried and nothing is
    rolled back: collections swapped before the failure stay live, and the
    failing collection's partially written hashes are never referenced by
    a pointer, so readers keep seeing the previous cache. Every error leaves
    with the cache, collection, stage and (where known) map that produced it.

Architecture:
    ::

        build_cache(cache, params, settings)
            └── CachePopulator.populate(cache, params)
                  └── process_collection(collection, params)   per collection
                        ├── HashKeyAllocator.allocate_maps
                        ├── compile templates, render pointer names
                        ├── build_query -> source.find -> cursor
                        ├── process_records(writer, records, maps)
                        ├── BatchWriter.flush
                        └── ReferenceSwapper.swap              per map

Tags:
    moredis, populator, orchestration, double-buffering

Doc-Types:
    - API Reference
    - Technical Design
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from moredis.core.config.factory import create_mongo_source, create_redis_connection
from moredis.core.config.models import CacheDefinition, CollectionSpec, MapSpec, RunParameters
from moredis.core.config.settings import MoredisSettings, get_settings
from moredis.core.errors import MoredisError, SourceIterationError
from moredis.core.keys import DEFAULT_KEY_PREFIX, HashKeyAllocator
from moredis.core.query import build_query
from moredis.core.sources import DocumentSource, SourceRecord, close_cursor, iterate_records
from moredis.core.store import RedisStore
from moredis.core.swap import ReferenceSwapper, SwapResult
from moredis.core.templating import Template, compile_template, is_skip_key
from moredis.core.writer import DEFAULT_FLUSH_INTERVAL, BatchWriter
from moredis.framework.logging import get_logger, log_step, new_run_id, push_context

log = get_logger(__name__)


class CollectionStage(str, Enum):
    """Stages a collection passes through, in order."""

    ALLOCATE_KEYS = "allocate_keys"
    COMPILE_TEMPLATES = "compile_templates"
    BUILD_QUERY = "build_query"
    ITERATE_AND_WRITE = "iterate_and_write"
    FLUSH_WRITER = "flush_writer"
    SWAP_REFERENCES = "swap_references"
    DONE = "done"


@dataclass(frozen=True)
class CompiledMap:
    """A map with its allocated hash key and compiled pointer/key/val templates."""

    spec: MapSpec
    pointer: Template
    key: Template
    value: Template

    @property
    def hash_key(self) -> str:
        return self.spec.hash_key

    @classmethod
    def compile(cls, spec: MapSpec) -> CompiledMap:
        return cls(
            spec=spec,
            pointer=compile_template(spec.name, name=f"{spec.name}:name"),
            key=compile_template(spec.key, name=f"{spec.name}:key"),
            value=compile_template(spec.value, name=f"{spec.name}:val"),
        )


@dataclass
class RecordStats:
    """Counters for the record loop of one collection."""

    processed: int = 0  # records pulled from the cursor
    written: int = 0  # HSET commands sent
    skipped: int = 0  # (record, map) pairs whose key rendered empty


@dataclass(frozen=True)
class CollectionReport:
    """Outcome of one fully processed collection."""

    collection: str
    stats: RecordStats
    swaps: tuple[SwapResult, ...]
    flushes: int
    duration_ms: float


@dataclass
class PopulateReport:
    """Outcome of a completed cache build."""

    cache: str
    run_id: str
    collections: list[CollectionReport] = field(default_factory=list)

    @property
    def records(self) -> int:
        return sum(report.stats.processed for report in self.collections)

    @property
    def written(self) -> int:
        return sum(report.stats.written for report in self.collections)

    @property
    def skipped(self) -> int:
        return sum(report.stats.skipped for report in self.collections)

    @property
    def swaps(self) -> list[SwapResult]:
        return [swap for report in self.collections for swap in report.swaps]


def process_records(
    writer: BatchWriter,
    records: Iterable[SourceRecord],
    maps: Sequence[CompiledMap],
) -> RecordStats:
    """
    Render every map against every record and queue the resulting writes.

    For each record and each map, in order, the key template is rendered;
    an empty key or ``<no value>`` skips that map for that record only.
    Otherwise the value template is rendered and
    ``HSET <hash_key> <key> <value>`` is sent.

    Errors propagate with ``map_name`` attached when a map was involved.
    """
    stats = RecordStats()
    for record in records:
        stats.processed += 1
        for compiled in maps:
            try:
                key = compiled.key.execute(record)
                if is_skip_key(key):
                    stats.skipped += 1
                    continue
                value = compiled.value.execute(record)
                writer.send("HSET", compiled.hash_key, key, value)
            except MoredisError as exc:
                exc.with_context(map_name=compiled.spec.name, hash_key=compiled.hash_key)
                raise
            stats.written += 1
    return stats


class CachePopulator:
    """
    Builds caches against an already connected store and source.

    The populator owns neither connection; :func:`build_cache` handles
    their lifecycle.
    """

    def __init__(
        self,
        store: RedisStore,
        source: DocumentSource,
        *,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        flush_interval: int = DEFAULT_FLUSH_INTERVAL,
    ):
        if flush_interval < 1:
            raise ValueError(f"flush_interval must be >= 1, got {flush_interval}")
        self._store = store
        self._source = source
        self._flush_interval = flush_interval
        self._allocator = HashKeyAllocator(store, prefix=key_prefix)
        self._swapper = ReferenceSwapper(store)

    def populate(self, cache: CacheDefinition, params: RunParameters) -> PopulateReport:
        """
        Process every collection of ``cache`` in order.

        Raises:
            MoredisError: The first failure, with ``cache``, ``collection``
                and ``stage`` in its context. Remaining collections are not
                attempted.
        """
        report = PopulateReport(cache=cache.name, run_id=new_run_id())
        token = push_context(run_id=report.run_id, cache=cache.name)
        try:
            log.info("populate.start", collections=len(cache.collections), params=sorted(params))
            with log_step("populate", log_start=False) as timer:
                for collection in cache.collections:
                    try:
                        report.collections.append(self.process_collection(collection, params))
                    except MoredisError as exc:
                        exc.with_context(cache=cache.name)
                        log.error(
                            "populate.aborted",
                            completed=[r.collection for r in report.collections],
                            **exc.to_dict(),
                        )
                        raise
                timer.add_metric("records", report.records)
                timer.add_metric("written", report.written)
            log.info(
                "populate.completed",
                collections=len(report.collections),
                records=report.records,
                written=report.written,
                skipped=report.skipped,
            )
        finally:
            token.restore()
        return report

    def process_collection(self, collection: CollectionSpec, params: RunParameters) -> CollectionReport:
        """Run one collection through every stage up to its pointer swap."""
        stage = CollectionStage.ALLOCATE_KEYS
        token = push_context(collection=collection.collection)
        try:
            with log_step("collection", collection=collection.collection) as timer:
                stage = self._advance(CollectionStage.ALLOCATE_KEYS)
                allocated = self._allocator.allocate_maps(collection.maps)

                stage = self._advance(CollectionStage.COMPILE_TEMPLATES)
                maps = []
                pointers = []
                for spec in allocated:
                    try:
                        compiled = CompiledMap.compile(spec)
                        pointers.append(compiled.pointer.execute(params))
                    except MoredisError as exc:
                        exc.with_context(map_name=spec.name)
                        raise
                    maps.append(compiled)

                stage = self._advance(CollectionStage.BUILD_QUERY)
                query = build_query(collection, params)

                stage = self._advance(CollectionStage.ITERATE_AND_WRITE)
                writer = BatchWriter(self._store, flush_interval=self._flush_interval)
                stats = self._iterate_and_write(collection, query.filter, query.projection, writer, maps)

                stage = self._advance(CollectionStage.FLUSH_WRITER)
                writer.flush()

                stage = self._advance(CollectionStage.SWAP_REFERENCES)
                swaps = []
                for compiled, pointer in zip(maps, pointers):
                    try:
                        swaps.append(self._swapper.swap(pointer, compiled.hash_key))
                    except MoredisError as exc:
                        exc.with_context(map_name=compiled.spec.name)
                        raise

                stage = self._advance(CollectionStage.DONE)
                timer.add_metric("records", stats.processed)
                timer.add_metric("written", stats.written)
        except MoredisError as exc:
            exc.with_context(collection=collection.collection, stage=stage.value)
            raise
        finally:
            token.restore()

        log.info(
            "collection.processed",
            collection=collection.collection,
            maps=len(maps),
            records=stats.processed,
            written=stats.written,
            skipped=stats.skipped,
            flushes=writer.flushes,
        )
        return CollectionReport(
            collection=collection.collection,
            stats=stats,
            swaps=tuple(swaps),
            flushes=writer.flushes,
            duration_ms=round(timer.duration_ms, 2),
        )

    def _iterate_and_write(
        self,
        collection: CollectionSpec,
        filter: dict,
        projection: dict | None,
        writer: BatchWriter,
        maps: Sequence[CompiledMap],
    ) -> RecordStats:
        cursor = self._source.find(collection.collection, filter, projection)
        try:
            stats = process_records(writer, iterate_records(cursor), maps)
        except Exception:
            # the original failure wins over a close failure
            try:
                close_cursor(cursor)
            except SourceIterationError as close_exc:
                log.warning("cursor.close_failed", error=str(close_exc))
            raise
        close_cursor(cursor)
        return stats

    @staticmethod
    def _advance(stage: CollectionStage) -> CollectionStage:
        log.debug("collection.stage", stage=stage.value)
        return stage


def build_cache(
    cache: CacheDefinition,
    params: RunParameters,
    settings: MoredisSettings | None = None,
) -> PopulateReport:
    """
    Connect to both stores, populate ``cache`` and disconnect.

    Both connections are closed whether or not the run succeeds.
    """
    settings = settings or get_settings()
    store = create_redis_connection(settings)
    try:
        source = create_mongo_source(settings)
        try:
            populator = CachePopulator(
                store,
                source,
                key_prefix=settings.key_prefix,
                flush_interval=settings.flush_interval,
            )
            return populator.populate(cache, params)
        finally:
            source.close()
    finally:
        store.close()


__all__ = [
    "CachePopulator",
    "CollectionReport",
    "CollectionStage",
    "CompiledMap",
    "PopulateReport",
    "RecordStats",
    "build_cache",
    "process_records",
]
