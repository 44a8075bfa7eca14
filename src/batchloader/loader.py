"""Batching, caching key loader for asyncio resolvers.

Every ``load(key)`` issued while the event loop works through its current
queue of ready callbacks lands in one batch. The batch is dispatched from a
callback scheduled with ``loop.call_soon``, so sibling resolver tasks that are
already queued get to enqueue their keys first. The batch function is called
once with the distinct keys in first-seen order and must return one result
per key, position for position.

A loader is meant to live for one unit of work (typically one GraphQL
request). Its cache is private to the instance; create a new loader per
request instead of sharing one across requests.

Usage::

    async def load_authors(ids: list[str]) -> list[Author | Exception]:
        rows = await db.fetch_authors(ids)
        by_id = {a.id: a for a in rows}
        return [by_id.get(i) or EntityNotFoundError("Author", i) for i in ids]

    authors = DataLoader(load_authors, name="authors")
    a, b = await asyncio.gather(authors.load("1"), authors.load("2"))
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
import time
from collections.abc import Callable, Hashable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from .cache import CacheMap, InMemoryCacheMap
from .dispatch_log import BatchRecord
from .errors import BatchFunctionContractError, InvalidKeyError, LoaderError

LOGGER = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")

# (keys) -> Sequence[V | Exception], or an awaitable of one
BatchLoadFn = Callable[[list[Any]], Any]
ScheduleFn = Callable[[Callable[[], None]], Any]


@dataclass
class LoaderStats:
    loads: int = 0
    cache_hits: int = 0
    batches: int = 0
    keys_dispatched: int = 0
    failed_batches: int = 0
    failed_keys: int = 0


@dataclass
class _Batch:
    id: int
    keys: list[Any] = field(default_factory=list)
    # futures[i] settles keys[i]; callers only ever see shields of it
    futures: list[asyncio.Future] = field(default_factory=list)
    index: dict[Hashable, int] = field(default_factory=dict)
    dispatched: bool = False

    def future_for(
        self, key: Any, cache_key: Hashable, loop: asyncio.AbstractEventLoop
    ) -> asyncio.Future:
        pos = self.index.get(cache_key)
        if pos is not None:
            return self.futures[pos]
        future = loop.create_future()
        self.index[cache_key] = len(self.keys)
        self.keys.append(key)
        self.futures.append(future)
        return future


def _identity(key: Any) -> Any:
    return key


def _resolve(future: asyncio.Future, value: Any) -> None:
    if not future.done():
        future.set_result(value)


def _reject(future: asyncio.Future, error: BaseException) -> None:
    if not future.done():
        future.set_exception(error)
        # cached failures may never be awaited; mark them observed
        future.exception()


class DataLoader(Generic[K, V]):
    """Coalesce concurrent ``load`` calls into one batch function call.

    Args:
        batch_load_fn: Receives ``list[K]`` and returns a sequence of values
            or ``Exception`` instances of the same length, or an awaitable of
            one. An exception value fails only its own key; raising fails the
            whole batch.
        batch: When False every key is dispatched on its own.
        max_batch_size: Cap on distinct keys per batch; overflow starts a new
            batch that is scheduled independently.
        cache: Memoize futures per key for the life of the loader.
        cache_key_fn: Maps a key to the hashable identity used for caching
            and de-duplication.
        cache_map: Store with ``get/set/delete/clear``; defaults to a dict.
        schedule_fn: Replaces the default ``loop.call_soon`` trigger. Called
            with a zero-argument callback that dispatches the batch.
        name: Label used in logs, errors and dispatch records.
        on_dispatch: Called with a :class:`BatchRecord` after each batch.
    """

    def __init__(
        self,
        batch_load_fn: BatchLoadFn,
        *,
        batch: bool = True,
        max_batch_size: int | None = None,
        cache: bool = True,
        cache_key_fn: Callable[[K], Hashable] | None = None,
        cache_map: CacheMap | None = None,
        schedule_fn: ScheduleFn | None = None,
        name: str | None = None,
        on_dispatch: Callable[[BatchRecord], None] | None = None,
    ) -> None:
        if not callable(batch_load_fn):
            raise TypeError(
                "DataLoader requires a batch_load_fn that accepts a list of keys "
                f"and returns a list of values, got {batch_load_fn!r}"
            )
        if max_batch_size is not None and max_batch_size < 1:
            raise ValueError(f"max_batch_size must be >= 1, got {max_batch_size}")

        self.batch_load_fn = batch_load_fn
        self.batch = batch
        self.max_batch_size = max_batch_size if batch else 1
        self.cache = cache
        self.cache_key_fn = cache_key_fn or _identity
        self.cache_map: CacheMap = cache_map if cache_map is not None else InMemoryCacheMap()
        self.schedule_fn = schedule_fn
        self.name = name or getattr(batch_load_fn, "__qualname__", repr(batch_load_fn))
        self.on_dispatch = on_dispatch
        self.stats = LoaderStats()

        self._loop: asyncio.AbstractEventLoop | None = None
        # undispatched batches, oldest first
        self._pending: list[_Batch] = []
        self._batch_ids = itertools.count(1)
        self._tasks: set[asyncio.Task] = set()

    def __repr__(self) -> str:
        return f"<DataLoader {self.name!r} batches={self.stats.batches}>"

    # ── Public API ───────────────────────────────────────────────────────────

    def load(self, key: K) -> asyncio.Future[V]:
        """Return a future for the value of *key*.

        Must be called with an event loop running. Each call gets its own
        future over the shared cache entry, so cancelling it (a timeout, a
        cancelled ``gather``) never cancels the entry for other callers.
        """
        if key is None:
            raise InvalidKeyError(f"{self.name}: load() requires a key, got None")
        loop = self._get_loop()
        self.stats.loads += 1
        cache_key = self.cache_key_fn(key)

        if self.cache:
            cached = self.cache_map.get(cache_key)
            if cached is not None:
                self.stats.cache_hits += 1
                return asyncio.shield(cached)

        future = self._current_batch(cache_key).future_for(key, cache_key, loop)
        if self.cache:
            self.cache_map.set(cache_key, future)
        return asyncio.shield(future)

    def load_many(self, keys: Iterable[K]) -> asyncio.Future[list[V | Exception]]:
        """Load every key; failed keys come back in place as exception instances."""
        if isinstance(keys, (str, bytes)) or not isinstance(keys, Iterable):
            raise TypeError(f"{self.name}: load_many() expects an iterable of keys, got {keys!r}")
        futures = [self.load(key) for key in keys]
        return asyncio.gather(*futures, return_exceptions=True)

    def clear(self, key: K) -> DataLoader[K, V]:
        """Forget *key*. An in-flight batch still resolves its existing futures."""
        self.cache_map.delete(self.cache_key_fn(key))
        return self

    def clear_all(self) -> DataLoader[K, V]:
        self.cache_map.clear()
        return self

    def prime(self, key: K, value: V | Exception) -> DataLoader[K, V]:
        """Seed the cache without dispatching. Existing entries are kept.

        Priming an ``Exception`` instance caches a failed entry.
        """
        if not self.cache:
            return self
        cache_key = self.cache_key_fn(key)
        if self.cache_map.get(cache_key) is not None:
            return self
        future: asyncio.Future = self._get_loop().create_future()
        if isinstance(value, Exception):
            _reject(future, value)
        else:
            _resolve(future, value)
        self.cache_map.set(cache_key, future)
        return self

    def prime_many(self, values: Mapping[K, V]) -> DataLoader[K, V]:
        for key, value in values.items():
            self.prime(key, value)
        return self

    def dispatch(self) -> None:
        """Dispatch every pending batch now instead of at the scheduled point.

        With ``max_batch_size`` several batches can be waiting; they are
        dispatched oldest first.
        """
        for batch in list(self._pending):
            self._dispatch_batch(batch)

    # ── Batching ─────────────────────────────────────────────────────────────

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        loop = asyncio.get_running_loop()
        if self._loop is None:
            self._loop = loop
        elif self._loop is not loop:
            raise LoaderError(
                f"{self.name} is bound to a different event loop; "
                "create one loader per request instead of sharing it"
            )
        return loop

    def _current_batch(self, cache_key: Hashable) -> _Batch:
        if self._pending:
            batch = self._pending[-1]
            if (
                cache_key in batch.index
                or self.max_batch_size is None
                or len(batch.keys) < self.max_batch_size
            ):
                return batch
        batch = _Batch(id=next(self._batch_ids))
        self._pending.append(batch)
        self._schedule(batch)
        return batch

    def _schedule(self, batch: _Batch) -> None:
        if self.schedule_fn is not None:
            self.schedule_fn(lambda: self._dispatch_batch(batch))
            return
        assert self._loop is not None
        self._loop.call_soon(self._dispatch_batch, batch)

    def _dispatch_batch(self, batch: _Batch) -> None:
        if batch.dispatched:
            return
        batch.dispatched = True
        self._pending.remove(batch)
        if not batch.keys:
            return
        assert self._loop is not None
        task = self._loop.create_task(
            self._run_batch(batch),
            name=f"DataLoader({self.name}).batch-{batch.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_batch(self, batch: _Batch) -> None:
        keys = batch.keys
        self.stats.batches += 1
        self.stats.keys_dispatched += len(keys)
        LOGGER.debug("%s: dispatching batch %d (%d keys)", self.name, batch.id, len(keys))
        started_at = datetime.now(timezone.utc).isoformat()
        t0 = time.perf_counter()

        try:
            results = self.batch_load_fn(list(keys))
            if inspect.isawaitable(results):
                results = await results
            results = self._check_results(keys, results)
        except asyncio.CancelledError:
            self._evict(batch)
            for f in batch.futures:
                f.cancel()
            raise
        except Exception as e:
            self.stats.failed_batches += 1
            self.stats.failed_keys += len(keys)
            LOGGER.debug("%s: batch %d failed: %s", self.name, batch.id, e)
            for f in batch.futures:
                _reject(f, e)
            self._record(batch, started_at, t0, "error", len(keys), f"{type(e).__name__}: {e}")
            return

        failed = 0
        for future, result in zip(batch.futures, results):
            if isinstance(result, Exception):
                failed += 1
                _reject(future, result)
            else:
                _resolve(future, result)
        if failed:
            self.stats.failed_keys += failed
            LOGGER.debug("%s: batch %d resolved with %d failed keys", self.name, batch.id, failed)
        self._record(batch, started_at, t0, "partial" if failed else "ok", failed, None)

    def _evict(self, batch: _Batch) -> None:
        """Drop cache entries that still point at *batch*."""
        if not self.cache:
            return
        for cache_key, pos in batch.index.items():
            if self.cache_map.get(cache_key) is batch.futures[pos]:
                self.cache_map.delete(cache_key)

    def _check_results(self, keys: list[Any], results: Any) -> list[Any]:
        if not isinstance(results, Sequence) or isinstance(results, (str, bytes)):
            raise BatchFunctionContractError(
                self.name,
                len(keys),
                None,
                detail=f"must return a list of values, got {type(results).__name__}",
            )
        if len(results) != len(keys):
            raise BatchFunctionContractError(self.name, len(keys), len(results))
        return list(results)

    def _record(
        self,
        batch: _Batch,
        started_at: str,
        t0: float,
        status: str,
        failed: int,
        error: str | None,
    ) -> None:
        if self.on_dispatch is None:
            return
        self.on_dispatch(
            BatchRecord(
                loader=self.name,
                batch_id=batch.id,
                size=len(batch.keys),
                started_at=started_at,
                duration_s=round(time.perf_counter() - t0, 6),
                status=status,
                failed_keys=failed,
                error=error,
            )
        )
