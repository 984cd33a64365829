"""
Core engine containing the batch-and-cache loading mechanism.
The mechanism acts as a key queue that collects ``load`` calls issued in the
same event loop iteration, deduplicates them by cache key and resolves them
with a single call to the batch resolution function.
"""

from __future__ import annotations

import asyncio
import time
import typing as t
import uuid
from dataclasses import dataclass

import structlog

from productloader.exceptions import LoaderClosed, describe_error
from productloader.utils.logging import logging_context

log = structlog.get_logger(__name__)

K = t.TypeVar("K")
V = t.TypeVar("V")

ResolveFn = t.Callable[[list[K]], t.Awaitable[t.Sequence[V | Exception]]]


@dataclass
class _PendingKey(t.Generic[K, V]):
    """A unique key waiting for its batch to resolve."""

    cache_key: str
    key: K
    future: asyncio.Future[V | None]


@dataclass
class _CacheEntry(t.Generic[V]):
    """A resolved outcome; ``None`` marks a cached failure."""

    value: V | None
    stored_at: float


class BatchLoader(t.Generic[K, V]):
    """
    Coalesce concurrent key loads into batched resolver calls.

    Keys are collected until the dispatch task scheduled by the first queued
    key runs, i.e. on a later event loop iteration. Every ``load`` issued
    before that point joins the batch; later loads start a new one. Batches
    never overlap: each dispatch waits for the previous resolver call.

    Notes
    -----
    The resolver must return one outcome per key, in key order. An outcome
    that is an exception marks that key as failed; failed keys resolve to
    ``None`` and never affect the other keys of the batch.
    """

    def __init__(
        self,
        resolve_fn: ResolveFn[K, V],
        cache_key_fn: t.Callable[[K], str] = str,
        *,
        max_batch_size: int | None = None,
        cache: bool = True,
        cache_failures: bool = True,
        cache_ttl_seconds: float | None = None,
        clock: t.Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the loader.

        Parameters
        ----------
        resolve_fn : ResolveFn[K, V]
            Batch resolution function, called once per batch with the ordered
            unique keys.
        cache_key_fn : typing.Callable[[K], str]
            Canonical string identity of a key, used for deduplication and
            cache lookups.
        max_batch_size : int | None
            Split queues larger than this into consecutive batches.
        cache : bool
            If ``False``, only in-flight keys are deduplicated.
        cache_failures : bool
            Cache failed keys as ``None`` instead of retrying them on the next
            load.
        cache_ttl_seconds : float | None
            Expire cache entries after this many seconds. ``None`` keeps them
            for the loader's lifetime.
        clock : typing.Callable[[], float]
            Monotonic time source used for expiry.
        """
        if max_batch_size is not None and max_batch_size < 1:
            raise ValueError("max_batch_size must be a positive integer")
        self._resolve_fn = resolve_fn
        self._cache_key_fn = cache_key_fn
        self._max_batch_size = max_batch_size
        self._cache_enabled = cache
        self._cache_failures = cache_failures
        self._cache_ttl_seconds = cache_ttl_seconds
        self._clock = clock

        self._cache: dict[str, _CacheEntry[V]] = {}

        # Key collection
        self._pending: dict[str, _PendingKey[K, V]] = {}
        self._queue: list[str] = []
        self._dispatch_lock = asyncio.Lock()
        self._scheduled_task: asyncio.Task[None] | None = None
        self._running_tasks: set[asyncio.Task[None]] = set()
        self._closed = False

        log.debug(
            event="Initialized BatchLoader",
            max_batch_size=max_batch_size,
            cache=cache,
            cache_failures=cache_failures,
            cache_ttl_seconds=cache_ttl_seconds,
        )

    async def load(self, key: K) -> V | None:
        """
        Load one key through the batch and the cache.

        Parameters
        ----------
        key : K
            Key to load.

        Returns
        -------
        V | None
            Resolved value, or ``None`` when resolution failed.

        Raises
        ------
        LoaderClosed
            If the loader has been closed.
        """
        if self._closed:
            raise LoaderClosed("Cannot load from a closed BatchLoader")

        cache_key = self._cache_key_fn(key)
        entry = self._get_cached(cache_key=cache_key)
        if entry is not None:
            log.debug(event="Cache hit", cache_key=cache_key)
            return entry.value

        pending = self._pending.get(cache_key)
        if pending is None:
            loop = asyncio.get_running_loop()
            pending = _PendingKey(cache_key=cache_key, key=key, future=loop.create_future())
            self._pending[cache_key] = pending
            self._queue.append(cache_key)
            log.debug(
                event="Queued key for batch",
                cache_key=cache_key,
                queued_count=len(self._queue),
            )
            self._schedule_dispatch()
        else:
            log.debug(event="Joined in-flight key", cache_key=cache_key)

        # Shielded so that one cancelled caller does not cancel the shared future
        return await asyncio.shield(pending.future)

    async def load_many(self, keys: t.Iterable[K]) -> list[V | None]:
        """
        Load several keys in the same batch.

        Parameters
        ----------
        keys : typing.Iterable[K]
            Keys to load.

        Returns
        -------
        list[V | None]
            Outcomes in key order.
        """
        return list(await asyncio.gather(*(self.load(key) for key in keys)))

    def prime(self, key: K, value: V, *, force: bool = False) -> None:
        """
        Seed the cache with a known value.

        Parameters
        ----------
        key : K
            Key to seed.
        value : V
            Value to cache.
        force : bool
            Overwrite an existing entry.
        """
        if not self._cache_enabled:
            return
        cache_key = self._cache_key_fn(key)
        if not force and self._get_cached(cache_key=cache_key) is not None:
            return
        self._store(cache_key=cache_key, value=value)

    def clear(self, key: K) -> None:
        self._cache.pop(self._cache_key_fn(key), None)

    def clear_all(self) -> None:
        self._cache.clear()

    async def flush(self) -> None:
        """
        Wait until every queued key has been resolved.
        """
        while self._running_tasks:
            await asyncio.gather(*list(self._running_tasks))

    async def close(self) -> None:
        """
        Resolve queued keys and stop accepting loads.
        """
        self._closed = True
        await self.flush()
        log.debug(event="BatchLoader closed", cached_count=len(self._cache))

    def _get_cached(self, *, cache_key: str) -> _CacheEntry[V] | None:
        entry = self._cache.get(cache_key)
        if entry is None:
            return None
        if (
            self._cache_ttl_seconds is not None
            and self._clock() - entry.stored_at >= self._cache_ttl_seconds
        ):
            log.debug(event="Cache entry expired", cache_key=cache_key)
            del self._cache[cache_key]
            return None
        return entry

    def _store(self, *, cache_key: str, value: V | None) -> None:
        if self._cache_enabled:
            self._cache[cache_key] = _CacheEntry(value=value, stored_at=self._clock())

    def _schedule_dispatch(self) -> None:
        """
        Create the dispatch task for the current batch window, once.
        """
        if self._scheduled_task is not None:
            return
        task = asyncio.create_task(self._dispatch(), name=f"batch_loader_dispatch_{uuid.uuid4()}")
        self._scheduled_task = task
        self._running_tasks.add(task)
        task.add_done_callback(self._running_tasks.discard)

    async def _dispatch(self) -> None:
        async with self._dispatch_lock:
            if self._scheduled_task is asyncio.current_task():
                self._scheduled_task = None
            batch = self._drain_queue()
            if self._queue:
                self._schedule_dispatch()
            if batch:
                await self._resolve_batch(batch=batch)

    def _drain_queue(self) -> list[_PendingKey[K, V]]:
        """
        Take the next batch of keys off the queue.

        Returns
        -------
        list[_PendingKey[K, V]]
            At most ``max_batch_size`` pending keys, in queue order.
        """
        if self._max_batch_size is None or len(self._queue) <= self._max_batch_size:
            cache_keys, self._queue = self._queue, []
        else:
            cache_keys = self._queue[: self._max_batch_size]
            self._queue = self._queue[self._max_batch_size :]
        return [self._pending[cache_key] for cache_key in cache_keys]

    async def _resolve_batch(self, *, batch: list[_PendingKey[K, V]]) -> None:
        """
        Call the resolver once for a batch and settle every pending key.

        Parameters
        ----------
        batch : list[_PendingKey[K, V]]
            Unique pending keys of the batch.
        """
        keys = [pending.key for pending in batch]
        with logging_context(batch_id=str(uuid.uuid4())):
            log.info(event="Dispatching batch", key_count=len(keys))
            try:
                outcomes: list[V | Exception] = list(await self._resolve_fn(keys))
                if len(outcomes) != len(keys):
                    raise ValueError(
                        f"Resolver returned {len(outcomes)} outcomes for {len(keys)} keys"
                    )
            except asyncio.CancelledError:
                for pending in batch:
                    self._pending.pop(pending.cache_key, None)
                    pending.future.cancel()
                raise
            except Exception as error:
                log.error(
                    event="Batch resolution failed",
                    key_count=len(keys),
                    error=describe_error(error=error),
                )
                outcomes = [error] * len(keys)

            for pending, outcome in zip(batch, outcomes, strict=True):
                self._settle(pending=pending, outcome=outcome)
            log.debug(event="Batch settled", key_count=len(keys), cached_count=len(self._cache))

    def _settle(self, *, pending: _PendingKey[K, V], outcome: V | Exception) -> None:
        self._pending.pop(pending.cache_key, None)
        value: V | None
        if isinstance(outcome, BaseException):
            log.warning(
                event="Key resolution failed",
                cache_key=pending.cache_key,
                error=describe_error(error=outcome),
            )
            value = None
            if self._cache_failures:
                self._store(cache_key=pending.cache_key, value=None)
        else:
            value = outcome
            self._store(cache_key=pending.cache_key, value=value)
        if not pending.future.done():
            pending.future.set_result(value)
