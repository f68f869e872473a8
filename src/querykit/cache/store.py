"""Subscription-counted query cache.

:class:`CacheStore` keeps one :class:`~querykit.cache.entry.CacheEntry` per
cache key and serves every subscriber of the same key from it. Identical
subscriptions share one in-flight fetch. When the last subscriber leaves,
the entry is kept for ``keep_unused_for`` seconds and then evicted unless
someone subscribes again.

Mutations run through the same :class:`~querykit.auth.interceptor.AuthInterceptor`
and, on success, hand their invalidated tags to the
:class:`~querykit.cache.invalidation.InvalidationEngine`. Every entry
carries a generation counter: an invalidation bumps it, and a fetch that
finishes under an older generation drops its response and fetches again,
so a read that raced a write can never be published.

All methods must be called from the event loop thread.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections.abc import Callable
from typing import Any, Optional

from querykit.auth.interceptor import AuthInterceptor
from querykit.cache.entry import CacheEntry, EntrySnapshot, QueryStatus, Subscription
from querykit.cache.invalidation import InvalidationEngine
from querykit.cache.keys import make_cache_key
from querykit.client.result import RequestError, Result
from querykit.endpoints.registry import EndpointDefinition, EndpointKind, EndpointRegistry
from querykit.models import CacheConfig
from querykit.tags import Tag, TagIndex, TagLike

logger = logging.getLogger(__name__)


class CacheStore:
    """Query cache keyed by endpoint name and arguments.

    Args:
        registry: Endpoint definitions, resolved by name.
        interceptor: Sends requests with session handling.
        config: Cache settings; defaults to :class:`~querykit.models.CacheConfig`.
        clock: Returns the current time for ``last_fetched_at``.
    """

    def __init__(
        self,
        registry: EndpointRegistry,
        interceptor: AuthInterceptor,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._interceptor = interceptor
        self._config = config or CacheConfig()
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._tag_index = TagIndex()
        self._tasks: set[asyncio.Task[None]] = set()
        self.invalidation = InvalidationEngine(self)

    @property
    def registry(self) -> EndpointRegistry:
        return self._registry

    @property
    def tag_index(self) -> TagIndex:
        return self._tag_index

    def entry(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def in_flight(self) -> list[CacheEntry]:
        return [entry for entry in self._entries.values() if entry.in_flight]

    def keys(self) -> list[str]:
        return sorted(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def subscribe(self, name: str, args: Any = None) -> Subscription:
        """Subscribe to query *name* called with *args*.

        Creates the entry and starts a fetch when the key is unknown, stale
        or errored; otherwise the cached state is served as-is and no request
        is sent. A pending eviction of the entry is cancelled.

        Raises:
            EndpointNotFoundError: If *name* is not registered.
            InvalidUsageError: If *name* is a mutation.
        """
        self._registry.resolve(name, args, kind=EndpointKind.QUERY)
        key = make_cache_key(name, args)

        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=key, endpoint_name=name, args=copy.deepcopy(args))
            self._entries[key] = entry
            logger.debug("Cache miss for %s", key)

        if entry.evict_handle is not None:
            entry.evict_handle.cancel()
            entry.evict_handle = None

        entry.subscriber_count += 1
        subscription = Subscription(self, entry)
        entry.subscriptions.add(subscription)

        if entry.needs_fetch and not entry.in_flight:
            self._start_fetch(entry)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Release *subscription*. Releasing twice is a no-op."""
        if subscription.released:
            return
        entry = subscription._entry
        subscription._release(entry.snapshot())
        if subscription not in entry.subscriptions:
            return
        entry.subscriptions.discard(subscription)
        entry.subscriber_count -= 1
        if entry.subscriber_count == 0:
            self._schedule_eviction(entry)

    async def query(self, name: str, args: Any = None) -> Result[Any]:
        """Read query *name* once, from the cache when it holds fresh data.

        A query still in flight when the cache is reset fails with the reset's
        error, or a generic one.
        """
        with self.subscribe(name, args) as subscription:
            snapshot = await subscription.wait()
        if not (snapshot.is_success or snapshot.is_error):
            return Result.failure(RequestError(detail=f"Query {name} was cancelled by a cache reset"))
        return snapshot.to_result()

    def refetch_entry(self, entry: CacheEntry) -> None:
        """Fetch *entry* again, discarding any fetch already in flight."""
        entry.generation += 1
        self._start_fetch(entry)

    # ------------------------------------------------------------------ #
    # Mutations and invalidation
    # ------------------------------------------------------------------ #

    async def mutate(self, name: str, args: Any = None) -> Result[Any]:
        """Run mutation *name* and invalidate its tags on success.

        Raises:
            EndpointNotFoundError: If *name* is not registered.
            InvalidUsageError: If *name* is a query.
        """
        definition = self._registry.resolve(name, args, kind=EndpointKind.MUTATION)
        result = await self._run(definition, args)
        if result.ok:
            tags = definition.invalidated_tags(args)
            if tags:
                self.invalidation.invalidate(tags)
        else:
            logger.info("Mutation %s failed: %s", name, result.error)
        return result

    def invalidate(self, tags: list[TagLike]) -> set[str]:
        """Invalidate *tags* directly. See :class:`InvalidationEngine`."""
        return self.invalidation.invalidate(tags)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def settle(self) -> None:
        """Wait until no fetch is in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def reset(self, error: Optional[RequestError] = None) -> None:
        """Drop every entry, cancelling fetches and pending evictions.

        Live subscriptions are released. Their handles keep reporting an
        uninitialised entry, or *error* when one is given.
        """
        for entry in self._entries.values():
            if error is None:
                final = EntrySnapshot(key=entry.key)
            else:
                final = EntrySnapshot(key=entry.key, status=QueryStatus.ERROR, error=error)
            if entry.evict_handle is not None:
                entry.evict_handle.cancel()
            if entry.task is not None:
                entry.task.cancel()
            for subscription in list(entry.subscriptions):
                subscription._release(final)
            entry.subscriptions.clear()
            entry.subscriber_count = 0
        self._entries.clear()
        self._tag_index.clear()
        logger.debug("Cache reset")

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        self.reset()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Fetching
    # ------------------------------------------------------------------ #

    def _start_fetch(self, entry: CacheEntry) -> None:
        if entry.status != QueryStatus.LOADING:
            entry.status = QueryStatus.LOADING
            self._publish(entry)
        if entry.in_flight:
            return
        task = asyncio.get_running_loop().create_task(self._fetch(entry))
        entry.task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _fetch(self, entry: CacheEntry) -> None:
        definition = self._registry.resolve(entry.endpoint_name)
        while True:
            generation = entry.generation
            entry.missed_invalidations.clear()
            result = await self._run(definition, entry.args)
            result, tags = self._provided_tags(entry, definition, result)
            superseded = generation != entry.generation or self._invalidated_in_flight(entry, tags)
            if not superseded:
                break
            logger.debug("Discarding superseded response for %s", entry.key)
        entry.task = None
        if self._entries.get(entry.key) is not entry:
            return
        self._settle_entry(entry, result, tags)

    def _settle_entry(self, entry: CacheEntry, result: Result[Any], tags: frozenset[Tag]) -> None:
        entry.last_fetched_at = self._clock()
        entry.stale = False
        if result.ok:
            entry.status = QueryStatus.SUCCESS
            entry.data = result.data
            entry.error = None
        else:
            entry.status = QueryStatus.ERROR
            entry.error = result.error
            logger.info("Query %s failed: %s", entry.key, result.error)
        self._retag(entry, tags)
        self._publish(entry)

        if entry.subscriber_count == 0 and entry.evict_handle is None:
            self._schedule_eviction(entry)

    @staticmethod
    def _provided_tags(
        entry: CacheEntry, definition: EndpointDefinition[Any, Any], result: Result[Any]
    ) -> tuple[Result[Any], frozenset[Tag]]:
        """Tags for *result*; a failing tag provider turns it into an error.

        A failed result keeps the tags the entry already has.
        """
        if result.ok:
            try:
                return result, definition.provided_tags(result.data, entry.args)
            except Exception as exc:
                logger.exception("Could not derive tags for %s", entry.key)
                result = Result.failure(
                    RequestError(detail=f"Unexpected response for {definition.name}: {exc}", body=result.data)
                )
        return result, entry.tags or definition.provided_tags(None, entry.args)

    @staticmethod
    def _invalidated_in_flight(entry: CacheEntry, provided: frozenset[Tag]) -> bool:
        """Whether a tag in *provided* was invalidated while the fetch was in flight."""
        return any(
            invalidated.matches(tag)
            for invalidated in entry.missed_invalidations
            for tag in provided
        )

    async def _run(self, definition: EndpointDefinition[Any, Any], args: Any) -> Result[Any]:
        """Build, send and transform one call; never raises."""
        try:
            spec = definition.build_request(args)
        except Exception as exc:
            logger.exception("Could not build request for %s", definition.name)
            return Result.failure(RequestError(detail=f"Invalid arguments for {definition.name}: {exc}"))

        result = await self._interceptor.run(spec)
        if not result.ok:
            return result

        try:
            return Result.success(definition.transform(result.data))
        except Exception as exc:
            logger.exception("Could not transform response of %s", definition.name)
            return Result.failure(RequestError(detail=f"Unexpected response for {definition.name}: {exc}", body=result.data))

    # ------------------------------------------------------------------ #
    # Bookkeeping
    # ------------------------------------------------------------------ #

    def _retag(self, entry: CacheEntry, tags: frozenset[Tag]) -> None:
        self._tag_index.remove(entry.key, entry.tags)
        self._tag_index.add(entry.key, tags)
        entry.tags = tags

    def _publish(self, entry: CacheEntry) -> None:
        snapshot = entry.snapshot()
        for subscription in list(entry.subscriptions):
            subscription._notify(snapshot)

    def _schedule_eviction(self, entry: CacheEntry) -> None:
        delay = self._config.keep_unused_for
        if delay <= 0:
            self._evict(entry.key)
            return
        loop = asyncio.get_running_loop()
        entry.evict_handle = loop.call_later(delay, self._evict, entry.key)

    def _evict(self, key: str) -> None:
        entry = self._entries.get(key)
        if entry is None or entry.subscriber_count > 0:
            return
        entry.evict_handle = None
        if entry.in_flight:
            # rescheduled once the fetch settles
            return
        del self._entries[key]
        self._tag_index.remove(key, entry.tags)
        logger.debug("Evicted %s", key)
