"""Cache entries and the subscription handles that observe them.

A :class:`CacheEntry` is owned by the :class:`~querykit.cache.store.CacheStore`
and mutated only by it. UI code never touches entries directly; it holds a
:class:`Subscription`, a live view that reads through to the entry and
fans out an :class:`EntrySnapshot` to its listeners whenever the store
publishes a change.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from querykit.client.result import RequestError, Result
from querykit.tags import Tag

if TYPE_CHECKING:
    from querykit.cache.store import CacheStore

logger = logging.getLogger(__name__)


class QueryStatus(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class EntrySnapshot:
    """Immutable view of a cache entry at one point in time."""

    key: str
    status: QueryStatus = QueryStatus.UNINITIALIZED
    data: Any = None
    error: Optional[RequestError] = None
    last_fetched_at: Optional[float] = None
    stale: bool = False

    @property
    def is_loading(self) -> bool:
        return self.status == QueryStatus.LOADING

    @property
    def is_success(self) -> bool:
        return self.status == QueryStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status == QueryStatus.ERROR

    def to_result(self) -> Result[Any]:
        if self.error is not None and self.status == QueryStatus.ERROR:
            return Result.failure(self.error)
        return Result.success(self.data)


@dataclass(eq=False)
class CacheEntry:
    """Cached state of one query called with one set of arguments.

    ``generation`` increases on every invalidation; a fetch started under
    an older generation discards its response. Tags invalidated while a
    fetch is in flight are collected in ``missed_invalidations`` so that a
    response matching them is discarded even if the entry carried no tags
    when the write landed. ``data`` survives a failed refetch so that views
    can keep showing the last good value next to the error.
    """

    key: str
    endpoint_name: str
    args: Any = None
    status: QueryStatus = QueryStatus.UNINITIALIZED
    data: Any = None
    error: Optional[RequestError] = None
    tags: frozenset[Tag] = frozenset()
    subscriber_count: int = 0
    last_fetched_at: Optional[float] = None
    stale: bool = False
    generation: int = 0
    task: Optional[asyncio.Task[None]] = None
    evict_handle: Optional[asyncio.TimerHandle] = None
    subscriptions: set[Subscription] = field(default_factory=set)
    missed_invalidations: set[Tag] = field(default_factory=set)

    @property
    def in_flight(self) -> bool:
        return self.task is not None and not self.task.done()

    @property
    def needs_fetch(self) -> bool:
        return self.stale or self.status in (QueryStatus.UNINITIALIZED, QueryStatus.ERROR)

    def snapshot(self) -> EntrySnapshot:
        return EntrySnapshot(
            key=self.key,
            status=self.status,
            data=self.data,
            error=self.error,
            last_fetched_at=self.last_fetched_at,
            stale=self.stale,
        )


Listener = Callable[[EntrySnapshot], None]


class Subscription:
    """A live handle on one cache entry, returned by :meth:`CacheStore.subscribe`.

    Reads (:attr:`status`, :attr:`data`, ...) always reflect the entry's
    current state until the handle is released; afterwards they return the
    state at release time and listeners are no longer called.

    Can be used as a context manager, releasing on exit::

        with store.subscribe("get_orders") as orders:
            snapshot = await orders.wait()
    """

    def __init__(self, store: CacheStore, entry: CacheEntry) -> None:
        self._store = store
        self._entry = entry
        self._listeners: list[Listener] = []
        self._final: Optional[EntrySnapshot] = None

    def __repr__(self) -> str:
        state = "released" if self.released else self.status.value
        return f"<Subscription {self.key} {state}>"

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *args: object) -> None:
        self.release()

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    @property
    def key(self) -> str:
        return self._entry.key

    @property
    def endpoint_name(self) -> str:
        return self._entry.endpoint_name

    @property
    def args(self) -> Any:
        return self._entry.args

    @property
    def released(self) -> bool:
        return self._final is not None

    def snapshot(self) -> EntrySnapshot:
        if self._final is not None:
            return self._final
        return self._entry.snapshot()

    @property
    def status(self) -> QueryStatus:
        return self.snapshot().status

    @property
    def data(self) -> Any:
        return self.snapshot().data

    @property
    def error(self) -> Optional[RequestError]:
        return self.snapshot().error

    @property
    def is_loading(self) -> bool:
        return self.snapshot().is_loading

    # ------------------------------------------------------------------ #
    # Actions
    # ------------------------------------------------------------------ #

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with a snapshot on every published change.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def wait(self) -> EntrySnapshot:
        """Wait until the entry has no fetch in flight and return its snapshot.

        Cancelling the wait does not cancel the fetch.
        """
        while not self.released and self._entry.in_flight:
            task = self._entry.task
            assert task is not None
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                # the fetch was cancelled by a cache reset, not this waiter
                if not task.cancelled():
                    raise
        return self.snapshot()

    def refetch(self) -> None:
        """Force a refetch of this entry, bypassing the cache."""
        if self.released:
            return
        self._store.refetch_entry(self._entry)

    def release(self) -> None:
        """Stop observing the entry. Safe to call more than once."""
        self._store.unsubscribe(self)

    # ------------------------------------------------------------------ #
    # Store-side hooks
    # ------------------------------------------------------------------ #

    def _notify(self, snapshot: EntrySnapshot) -> None:
        if self.released:
            return
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Listener for %s failed", self.key)

    def _release(self, final: EntrySnapshot) -> None:
        self._final = final
        self._listeners.clear()
