"""Tag-based invalidation of cache entries."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from querykit.tags import TagLike, coerce_tags

if TYPE_CHECKING:
    from querykit.cache.store import CacheStore

logger = logging.getLogger(__name__)


class InvalidationEngine:
    """Marks the entries providing a set of tags as out of date.

    An entry with subscribers is refetched at once; its generation is bumped
    first so that a fetch already in flight discards its response. An entry
    without subscribers is only marked stale and refetched by the next
    subscriber. A list-level tag such as ``Tag("Orders")`` matches every
    ``Orders`` entry; ``Tag("Orders", 5)`` matches only entries that provide
    exactly that tag.

    Entries whose fetch is in flight but whose tags are not known yet (the
    first fetch of a response-tagged query) are told about the invalidation;
    the store checks their response against it before publishing.
    """

    def __init__(self, store: CacheStore) -> None:
        self._store = store

    def invalidate(self, tags: Iterable[TagLike]) -> set[str]:
        """Invalidate every entry providing one of *tags*.

        Returns:
            The keys of the invalidated entries.
        """
        tags = coerce_tags(tags)
        keys = self._store.tag_index.lookup(tags)
        for entry in self._store.in_flight():
            if entry.key not in keys:
                entry.missed_invalidations.update(tags)
        for key in sorted(keys):
            entry = self._store.entry(key)
            if entry is None:
                continue
            if entry.subscriber_count > 0:
                self._store.refetch_entry(entry)
            else:
                entry.generation += 1
                entry.stale = True
        if keys:
            logger.debug(
                "Invalidated %s: %s",
                ", ".join(sorted(str(tag) for tag in tags)),
                ", ".join(sorted(keys)),
            )
        return keys
