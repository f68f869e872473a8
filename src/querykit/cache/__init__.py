"""Query cache: entries, subscriptions, keys and tag invalidation."""

from querykit.cache.entry import CacheEntry, EntrySnapshot, QueryStatus, Subscription
from querykit.cache.invalidation import InvalidationEngine
from querykit.cache.keys import make_cache_key, serialize_args
from querykit.cache.store import CacheStore

__all__ = [
    "CacheEntry",
    "CacheStore",
    "EntrySnapshot",
    "InvalidationEngine",
    "QueryStatus",
    "Subscription",
    "make_cache_key",
    "serialize_args",
]
