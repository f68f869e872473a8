"""Cache tags and the tag index used for invalidation.

A :class:`Tag` labels cached data (what a query *provides*) and writes
(what a mutation *invalidates*). A tag without an ``id`` is a list-level
tag: invalidating ``Tag("Orders")`` hits every entry tagged ``Orders``
whatever its id, while invalidating ``Tag("Orders", 5)`` hits only entries
carrying exactly that tag.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional, Union

TagId = Union[str, int]


@dataclass(frozen=True)
class Tag:
    """A ``type`` plus optional ``id`` attached to cache entries."""

    type: str
    id: Optional[TagId] = None

    @property
    def is_list_tag(self) -> bool:
        return self.id is None

    def matches(self, provided: Tag) -> bool:
        """Whether invalidating this tag invalidates an entry that provides *provided*."""
        if self.type != provided.type:
            return False
        return self.id is None or self.id == provided.id

    def __str__(self) -> str:
        return self.type if self.id is None else f"{self.type}:{self.id}"


TagLike = Union[Tag, str]


def coerce_tags(tags: Iterable[TagLike]) -> frozenset[Tag]:
    """Normalise a tag list; bare strings become list-level tags."""
    return frozenset(tag if isinstance(tag, Tag) else Tag(tag) for tag in tags)


class TagIndex:
    """Maps tags to the cache keys that provide them.

    Kept two-level (``type -> id -> keys``) so that a list-level
    invalidation is a single dictionary lookup rather than a scan.
    """

    def __init__(self) -> None:
        self._index: dict[str, dict[Optional[TagId], set[str]]] = {}

    def add(self, key: str, tags: Iterable[Tag]) -> None:
        for tag in tags:
            self._index.setdefault(tag.type, {}).setdefault(tag.id, set()).add(key)

    def remove(self, key: str, tags: Iterable[Tag]) -> None:
        for tag in tags:
            by_id = self._index.get(tag.type)
            if by_id is None:
                continue
            keys = by_id.get(tag.id)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del by_id[tag.id]
            if not by_id:
                del self._index[tag.type]

    def lookup(self, tags: Iterable[TagLike]) -> set[str]:
        """Return the keys of every entry invalidated by *tags*."""
        matched: set[str] = set()
        for tag in coerce_tags(tags):
            by_id = self._index.get(tag.type)
            if not by_id:
                continue
            if tag.id is None:
                for keys in by_id.values():
                    matched |= keys
            else:
                matched |= by_id.get(tag.id, set())
        return matched

    def clear(self) -> None:
        self._index.clear()

    def __len__(self) -> int:
        return sum(len(keys) for by_id in self._index.values() for keys in by_id.values())
