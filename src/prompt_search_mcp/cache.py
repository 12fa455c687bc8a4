"""Memoization for parsed documents and built indexes."""

from __future__ import annotations

import hashlib
import logging
from collections import OrderedDict
from collections.abc import Callable, Hashable, Iterator, Mapping
from typing import Generic, TypeVar

from .documents import Document

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

DEFAULT_PARSE_CACHE_SIZE = 5000


def content_hash(raw_content: str) -> str:
    """Stable digest of *raw_content*; any edit changes it, even a same-length one."""

    return hashlib.sha1(raw_content.encode("utf-8")).hexdigest()


def parse_cache_key(path: str, raw_content: str) -> str:
    return f"{path}-{content_hash(raw_content)}"


class ParseCache:
    """LRU cache of normalized documents keyed by path and content hash."""

    def __init__(self, max_size: int = DEFAULT_PARSE_CACHE_SIZE) -> None:
        if max_size <= 0:
            raise ValueError("Parse cache size must be positive")
        self._max_size = max_size
        self._entries: OrderedDict[str, Document] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get_or_parse(
        self,
        path: str,
        raw_content: str,
        normalize: Callable[[str, str], Document],
    ) -> Document:
        key = parse_cache_key(path, raw_content)
        cached = self._entries.get(key)
        if cached is not None:
            self._entries.move_to_end(key)
            self.hits += 1
            return cached

        self.misses += 1
        logger.debug("Parse cache miss for %s", path)
        document = normalize(path, raw_content)
        self._entries[key] = document
        if len(self._entries) > self._max_size:
            self._entries.popitem(last=False)
        return document

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> dict[str, int]:
        return {
            "entries": len(self._entries),
            "max_size": self._max_size,
            "hits": self.hits,
            "misses": self.misses,
        }


class IndexCache(Generic[K, V]):
    """Built indexes keyed by their configuration.

    Entries are independent: invalidating or rebuilding one key leaves the
    others untouched.
    """

    def __init__(self) -> None:
        self._entries: dict[K, V] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[K]:
        return iter(self._entries)

    def get(self, key: K) -> V | None:
        return self._entries.get(key)

    def get_or_build(self, key: K, build: Callable[[K], V]) -> V:
        entry = self._entries.get(key)
        if entry is None:
            entry = build(key)
            self._entries[key] = entry
        return entry

    def values(self) -> list[V]:
        return list(self._entries.values())

    def replace(self, entries: Mapping[K, V]) -> None:
        """Swap in a fully built set of entries in one step."""

        self._entries = dict(entries)

    def invalidate(self, key: K | None = None) -> None:
        if key is None:
            self._entries = {}
        else:
            self._entries.pop(key, None)
