"""Weighted LRU cache whose reported count is its total weight in use."""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass

from .db_cache import DEFAULT_MAX_CAPACITY, CachedEntry, CachedKey, DbCache


@dataclass(frozen=True)
class FoyerCacheOptions:
    """Capacity of the cache in bytes."""

    max_capacity: int = DEFAULT_MAX_CAPACITY


class FoyerCache(DbCache):
    """Cache bounded by the total size of its entries, evicting the least recently used."""

    def __init__(self, options: FoyerCacheOptions | None = None) -> None:
        self._options = options or FoyerCacheOptions()
        self._entries: OrderedDict[CachedKey, tuple[CachedEntry, int]] = OrderedDict()
        self._usage = 0
        self._lock = threading.Lock()

    def _discard(self, key: CachedKey) -> None:
        held = self._entries.pop(key, None)
        if held is not None:
            self._usage -= held[1]

    async def get(self, key: CachedKey) -> CachedEntry | None:
        with self._lock:
            held = self._entries.get(key)
            if held is None:
                return None
            self._entries.move_to_end(key)
            return held[0]

    async def insert(self, key: CachedKey, value: CachedEntry) -> None:
        weight = value.size()
        with self._lock:
            self._discard(key)
            if weight > self._options.max_capacity:
                return
            self._entries[key] = (value, weight)
            self._usage += weight
            while self._usage > self._options.max_capacity:
                self._discard(next(iter(self._entries)))

    async def remove(self, key: CachedKey) -> None:
        with self._lock:
            self._discard(key)

    def entry_count(self) -> int:
        """Return the weight currently in use, in bytes."""
        with self._lock:
            return self._usage