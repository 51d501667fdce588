"""Weighted LRU cache with optional time-to-live and time-to-idle expiry."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta

from .db_cache import DEFAULT_MAX_CAPACITY, CachedEntry, CachedKey, DbCache

_U32_MAX = 2**32 - 1


@dataclass(frozen=True)
class MokaCacheOptions:
    """Capacity in bytes and optional expiry settings."""

    max_capacity: int = DEFAULT_MAX_CAPACITY
    time_to_live: timedelta | None = None
    time_to_idle: timedelta | None = None


@dataclass
class _Slot:
    entry: CachedEntry
    weight: int
    inserted_at: float
    accessed_at: float


class MokaCache(DbCache):
    """Cache bounded by the total size of its entries, evicting the least recently used."""

    def __init__(
        self,
        options: MokaCacheOptions | None = None,
        *,
        time_source: Callable[[], float] = time.monotonic,
    ) -> None:
        self._options = options or MokaCacheOptions()
        self._time_source = time_source
        self._entries: OrderedDict[CachedKey, _Slot] = OrderedDict()
        self._weight = 0
        self._lock = threading.Lock()

    def _is_expired(self, slot: _Slot, now: float) -> bool:
        ttl = self._options.time_to_live
        if ttl is not None and now - slot.inserted_at >= ttl.total_seconds():
            return True
        tti = self._options.time_to_idle
        return tti is not None and now - slot.accessed_at >= tti.total_seconds()

    def _discard(self, key: CachedKey) -> None:
        slot = self._entries.pop(key, None)
        if slot is not None:
            self._weight -= slot.weight

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, s in self._entries.items() if self._is_expired(s, now)]
        for key in expired:
            self._discard(key)

    async def get(self, key: CachedKey) -> CachedEntry | None:
        with self._lock:
            slot = self._entries.get(key)
            if slot is None:
                return None
            now = self._time_source()
            if self._is_expired(slot, now):
                self._discard(key)
                return None
            slot.accessed_at = now
            self._entries.move_to_end(key)
            return slot.entry

    async def insert(self, key: CachedKey, value: CachedEntry) -> None:
        weight = min(value.size(), _U32_MAX)
        with self._lock:
            self._discard(key)
            if weight > self._options.max_capacity:
                return
            now = self._time_source()
            self._entries[key] = _Slot(value, weight, now, now)
            self._weight += weight
            self._purge_expired(now)
            while self._weight > self._options.max_capacity:
                oldest = next(iter(self._entries))
                self._discard(oldest)

    async def remove(self, key: CachedKey) -> None:
        with self._lock:
            self._discard(key)

    def entry_count(self) -> int:
        with self._lock:
            self._purge_expired(self._time_source())
            return len(self._entries)