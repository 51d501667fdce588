"""In-memory cache interface for SSTable blocks, indexes and bloom filters."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from collections.abc import Hashable
from dataclasses import dataclass
from typing import Any, Protocol

DEFAULT_MAX_CAPACITY = 64 * 1024 * 1024
"""Default maximum capacity of a cache, in bytes (64 MiB)."""


class Sized(Protocol):
    """Anything that reports its size in bytes."""

    def size(self) -> int: ...


@dataclass(frozen=True)
class CachedKey:
    """Identifies a cached entry by SSTable id and block id."""

    sst_id: Hashable
    block_id: int


class _CachedItemKind(enum.Enum):
    BLOCK = "block"
    SST_INDEX = "sst_index"
    BLOOM_FILTER = "bloom_filter"


class CachedEntry:
    """A block, SSTable index or bloom filter held in a cache."""

    __slots__ = ("_kind", "_item")

    def __init__(self, kind: _CachedItemKind, item: Sized) -> None:
        self._kind = kind
        self._item = item

    @classmethod
    def with_block(cls, block: Sized) -> CachedEntry:
        """Wrap a data block."""
        return cls(_CachedItemKind.BLOCK, block)

    @classmethod
    def with_sst_index(cls, sst_index: Sized) -> CachedEntry:
        """Wrap an SSTable index."""
        return cls(_CachedItemKind.SST_INDEX, sst_index)

    @classmethod
    def with_bloom_filter(cls, bloom_filter: Sized) -> CachedEntry:
        """Wrap a bloom filter."""
        return cls(_CachedItemKind.BLOOM_FILTER, bloom_filter)

    def _item_if(self, kind: _CachedItemKind) -> Any:
        return self._item if self._kind is kind else None

    def block(self) -> Any:
        """Return the block, or None if this entry holds something else."""
        return self._item_if(_CachedItemKind.BLOCK)

    def sst_index(self) -> Any:
        """Return the SSTable index, or None if this entry holds something else."""
        return self._item_if(_CachedItemKind.SST_INDEX)

    def bloom_filter(self) -> Any:
        """Return the bloom filter, or None if this entry holds something else."""
        return self._item_if(_CachedItemKind.BLOOM_FILTER)

    def size(self) -> int:
        """Return the size of the cached item in bytes."""
        return self._item.size()

    def __repr__(self) -> str:
        return f"CachedEntry({self._kind.value}, {self._item!r})"


class DbCache(ABC):
    """Interface of an in-memory cache keyed by :class:`CachedKey`."""

    @abstractmethod
    async def get(self, key: CachedKey) -> CachedEntry | None:
        """Return the entry for ``key``, or None if it is not cached."""

    @abstractmethod
    async def insert(self, key: CachedKey, value: CachedEntry) -> None:
        """Store ``value`` under ``key``."""

    @abstractmethod
    async def remove(self, key: CachedKey) -> None:
        """Drop the entry for ``key`` if present."""

    @abstractmethod
    def entry_count(self) -> int:
        """Return the number of entries the cache reports."""