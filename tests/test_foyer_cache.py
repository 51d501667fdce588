from dataclasses import dataclass

import pytest

from slatestore.db_cache import DEFAULT_MAX_CAPACITY, CachedEntry, CachedKey
from slatestore.foyer_cache import FoyerCache, FoyerCacheOptions


@dataclass
class FakeItem:
    nbytes: int

    def size(self) -> int:
        return self.nbytes


def block(nbytes):
    return CachedEntry.with_block(FakeItem(nbytes))


def test_default_options_use_default_capacity():
    assert FoyerCacheOptions().max_capacity == DEFAULT_MAX_CAPACITY


@pytest.mark.asyncio
async def test_insert_get_remove():
    cache = FoyerCache()
    key = CachedKey("sst", 1)
    entry = block(100)
    await cache.insert(key, entry)
    assert await cache.get(key) is entry
    await cache.remove(key)
    assert await cache.get(key) is None


@pytest.mark.asyncio
async def test_entry_count_reports_usage():
    cache = FoyerCache()
    await cache.insert(CachedKey("sst", 0), block(100))
    await cache.insert(CachedKey("sst", 1), block(40))
    assert cache.entry_count() == 140
    await cache.remove(CachedKey("sst", 0))
    assert cache.entry_count() == 40


@pytest.mark.asyncio
async def test_replacing_entry_updates_usage():
    cache = FoyerCache()
    key = CachedKey("sst", 0)
    await cache.insert(key, block(100))
    await cache.insert(key, block(30))
    assert cache.entry_count() == 30


@pytest.mark.asyncio
async def test_evicts_least_recently_used_when_over_capacity():
    cache = FoyerCache(FoyerCacheOptions(max_capacity=250))
    keys = [CachedKey("sst", i) for i in range(3)]
    await cache.insert(keys[0], block(100))
    await cache.insert(keys[1], block(100))
    assert await cache.get(keys[0]) is not None
    await cache.insert(keys[2], block(100))
    assert await cache.get(keys[1]) is None
    assert await cache.get(keys[0]) is not None
    assert cache.entry_count() <= 250


@pytest.mark.asyncio
async def test_entry_heavier_than_capacity_is_not_kept():
    cache = FoyerCache(FoyerCacheOptions(max_capacity=50))
    key = CachedKey("sst", 0)
    await cache.insert(key, block(51))
    assert await cache.get(key) is None
    assert cache.entry_count() == 0