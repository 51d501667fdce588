from dataclasses import dataclass

import pytest

from slatestore.db_cache import CachedEntry, CachedKey, DbCache


@dataclass
class FakeItem:
    nbytes: int

    def size(self) -> int:
        return self.nbytes


class DictCache(DbCache):
    def __init__(self):
        self.inner = {}

    async def get(self, key):
        return self.inner.get(key)

    async def insert(self, key, value):
        self.inner[key] = value

    async def remove(self, key):
        self.inner.pop(key, None)

    def entry_count(self):
        return len(self.inner)


def test_block_entry_exposes_only_block():
    item = FakeItem(10)
    entry = CachedEntry.with_block(item)
    assert entry.block() is item
    assert entry.sst_index() is None
    assert entry.bloom_filter() is None


def test_sst_index_entry_exposes_only_index():
    item = FakeItem(20)
    entry = CachedEntry.with_sst_index(item)
    assert entry.sst_index() is item
    assert entry.block() is None
    assert entry.bloom_filter() is None


def test_bloom_filter_entry_exposes_only_filter():
    item = FakeItem(30)
    entry = CachedEntry.with_bloom_filter(item)
    assert entry.bloom_filter() is item
    assert entry.block() is None
    assert entry.sst_index() is None


@pytest.mark.parametrize(
    "factory",
    [CachedEntry.with_block, CachedEntry.with_sst_index, CachedEntry.with_bloom_filter],
)
def test_size_delegates_to_item(factory):
    assert factory(FakeItem(4096)).size() == 4096


def test_cached_key_equality_and_hash():
    assert CachedKey("sst-1", 3) == CachedKey("sst-1", 3)
    assert CachedKey("sst-1", 3) != CachedKey("sst-1", 4)
    assert len({CachedKey("sst-1", 3), CachedKey("sst-1", 3), CachedKey("sst-2", 3)}) == 2


def test_db_cache_is_abstract():
    with pytest.raises(TypeError):
        DbCache()


@pytest.mark.asyncio
async def test_custom_cache_round_trip():
    cache = DictCache()
    key = CachedKey("sst-1", 0)
    entry = CachedEntry.with_block(FakeItem(8))
    await cache.insert(key, entry)
    assert await cache.get(key) is entry
    assert cache.entry_count() == 1
    await cache.remove(key)
    assert await cache.get(key) is None
    assert cache.entry_count() == 0