# slatestore

Building blocks for an LSM-tree key-value store:

- `slatestore.options`: per-call read, write and put options, time-to-live
  handling, clocks, checkpoint options, compression codec names, and
  conversion of durations to and from strings such as `"100ms"` or `"1s"`.
- `slatestore.config`: `DbOptions` with its nested option groups for the
  compactor, the garbage collector and the object store cache, loadable from
  JSON, TOML or YAML files and from environment variables.
- `slatestore.db_cache`: the async `DbCache` interface and the `CachedKey` and
  `CachedEntry` types for SSTable blocks, indexes and bloom filters.
- `slatestore.moka_cache` and `slatestore.foyer_cache`: two in-memory caches
  whose capacity is counted in bytes.
- `slatestore.compactor_state`: bookkeeping of submitted compactions and of the
  database state the compactor sees.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Configuration

```python
from slatestore.config import DbOptions

options = DbOptions()                          # defaults
options = DbOptions.from_file("config.toml")   # .json, .toml, .yaml or .yml
options = DbOptions.from_env("SLATEDB_")
options = DbOptions.load()                     # SlateDb.{json,toml,yaml,yml} + SLATEDB_* variables
```

A TOML file may look like this:

```toml
flush_interval = "100ms"
manifest_poll_interval = "1s"
min_filter_keys = 1000
filter_bits_per_key = 10
l0_sst_size_bytes = 67108864
l0_max_ssts = 8
max_unflushed_bytes = 536870912

[compactor_options]
poll_interval = "5s"
max_sst_size = 1073741824
max_concurrent_compactions = 4

[object_store_cache_options]
root_folder = "/tmp/slatedb-cache"
part_size_bytes = 4194304
scan_interval = "3600s"

[garbage_collector_options.wal_options]
poll_interval = "60s"
min_age = "60s"
```

Details:

- Every source is layered over the defaults; keys that are not given keep
  their default values and unknown keys are ignored.
- `from_file` picks the format by extension; any other extension raises
  `DbOptionsError`, as do values of the wrong type or files that cannot be
  parsed. A file that does not exist leaves the defaults.
- `from_env(prefix, environ=None)` reads `os.environ` unless a mapping is
  given. Names are matched without regard to case, and a dot nests a key, so
  `SLATEDB_OBJECT_STORE_CACHE_OPTIONS.ROOT_FOLDER` sets
  `object_store_cache_options.root_folder`. Values `true`/`false` become
  booleans and whole numbers become integers.
- `load(directory=None, environ=None)` reads `SlateDb.json`, `SlateDb.toml`,
  `SlateDb.yaml` and `SlateDb.yml` from `directory` (the working directory by
  default), then the `SLATEDB_` variables; each later source overrides the
  earlier ones.
- `to_dict()` and `from_dict(data)` convert the serializable options to and
  from plain data. `block_cache` and `clock` are not serialized; `clock`
  defaults to a `SystemClock`.

Durations are written as human-friendly strings; several terms may be joined
with `+`:

```python
from datetime import timedelta
from slatestore.options import parse_duration, serialize_duration

parse_duration("1s")                              # timedelta(seconds=1)
parse_duration("1h+30m")                          # timedelta(hours=1, minutes=30)
serialize_duration(timedelta(milliseconds=100))   # "100ms"
serialize_duration(timedelta(seconds=1, milliseconds=5))  # "1s+005ms"
```

`CompressionCodec.from_str("zstd")` parses a codec name and raises
`InvalidCompressionCodecError` for an unknown one.

## Time to live

```python
from slatestore.options import PutOptions, Ttl

PutOptions(ttl=Ttl.expire_after(50)).expire_ts_from(None, 100)   # 150
PutOptions(ttl=Ttl.no_expiry()).expire_ts_from(10, 100)          # None
PutOptions().expire_ts_from(10, 100)                             # 110, from the default TTL
```

An expiry that would overflow a signed 64-bit timestamp is treated as no expiry.

## Block caches

```python
import asyncio

from slatestore.db_cache import CachedEntry, CachedKey
from slatestore.moka_cache import MokaCache, MokaCacheOptions


class Block:
    def __init__(self, data: bytes) -> None:
        self.data = data

    def size(self) -> int:
        return len(self.data)


async def main() -> None:
    cache = MokaCache(MokaCacheOptions(max_capacity=64 * 1024 * 1024))
    key = CachedKey(sst_id="sst-1", block_id=0)
    await cache.insert(key, CachedEntry.with_block(Block(b"payload")))
    entry = await cache.get(key)
    print(entry.block().data, cache.entry_count())


asyncio.run(main())
```

Cached items only need a `size()` method giving their size in bytes. Both
caches evict the least recently used entries once the total size exceeds
`max_capacity`, and do not store an item larger than the capacity.

- `MokaCache` also takes `time_to_live` and `time_to_idle` options
  (`timedelta`), and `entry_count()` returns the number of live entries.
- `FoyerCache` (with `FoyerCacheOptions`) has no expiry; its `entry_count()`
  returns the number of bytes in use.

## Compaction state

```python
from slatestore.compactor_state import Compaction, CompactorState, SourceId

state = CompactorState(db_state)
state.submit_compaction(Compaction([SourceId.sst(l0_id)], destination=0))
state.finish_compaction(output_run)
```

`CompactorState` holds one outstanding `Compaction` per destination sorted run.
`submit_compaction` raises `InvalidCompactionError` when a compaction into the
same destination is outstanding, or when the destination is an existing sorted
run that is not among the sources. `refresh_db_state` takes the writer's newer
L0 tables (up to the last compacted one) and WAL positions and clock tick.
`finish_compaction` drops the compacted L0 tables and sorted runs, inserts the
output run keeping the runs in descending id order, records the first source's
L0 id as the last compacted one, and forgets the compaction.

The database state and its tables are supplied by the caller: `db_state` needs
the attributes `l0`, `compacted`, `l0_last_compacted`,
`last_compacted_wal_sst_id`, `next_wal_sst_id` and `last_clock_tick`; L0
handles need an `id` with `unwrap_compacted_id()`; sorted runs need `id` and
`ssts`.

## What this package does not do

There is no storage engine here: nothing reads or writes keys, keeps a
write-ahead log or memtables, talks to object storage, stores manifests, runs
compactions or collects garbage. The option classes describe such settings and
`CompactorState` keeps compaction records, but acting on them is left to the
code that uses this package. There is no command-line tool.