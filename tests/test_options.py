import uuid
from datetime import timedelta

import pytest

from slatestore.options import (
    CheckpointOptions,
    CheckpointScope,
    Clock,
    CompressionCodec,
    InvalidCompressionCodecError,
    PutOptions,
    ReadLevel,
    ReadOptions,
    SystemClock,
    Ttl,
    WriteOptions,
    parse_duration,
    serialize_duration,
)

I64_MAX = 2**63 - 1


def _sequence_source(values):
    iterator = iter(values)
    return lambda: next(iterator)


def test_read_and_write_option_defaults():
    assert ReadOptions().read_level is ReadLevel.COMMITTED
    assert WriteOptions().await_durable is True
    assert ReadOptions(ReadLevel.UNCOMMITTED).read_level is ReadLevel.UNCOMMITTED


def test_put_options_default_ttl_uses_database_default():
    opts = PutOptions()
    assert opts.ttl == Ttl.default()
    assert opts.expire_ts_from(None, 10) is None
    assert opts.expire_ts_from(0, 10) == 10


def test_default_ttl_offsets_from_now():
    opts = PutOptions()
    assert opts.expire_ts_from(100, 10) == opts.expire_ts_from(100, 0) + 10


def test_no_expiry_ignores_default():
    opts = PutOptions(Ttl.no_expiry())
    assert opts.expire_ts_from(100, 10) is None
    assert opts.expire_ts_from(None, 10) is None


def test_expire_after_ignores_default():
    opts = PutOptions(Ttl.expire_after(0))
    assert opts.expire_ts_from(None, 42) == 42
    assert opts.expire_ts_from(1_000, 42) == 42


def test_ttl_beyond_i64_means_no_expiry():
    assert PutOptions(Ttl.expire_after(I64_MAX + 1)).expire_ts_from(None, 0) is None
    assert PutOptions().expire_ts_from(I64_MAX + 1, 0) is None


def test_overflowing_expiry_means_no_expiry():
    opts = PutOptions(Ttl.expire_after(5))
    assert opts.expire_ts_from(None, I64_MAX - 1) is None
    assert opts.expire_ts_from(None, I64_MAX - 5) == I64_MAX


def test_negative_ttl_rejected():
    with pytest.raises(ValueError):
        Ttl.expire_after(-1)


def test_system_clock_never_goes_backwards():
    clock = SystemClock(_sequence_source([10.7, 5.0, 12.2]))
    first = clock.now()
    second = clock.now()
    third = clock.now()
    assert first == 10
    assert second == first
    assert third == 12


def test_system_clock_before_epoch_is_negative():
    clock = SystemClock(_sequence_source([-5.5]))
    assert clock.now() == -5


def test_system_clock_real_time_is_monotonic():
    clock = SystemClock()
    ticks = [clock.now() for _ in range(5)]
    assert ticks == sorted(ticks)
    assert isinstance(clock, Clock)


def test_checkpoint_options_default_to_durable_scope():
    opts = CheckpointOptions()
    assert opts.scope == CheckpointScope()
    assert opts.scope.all_writes is False
    assert opts.lifetime is None
    assert opts.source is None


def test_checkpoint_options_carry_values():
    source = uuid.uuid4()
    opts = CheckpointOptions(
        scope=CheckpointScope(all_writes=True, force_flush=True),
        lifetime=timedelta(seconds=30),
        source=source,
    )
    assert opts.scope.force_flush is True
    assert opts.source == source


def test_durable_scope_cannot_force_flush():
    with pytest.raises(ValueError):
        CheckpointScope(all_writes=False, force_flush=True)


@pytest.mark.parametrize(
    "name, codec",
    [
        ("snappy", CompressionCodec.SNAPPY),
        ("zlib", CompressionCodec.ZLIB),
        ("lz4", CompressionCodec.LZ4),
        ("zstd", CompressionCodec.ZSTD),
    ],
)
def test_compression_codec_from_str(name, codec):
    assert CompressionCodec.from_str(name) is codec


@pytest.mark.parametrize("name", ["gzip", "Snappy", ""])
def test_compression_codec_rejects_unknown(name):
    with pytest.raises(InvalidCompressionCodecError):
        CompressionCodec.from_str(name)


def test_invalid_codec_error_is_value_error():
    with pytest.raises(ValueError):
        CompressionCodec.from_str("brotli")


def test_serialize_duration_documented_values():
    assert serialize_duration(timedelta(milliseconds=100)) == "100ms"
    assert serialize_duration(timedelta(seconds=3600)) == "3600s"
    assert serialize_duration(timedelta(seconds=86400)) == "86400s"


def test_serialize_duration_zero():
    assert serialize_duration(timedelta(0)) == "0s"


def test_serialize_duration_mixed_form():
    text = serialize_duration(timedelta(seconds=1, milliseconds=5))
    assert text == "1s+005ms"
    assert parse_duration(text) == timedelta(seconds=1, milliseconds=5)


def test_serialize_duration_rejects_negative():
    with pytest.raises(ValueError):
        serialize_duration(timedelta(seconds=-1))


def test_parse_duration_from_config_strings():
    assert parse_duration("1s") == timedelta(seconds=1)
    assert parse_duration("100ms") == timedelta(milliseconds=100)
    assert parse_duration("86400s") == timedelta(days=1)


def test_parse_duration_units_agree():
    assert parse_duration("60s") == parse_duration("1m")
    assert parse_duration("60m") == parse_duration("1h")
    assert parse_duration("24h") == parse_duration("1d")
    assert parse_duration("1000ms") == parse_duration("1s")
    assert parse_duration("1000us") == parse_duration("1ms")


def test_parse_duration_compound_terms():
    assert parse_duration("1h+30m") == parse_duration("90m")
    assert parse_duration("1h 30m") == parse_duration("90m")


def test_parse_duration_bare_number_is_seconds():
    assert parse_duration("5") == parse_duration("5s")


@pytest.mark.parametrize(
    "duration",
    [
        timedelta(milliseconds=1),
        timedelta(milliseconds=999),
        timedelta(seconds=5),
        timedelta(seconds=300, milliseconds=250),
    ],
)
def test_duration_round_trip(duration):
    assert parse_duration(serialize_duration(duration)) == duration


@pytest.mark.parametrize("text", ["", "   ", "abc", "5 parsecs", "1.5.2s", "-1s"])
def test_parse_duration_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_duration(text)