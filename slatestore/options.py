"""Per-call options, time-to-live handling, clocks and duration strings."""

from __future__ import annotations

import enum
import re
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta

_I64_MAX = 2**63 - 1
_I64_MIN = -(2**63)


class ReadLevel(enum.Enum):
    """Which writes a read may observe."""

    COMMITTED = "committed"
    UNCOMMITTED = "uncommitted"


@dataclass(frozen=True)
class ReadOptions:
    """Options supplied with each read call."""

    read_level: ReadLevel = ReadLevel.COMMITTED


@dataclass(frozen=True)
class WriteOptions:
    """Options supplied with each write call."""

    await_durable: bool = True


class _TtlKind(enum.Enum):
    DEFAULT = "default"
    NO_EXPIRY = "no_expiry"
    EXPIRE_AFTER = "expire_after"


@dataclass(frozen=True)
class Ttl:
    """Time-to-live of an inserted row."""

    kind: _TtlKind = _TtlKind.DEFAULT
    ttl: int | None = None

    def __post_init__(self) -> None:
        if self.kind is _TtlKind.EXPIRE_AFTER:
            if self.ttl is None or self.ttl < 0:
                raise ValueError("an expiring TTL needs a non-negative duration")
        elif self.ttl is not None:
            raise ValueError(f"a {self.kind.value} TTL carries no duration")

    @classmethod
    def default(cls) -> Ttl:
        """Use the TTL configured for the database."""
        return cls(_TtlKind.DEFAULT)

    @classmethod
    def no_expiry(cls) -> Ttl:
        """Never expire the row."""
        return cls(_TtlKind.NO_EXPIRY)

    @classmethod
    def expire_after(cls, ttl: int) -> Ttl:
        """Expire the row ``ttl`` clock ticks after insertion."""
        return cls(_TtlKind.EXPIRE_AFTER, ttl)


def _checked_expire_ts(now: int, ttl: int) -> int | None:
    # an overflowing expiry is treated as no expiry at all
    if ttl > _I64_MAX:
        return None
    expire_ts = now + ttl
    if expire_ts > _I64_MAX:
        return None
    return expire_ts


@dataclass(frozen=True)
class PutOptions:
    """Options supplied for each row inserted."""

    ttl: Ttl = field(default_factory=Ttl.default)

    def expire_ts_from(self, default: int | None, now: int) -> int | None:
        """Return the expiry timestamp for a row written at ``now``, if any."""
        match self.ttl.kind:
            case _TtlKind.DEFAULT:
                if default is None:
                    return None
                return _checked_expire_ts(now, default)
            case _TtlKind.NO_EXPIRY:
                return None
            case _TtlKind.EXPIRE_AFTER:
                return _checked_expire_ts(now, self.ttl.ttl)
        raise AssertionError(f"unknown TTL kind {self.ttl.kind!r}")


DEFAULT_READ_OPTIONS = ReadOptions()
DEFAULT_WRITE_OPTIONS = WriteOptions()
DEFAULT_PUT_OPTIONS = PutOptions()


class Clock(ABC):
    """Source of monotonically increasing timestamps."""

    @abstractmethod
    def now(self) -> int:
        """Return the current tick."""


class SystemClock(Clock):
    """Wall-clock seconds since the Unix epoch, forced to never go backwards."""

    def __init__(self, time_source: Callable[[], float] = time.time) -> None:
        self._time_source = time_source
        self._last_tick = _I64_MIN
        self._lock = threading.Lock()

    def now(self) -> int:
        tick = int(self._time_source())
        with self._lock:
            self._last_tick = max(self._last_tick, tick)
            return self._last_tick


@dataclass(frozen=True)
class CheckpointScope:
    """Which writes a checkpoint covers.

    With ``all_writes`` every issued write is included, and ``force_flush``
    flushes the current table instead of waiting for a regular flush.
    Otherwise only durable writes are included.
    """

    all_writes: bool = False
    force_flush: bool = False

    def __post_init__(self) -> None:
        if self.force_flush and not self.all_writes:
            raise ValueError("force_flush applies only to a scope of all writes")


@dataclass(frozen=True)
class CheckpointOptions:
    """Options for creating a checkpoint."""

    scope: CheckpointScope = field(default_factory=CheckpointScope)
    lifetime: timedelta | None = None
    source: uuid.UUID | None = None


class InvalidCompressionCodecError(ValueError):
    """Raised for an unknown compression codec name."""


class CompressionCodec(enum.Enum):
    """Compression algorithm for SSTables."""

    SNAPPY = "snappy"
    ZLIB = "zlib"
    LZ4 = "lz4"
    ZSTD = "zstd"

    @classmethod
    def from_str(cls, text: str) -> CompressionCodec:
        """Parse a codec from its lower-case name."""
        try:
            return cls(text)
        except ValueError:
            raise InvalidCompressionCodecError(
                f"invalid compression codec: {text!r}"
            ) from None


def serialize_duration(duration: timedelta) -> str:
    """Render a duration as a human-friendly string such as ``100ms`` or ``1s+005ms``."""
    total_us = duration // timedelta(microseconds=1)
    if total_us < 0:
        raise ValueError("durations cannot be negative")
    secs, rest_us = divmod(total_us, 1_000_000)
    millis = rest_us // 1000
    if secs > 0 and millis > 0:
        return f"{secs}s+{millis:03d}ms"
    if millis > 0:
        return f"{millis:03d}ms"
    return f"{secs}s"


_NS_PER_UNIT = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "ms": 1_000_000,
    "": 1_000_000_000,
    "s": 1_000_000_000,
    "sec": 1_000_000_000,
    "second": 1_000_000_000,
    "seconds": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "min": 60 * 1_000_000_000,
    "minute": 60 * 1_000_000_000,
    "minutes": 60 * 1_000_000_000,
    "h": 3_600 * 1_000_000_000,
    "hour": 3_600 * 1_000_000_000,
    "hours": 3_600 * 1_000_000_000,
    "d": 86_400 * 1_000_000_000,
    "day": 86_400 * 1_000_000_000,
    "days": 86_400 * 1_000_000_000,
    "w": 7 * 86_400 * 1_000_000_000,
    "week": 7 * 86_400 * 1_000_000_000,
    "weeks": 7 * 86_400 * 1_000_000_000,
    "mon": 30 * 86_400 * 1_000_000_000,
    "month": 30 * 86_400 * 1_000_000_000,
    "months": 30 * 86_400 * 1_000_000_000,
    "y": 365 * 86_400 * 1_000_000_000,
    "year": 365 * 86_400 * 1_000_000_000,
    "years": 365 * 86_400 * 1_000_000_000,
}

_TERM = re.compile(r"(\d+)\s*([a-zµ]*)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration string such as ``100ms``, ``5s`` or ``1h+30m``."""
    cleaned = text.strip().lower()
    if not cleaned:
        raise ValueError("empty duration string")
    terms = [term for term in re.split(r"[+\s]+", cleaned) if term]
    if not terms:
        raise ValueError(f"invalid duration: {text!r}")
    total_ns = 0
    for term in terms:
        match = _TERM.fullmatch(term)
        if match is None:
            raise ValueError(f"invalid duration: {text!r}")
        amount, unit = match.groups()
        try:
            scale = _NS_PER_UNIT[unit]
        except KeyError:
            raise ValueError(f"unknown duration unit {unit!r} in {text!r}") from None
        total_ns += int(amount) * scale
    return timedelta(microseconds=total_ns // 1_000)