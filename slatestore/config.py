"""Database configuration options and loading them from files and the environment."""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, TypeVar

import yaml

from .options import (
    Clock,
    CompressionCodec,
    InvalidCompressionCodecError,
    SystemClock,
    parse_duration,
    serialize_duration,
)

T = TypeVar("T")

_DEFAULT_FILES = ("SlateDb.json", "SlateDb.toml", "SlateDb.yaml", "SlateDb.yml")
_DEFAULT_ENV_PREFIX = "SLATEDB_"


class DbOptionsError(ValueError):
    """Raised when options cannot be read or parsed."""


# --- field readers -----------------------------------------------------------


def _read_duration(value: Any, path: str) -> timedelta:
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise DbOptionsError(f"{path}: expected a duration, got {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise DbOptionsError(f"{path}: durations cannot be negative")
        return timedelta(seconds=value)
    if isinstance(value, str):
        try:
            return parse_duration(value)
        except ValueError as exc:
            raise DbOptionsError(f"{path}: {exc}") from None
    raise DbOptionsError(f"{path}: expected a duration, got {value!r}")


def _read_uint(value: Any, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise DbOptionsError(f"{path}: expected an unsigned integer, got {value!r}")
    if value < 0:
        raise DbOptionsError(f"{path}: expected an unsigned integer, got {value!r}")
    return value


def _read_bool(value: Any, path: str) -> bool:
    if not isinstance(value, bool):
        raise DbOptionsError(f"{path}: expected a boolean, got {value!r}")
    return value


def _read_path(value: Any, path: str) -> Path:
    if isinstance(value, Path):
        return value
    if not isinstance(value, str):
        raise DbOptionsError(f"{path}: expected a path, got {value!r}")
    return Path(value)


def _read_codec(value: Any, path: str) -> CompressionCodec:
    if isinstance(value, CompressionCodec):
        return value
    if not isinstance(value, str):
        raise DbOptionsError(f"{path}: expected a codec name, got {value!r}")
    try:
        return CompressionCodec.from_str(value.lower())
    except InvalidCompressionCodecError as exc:
        raise DbOptionsError(f"{path}: {exc}") from None


def _optional(reader: Callable[[Any, str], T]) -> Callable[[Any, str], T | None]:
    def read(value: Any, path: str) -> T | None:
        return None if value is None else reader(value, path)

    return read


def _section(data: Any, path: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        where = path.rstrip(".") or "options"
        raise DbOptionsError(f"{where}: expected a table, got {data!r}")
    return data


def _field(
    data: Mapping[str, Any],
    name: str,
    reader: Callable[[Any, str], T],
    default: T,
    path: str,
) -> T:
    if name not in data:
        return default
    return reader(data[name], f"{path}{name}")


def _merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into ``base``, descending into nested tables."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = _merge(current, value)
        else:
            merged[key] = value
    return merged


# --- option classes ----------------------------------------------------------


@dataclass
class SizeTieredCompactionSchedulerOptions:
    """Options for the size-tiered compaction scheduler."""

    min_compaction_sources: int = 4
    max_compaction_sources: int = 8
    include_size_threshold: float = 4.0


@dataclass
class CompactorOptions:
    """Options for the compactor."""

    poll_interval: timedelta = timedelta(seconds=5)
    max_sst_size: int = 1024 * 1024 * 1024
    max_concurrent_compactions: int = 4
    scheduler_options: SizeTieredCompactionSchedulerOptions = field(
        default_factory=SizeTieredCompactionSchedulerOptions
    )

    def _to_dict(self) -> dict[str, Any]:
        return {
            "poll_interval": serialize_duration(self.poll_interval),
            "max_sst_size": self.max_sst_size,
            "max_concurrent_compactions": self.max_concurrent_compactions,
        }

    @classmethod
    def _from_mapping(cls, data: Any, path: str) -> CompactorOptions:
        section = _section(data, path)
        defaults = cls()
        return cls(
            poll_interval=_field(
                section, "poll_interval", _read_duration, defaults.poll_interval, path
            ),
            max_sst_size=_field(
                section, "max_sst_size", _read_uint, defaults.max_sst_size, path
            ),
            max_concurrent_compactions=_field(
                section,
                "max_concurrent_compactions",
                _read_uint,
                defaults.max_concurrent_compactions,
                path,
            ),
        )


@dataclass
class GarbageCollectorDirectoryOptions:
    """Garbage collection options for one directory."""

    poll_interval: timedelta = timedelta(seconds=300)
    min_age: timedelta = timedelta(seconds=86_400)

    def _to_dict(self) -> dict[str, Any]:
        return {
            "poll_interval": serialize_duration(self.poll_interval),
            "min_age": serialize_duration(self.min_age),
        }

    @classmethod
    def _from_mapping(cls, data: Any, path: str) -> GarbageCollectorDirectoryOptions:
        section = _section(data, path)
        defaults = cls()
        return cls(
            poll_interval=_field(
                section, "poll_interval", _read_duration, defaults.poll_interval, path
            ),
            min_age=_field(section, "min_age", _read_duration, defaults.min_age, path),
        )


def _default_wal_gc_options() -> GarbageCollectorDirectoryOptions:
    return GarbageCollectorDirectoryOptions(
        poll_interval=timedelta(seconds=60), min_age=timedelta(seconds=60)
    )


@dataclass
class GarbageCollectorOptions:
    """Garbage collector options for the manifest, WAL and compacted directories."""

    manifest_options: GarbageCollectorDirectoryOptions | None = field(
        default_factory=GarbageCollectorDirectoryOptions
    )
    wal_options: GarbageCollectorDirectoryOptions | None = field(
        default_factory=_default_wal_gc_options
    )
    compacted_options: GarbageCollectorDirectoryOptions | None = field(
        default_factory=GarbageCollectorDirectoryOptions
    )

    _DIRECTORIES = ("manifest_options", "wal_options", "compacted_options")

    def _to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for name in self._DIRECTORIES:
            value = getattr(self, name)
            result[name] = None if value is None else value._to_dict()
        return result

    @classmethod
    def _from_mapping(cls, data: Any, path: str) -> GarbageCollectorOptions:
        section = _section(data, path)
        defaults = cls()
        values = {}
        for name in cls._DIRECTORIES:
            default_dir = getattr(defaults, name)
            if name not in section:
                values[name] = default_dir
                continue
            raw = section[name]
            if raw is None:
                values[name] = None
                continue
            base = default_dir._to_dict() if default_dir is not None else {}
            merged = _merge(base, _section(raw, f"{path}{name}."))
            values[name] = GarbageCollectorDirectoryOptions._from_mapping(
                merged, f"{path}{name}."
            )
        return cls(**values)


@dataclass
class ObjectStoreCacheOptions:
    """Options for the local object store cache; disabled unless a root folder is set."""

    root_folder: Path | None = None
    max_cache_size_bytes: int | None = 16 * 1024 * 1024 * 1024
    part_size_bytes: int = 4 * 1024 * 1024
    scan_interval: timedelta | None = timedelta(seconds=3600)

    def _to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "root_folder": None if self.root_folder is None else str(self.root_folder),
            "max_cache_size_bytes": self.max_cache_size_bytes,
            "part_size_bytes": self.part_size_bytes,
        }
        if self.scan_interval is not None:
            result["scan_interval"] = serialize_duration(self.scan_interval)
        return result

    @classmethod
    def _from_mapping(cls, data: Any, path: str) -> ObjectStoreCacheOptions:
        section = _section(data, path)
        defaults = cls()
        return cls(
            root_folder=_field(
                section, "root_folder", _optional(_read_path), defaults.root_folder, path
            ),
            max_cache_size_bytes=_field(
                section,
                "max_cache_size_bytes",
                _optional(_read_uint),
                defaults.max_cache_size_bytes,
                path,
            ),
            part_size_bytes=_field(
                section, "part_size_bytes", _read_uint, defaults.part_size_bytes, path
            ),
            scan_interval=_field(
                section,
                "scan_interval",
                _optional(_read_duration),
                defaults.scan_interval,
                path,
            ),
        )


@dataclass
class DbOptions:
    """Options for the database, set when a client starts."""

    flush_interval: timedelta = timedelta(milliseconds=100)
    wal_enabled: bool = True
    manifest_poll_interval: timedelta = timedelta(seconds=1)
    min_filter_keys: int = 1000
    filter_bits_per_key: int = 10
    l0_sst_size_bytes: int = 64 * 1024 * 1024
    l0_max_ssts: int = 8
    max_unflushed_bytes: int = 1_073_741_824
    compactor_options: CompactorOptions | None = field(default_factory=CompactorOptions)
    compression_codec: CompressionCodec | None = None
    object_store_cache_options: ObjectStoreCacheOptions = field(
        default_factory=ObjectStoreCacheOptions
    )
    block_cache: Any = field(default=None, compare=False, repr=False)
    garbage_collector_options: GarbageCollectorOptions | None = field(
        default_factory=GarbageCollectorOptions
    )
    clock: Clock = field(default_factory=SystemClock, compare=False, repr=False)
    default_ttl: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the serializable options as plain data."""
        return {
            "flush_interval": serialize_duration(self.flush_interval),
            "wal_enabled": self.wal_enabled,
            "manifest_poll_interval": serialize_duration(self.manifest_poll_interval),
            "min_filter_keys": self.min_filter_keys,
            "filter_bits_per_key": self.filter_bits_per_key,
            "l0_sst_size_bytes": self.l0_sst_size_bytes,
            "l0_max_ssts": self.l0_max_ssts,
            "max_unflushed_bytes": self.max_unflushed_bytes,
            "compactor_options": (
                None
                if self.compactor_options is None
                else self.compactor_options._to_dict()
            ),
            "compression_codec": (
                None if self.compression_codec is None else self.compression_codec.value
            ),
            "object_store_cache_options": self.object_store_cache_options._to_dict(),
            "garbage_collector_options": (
                None
                if self.garbage_collector_options is None
                else self.garbage_collector_options._to_dict()
            ),
            "default_ttl": self.default_ttl,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DbOptions:
        """Build options from plain data layered over the defaults; unknown keys are ignored."""
        merged = _merge(cls().to_dict(), _section(data, ""))
        return cls(
            flush_interval=_read_duration(merged["flush_interval"], "flush_interval"),
            wal_enabled=_read_bool(merged["wal_enabled"], "wal_enabled"),
            manifest_poll_interval=_read_duration(
                merged["manifest_poll_interval"], "manifest_poll_interval"
            ),
            min_filter_keys=_read_uint(merged["min_filter_keys"], "min_filter_keys"),
            filter_bits_per_key=_read_uint(
                merged["filter_bits_per_key"], "filter_bits_per_key"
            ),
            l0_sst_size_bytes=_read_uint(
                merged["l0_sst_size_bytes"], "l0_sst_size_bytes"
            ),
            l0_max_ssts=_read_uint(merged["l0_max_ssts"], "l0_max_ssts"),
            max_unflushed_bytes=_read_uint(
                merged["max_unflushed_bytes"], "max_unflushed_bytes"
            ),
            compactor_options=_optional(CompactorOptions._from_mapping)(
                merged["compactor_options"], "compactor_options."
            ),
            compression_codec=_optional(_read_codec)(
                merged["compression_codec"], "compression_codec"
            ),
            object_store_cache_options=ObjectStoreCacheOptions._from_mapping(
                merged["object_store_cache_options"], "object_store_cache_options."
            ),
            garbage_collector_options=_optional(GarbageCollectorOptions._from_mapping)(
                merged["garbage_collector_options"], "garbage_collector_options."
            ),
            default_ttl=_optional(_read_uint)(merged["default_ttl"], "default_ttl"),
        )

    @classmethod
    def from_file(cls, path: str | os.PathLike[str]) -> DbOptions:
        """Load options from a JSON, TOML or YAML file chosen by its extension.

        A file that does not exist contributes nothing, leaving the defaults.
        """
        file_path = Path(path)
        _format_for(file_path)
        return cls.from_dict(_read_file(file_path))

    @classmethod
    def from_env(
        cls, prefix: str, environ: Mapping[str, str] | None = None
    ) -> DbOptions:
        """Load options from environment variables starting with ``prefix``.

        Names are matched without regard to case and a dot nests a key, so
        ``PREFIX_OBJECT_STORE_CACHE_OPTIONS.ROOT_FOLDER`` sets the cache root folder.
        """
        env = os.environ if environ is None else environ
        return cls.from_dict(_read_env(prefix, env))

    @classmethod
    def load(
        cls,
        directory: str | os.PathLike[str] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> DbOptions:
        """Load options from ``SlateDb.json``, ``.toml``, ``.yaml`` and ``.yml`` in
        ``directory`` (the working directory by default), then from ``SLATEDB_``
        environment variables; each later source overrides the earlier ones.
        """
        base = Path.cwd() if directory is None else Path(directory)
        env = os.environ if environ is None else environ
        merged: dict[str, Any] = {}
        for name in _DEFAULT_FILES:
            merged = _merge(merged, _read_file(base / name))
        merged = _merge(merged, _read_env(_DEFAULT_ENV_PREFIX, env))
        return cls.from_dict(merged)


# --- sources -----------------------------------------------------------------


def _format_for(path: Path) -> str:
    extension = path.suffix[1:]
    if extension in ("json", "toml"):
        return extension
    if extension in ("yaml", "yml"):
        return "yaml"
    raise DbOptionsError(f"unknown configuration file format: {path}")


def _read_file(path: Path) -> dict[str, Any]:
    kind = _format_for(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as exc:
        raise DbOptionsError(f"cannot read {path}: {exc}") from exc
    try:
        if kind == "json":
            data = json.loads(text)
        elif kind == "toml":
            data = tomllib.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
        raise DbOptionsError(f"cannot parse {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise DbOptionsError(f"{path}: the top level must be a table")
    return data


def _env_value(raw: str) -> Any:
    text = raw.strip()
    lowered = text.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    try:
        return int(text)
    except ValueError:
        return text


def _read_env(prefix: str, environ: Mapping[str, str]) -> dict[str, Any]:
    upper_prefix = prefix.upper()
    result: dict[str, Any] = {}
    for name, raw in environ.items():
        if not name.upper().startswith(upper_prefix):
            continue
        key = name[len(prefix):].lower()
        parts = [part for part in key.split(".") if part]
        if not parts:
            continue
        nested: Any = _env_value(raw)
        for part in reversed(parts):
            nested = {part: nested}
        result = _merge(result, nested)
    return result