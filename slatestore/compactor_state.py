"""Bookkeeping of submitted compactions and the database state the compactor sees."""

from __future__ import annotations

import copy
import dataclasses
import enum
import logging
from collections import deque
from collections.abc import Hashable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

_log = logging.getLogger(__name__)


class InvalidCompactionError(ValueError):
    """Raised when a submitted compaction conflicts with the current state."""


class _CompactedTableId(Protocol):
    def unwrap_compacted_id(self) -> Hashable: ...


class _TableHandle(Protocol):
    id: _CompactedTableId


class _SortedRun(Protocol):
    id: int
    ssts: Sequence[Any]


class _SourceKind(enum.Enum):
    SORTED_RUN = "sorted_run"
    SST = "sst"


@dataclass(frozen=True)
class SourceId:
    """A compaction source: either a sorted run id or an L0 SSTable id."""

    kind: _SourceKind
    value: Hashable

    @classmethod
    def sorted_run(cls, run_id: int) -> SourceId:
        """A source naming a sorted run."""
        return cls(_SourceKind.SORTED_RUN, run_id)

    @classmethod
    def sst(cls, sst_id: Hashable) -> SourceId:
        """A source naming an L0 SSTable."""
        return cls(_SourceKind.SST, sst_id)

    def unwrap_sorted_run(self) -> int:
        """Return the sorted run id, raising ValueError for an SSTable source."""
        run_id = self.maybe_unwrap_sorted_run()
        if run_id is None:
            raise ValueError("tried to unwrap Sst as Sorted Run")
        return run_id

    def maybe_unwrap_sorted_run(self) -> int | None:
        """Return the sorted run id, or None for an SSTable source."""
        return self.value if self.kind is _SourceKind.SORTED_RUN else None

    def unwrap_sst(self) -> Hashable:
        """Return the SSTable id, raising ValueError for a sorted run source."""
        sst_id = self.maybe_unwrap_sst()
        if sst_id is None:
            raise ValueError("tried to unwrap Sorted Run as Sst")
        return sst_id

    def maybe_unwrap_sst(self) -> Hashable | None:
        """Return the SSTable id, or None for a sorted run source."""
        return self.value if self.kind is _SourceKind.SST else None

    def __str__(self) -> str:
        if self.kind is _SourceKind.SORTED_RUN:
            return str(self.value)
        return "l0"


class CompactionStatus(enum.Enum):
    """Lifecycle state of a compaction."""

    SUBMITTED = "Submitted"
    IN_PROGRESS = "InProgress"


@dataclass
class Compaction:
    """Merge of ``sources`` into the sorted run ``destination``."""

    sources: list[SourceId]
    destination: int
    status: CompactionStatus = CompactionStatus.SUBMITTED

    def __str__(self) -> str:
        shown = ", ".join(f'"{source}"' for source in self.sources)
        return f"[{shown}] -> {self.destination}: {self.status.value}"


def _with_fields(state: Any, **changes: Any) -> Any:
    if dataclasses.is_dataclass(state) and not isinstance(state, type):
        return dataclasses.replace(state, **changes)
    updated = copy.copy(state)
    for name, value in changes.items():
        setattr(updated, name, value)
    return updated


def _check_ids_descending(compacted: Iterable[_SortedRun]) -> None:
    last_id: int | None = None
    for run in compacted:
        if last_id is not None and not run.id < last_id:
            raise AssertionError(
                f"compacted sorted runs out of order: {run.id} after {last_id}"
            )
        last_id = run.id


@dataclass
class CompactorState:
    """The compactor's view of the database and its outstanding compactions."""

    db_state: Any
    _compactions: dict[int, Compaction] = field(default_factory=dict, repr=False)

    def num_compactions(self) -> int:
        """Return the number of outstanding compactions."""
        return len(self._compactions)

    def compactions(self) -> list[Compaction]:
        """Return copies of the outstanding compactions."""
        return [copy.deepcopy(c) for c in self._compactions.values()]

    def submit_compaction(self, compaction: Compaction) -> None:
        """Register a compaction, raising InvalidCompactionError on a conflict."""
        if compaction.destination in self._compactions:
            raise InvalidCompactionError(
                f"a compaction into {compaction.destination} is already running"
            )
        overwrites_existing = any(
            run.id == compaction.destination for run in self.db_state.compacted
        )
        if overwrites_existing and not any(
            source.maybe_unwrap_sorted_run() == compaction.destination
            for source in compaction.sources
        ):
            raise InvalidCompactionError(
                f"compaction overwrites sorted run {compaction.destination} "
                "without including it as a source"
            )
        _log.info("accepted submitted compaction: %s", compaction)
        self._compactions[compaction.destination] = compaction

    def refresh_db_state(self, writer_state: Any) -> None:
        """Take in L0 tables and WAL positions newly written by the writer."""
        last_compacted = self.db_state.l0_last_compacted
        merged_l0: deque[Any] = deque()
        for handle in writer_state.l0:
            if (
                last_compacted is not None
                and handle.id.unwrap_compacted_id() == last_compacted
            ):
                break
            merged_l0.append(handle)
        self.db_state = _with_fields(
            self.db_state,
            l0=merged_l0,
            last_compacted_wal_sst_id=writer_state.last_compacted_wal_sst_id,
            next_wal_sst_id=writer_state.next_wal_sst_id,
            last_clock_tick=writer_state.last_clock_tick,
        )

    def finish_compaction(self, output_sr: Any) -> None:
        """Replace a finished compaction's sources with its output sorted run."""
        compaction = self._compactions.get(output_sr.id)
        if compaction is None:
            return
        _log.info("finished compaction: %s", compaction)
        if not compaction.sources:
            raise ValueError("illegal: empty compaction")
        compacted_l0s = {
            sst_id
            for source in compaction.sources
            if (sst_id := source.maybe_unwrap_sst()) is not None
        }
        compacted_srs = {
            run_id
            for source in [*compaction.sources, SourceId.sorted_run(compaction.destination)]
            if (run_id := source.maybe_unwrap_sorted_run()) is not None
        }
        new_l0 = deque(
            handle
            for handle in self.db_state.l0
            if handle.id.unwrap_compacted_id() not in compacted_l0s
        )
        new_compacted: list[Any] = []
        inserted = False
        for run in self.db_state.compacted:
            if not inserted and output_sr.id >= run.id:
                new_compacted.append(output_sr)
                inserted = True
            if run.id not in compacted_srs:
                new_compacted.append(run)
        if not inserted:
            new_compacted.append(output_sr)
        _check_ids_descending(new_compacted)

        changes: dict[str, Any] = {"l0": new_l0, "compacted": new_compacted}
        newest_l0 = compaction.sources[0].maybe_unwrap_sst()
        if newest_l0 is not None:
            # the newest compacted L0 table is expected first among the sources
            changes["l0_last_compacted"] = newest_l0
        self.db_state = _with_fields(self.db_state, **changes)
        del self._compactions[output_sr.id]