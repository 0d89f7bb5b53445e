"""Coverage traces: per-line statistics grouped by source file."""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from operator import attrgetter
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

PathLike = Union[str, Path]

_by_line = attrgetter("line")


@dataclass(frozen=True)
class LogicState:
    """Whether a logical condition has been seen true and/or false."""

    been_true: bool = False
    been_false: bool = False

    def __add__(self, other: "LogicState") -> "LogicState":
        if not isinstance(other, LogicState):
            return NotImplemented
        return LogicState(
            been_true=self.been_true or other.been_true,
            been_false=self.been_false or other.been_false,
        )


class CoverageStat:
    """Base of the kinds of coverage data a trace can hold."""

    def __add__(self, other: "CoverageStat") -> "CoverageStat":
        if not isinstance(other, CoverageStat):
            return NotImplemented
        if isinstance(self, LineStat) and isinstance(other, LineStat):
            return LineStat(self.hits + other.hits)
        if isinstance(self, BranchStat) and isinstance(other, BranchStat):
            return BranchStat(self.state + other.state)
        # Mismatched or non-summable kinds keep the left-hand value.
        return self

    def __str__(self) -> str:
        if isinstance(self, LineStat):
            return f"hits: {self.hits}"
        return ""


@dataclass(frozen=True)
class LineStat(CoverageStat):
    """Line coverage: number of times the line was hit."""

    hits: int = 0


@dataclass(frozen=True)
class BranchStat(CoverageStat):
    """Branch coverage: whether the branch was taken both ways."""

    state: LogicState = field(default_factory=LogicState)


@dataclass(frozen=True)
class ConditionStat(CoverageStat):
    """Condition coverage: one logic state per boolean subcondition."""

    states: tuple = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "states", tuple(self.states))


@dataclass
class Trace:
    """A coverable point in a source file."""

    line: int
    address: set = field(default_factory=set)
    length: int = 0
    stats: CoverageStat = field(default_factory=LineStat)
    fn_name: Optional[str] = None

    @classmethod
    def stub(cls, line: int) -> "Trace":
        """A trace for a line with no known addresses."""
        return cls(line=line)

    def __lt__(self, other: "Trace") -> bool:
        if not isinstance(other, Trace):
            return NotImplemented
        return self.line < other.line


@dataclass(frozen=True, order=True)
class Location:
    """A file and line in the source."""

    file: Path
    line: int


def amount_coverable(traces: Iterable[Trace]) -> int:
    """Number of coverable points in the given traces."""
    total = 0
    for trace in traces:
        stats = trace.stats
        if isinstance(stats, BranchStat):
            total += 2
        elif isinstance(stats, ConditionStat):
            total += 2 * len(stats.states)
        else:
            total += 1
    return total


def _covered(stats: CoverageStat) -> int:
    if isinstance(stats, BranchStat):
        return int(stats.state.been_true) + int(stats.state.been_false)
    if isinstance(stats, ConditionStat):
        return sum(int(s.been_true) + int(s.been_false) for s in stats.states)
    if isinstance(stats, LineStat):
        return int(stats.hits > 0)
    return 0


def amount_covered(traces: Iterable[Trace]) -> int:
    """Number of covered points in the given traces."""
    return sum(_covered(trace.stats) for trace in traces)


def coverage_percentage(traces: Iterable[Trace]) -> float:
    """Covered fraction (0.0-1.0); NaN when nothing is coverable."""
    collected = list(traces)
    coverable = amount_coverable(collected)
    covered = amount_covered(collected)
    if coverable == 0:
        return math.nan
    return covered / coverable


class TraceMap:
    """All traces of a program, keyed by source file."""

    def __init__(self) -> None:
        self._traces: dict[Path, list[Trace]] = {}

    def is_empty(self) -> bool:
        """True if no files are recorded."""
        return not self._traces

    def __iter__(self) -> Iterator[Path]:
        return iter(sorted(self._traces))

    def items(self) -> Iterator[tuple[Path, list[Trace]]]:
        """Pairs of file and its traces, in file order."""
        for path in sorted(self._traces):
            yield path, self._traces[path]

    def merge(self, other: "TraceMap") -> None:
        """Add missing records from other and sum stats of matching ones."""
        for path, values in other.items():
            existing = self._traces.get(path)
            if existing is None:
                self._traces[path] = copy.deepcopy(values)
                continue
            for value in values:
                match = next(
                    (
                        t
                        for t in existing
                        if t.line == value.line and t.address == value.address
                    ),
                    None,
                )
                if match is not None:
                    match.stats = match.stats + value.stats
                else:
                    existing.append(copy.deepcopy(value))
                    existing.sort(key=_by_line)

    def dedup(self) -> None:
        """Collapse traces on the same line into one, summing their stats.

        The addresses of the dropped duplicates are lost.
        """
        for path, values in self._traces.items():
            lines: dict[int, CoverageStat] = {}
            dirty: list[int] = []
            for value in values:
                if value.line in lines:
                    dirty.append(value.line)
                    lines[value.line] = lines[value.line] + value.stats
                else:
                    lines[value.line] = value.stats
            for line in dirty:
                kept: list[Trace] = []
                seen = False
                for trace in values:
                    if trace.line != line:
                        kept.append(trace)
                    elif not seen:
                        seen = True
                        kept.append(trace)
                values[:] = kept
                new_stat = lines.pop(line, None)
                if new_stat is not None:
                    first = next((t for t in values if t.line == line), None)
                    if first is not None:
                        first.stats = new_stat

    def add_trace(self, file: PathLike, trace: Trace) -> None:
        """Add a trace for the given file."""
        traces = self._traces.setdefault(Path(file), [])
        traces.append(trace)
        traces.sort(key=_by_line)

    def add_file(self, file: PathLike) -> None:
        """Record a file, with no traces if it is new."""
        self._traces.setdefault(Path(file), [])

    def get_trace(self, address: int) -> Optional[Trace]:
        """The first trace at the address, or None."""
        return next((t for t in self.all_traces() if address in t.address), None)

    def increment_hit(self, address: int) -> None:
        """Add one hit to every line trace at the address."""
        for trace in self.all_traces():
            if address in trace.address and isinstance(trace.stats, LineStat):
                trace.stats = LineStat(trace.stats.hits + 1)

    def get_location(self, address: int) -> Optional[Location]:
        """The location whose 8-byte aligned address matches, or None."""
        for path, traces in self.items():
            for trace in traces:
                if any((a & ~0x7) == address for a in trace.address):
                    return Location(file=path, line=trace.line)
        return None

    def contains_location(self, file: PathLike, line: int) -> bool:
        """True if the file has a trace on the line."""
        traces = self._traces.get(Path(file))
        return traces is not None and any(t.line == line for t in traces)

    def contains_file(self, file: PathLike) -> bool:
        """True if the file is recorded."""
        return Path(file) in self._traces

    def get_child_traces(self, root: PathLike) -> Iterator[Trace]:
        """All traces in files at or below root."""
        root = Path(root)
        for path, traces in self.items():
            if path == root or root in path.parents:
                yield from traces

    def get_traces(self, root: PathLike) -> Iterator[Trace]:
        """Traces of a file, or of the files directly inside a folder."""
        root = Path(root)
        if root.is_file():
            yield from self.get_child_traces(root)
            return
        for path, traces in self.items():
            if path != path.parent and path.parent == root:
                yield from traces

    def all_traces(self) -> Iterator[Trace]:
        """Every trace, in file order."""
        for _, traces in self.items():
            yield from traces

    def files(self) -> list[Path]:
        """The recorded files in order."""
        return sorted(self._traces)

    def coverable_in_path(self, path: PathLike) -> int:
        """Coverable points below the path."""
        return amount_coverable(self.get_child_traces(path))

    def covered_in_path(self, path: PathLike) -> int:
        """Covered points below the path."""
        return amount_covered(self.get_child_traces(path))

    def total_coverable(self) -> int:
        """Coverable points in the whole map."""
        return amount_coverable(self.all_traces())

    def total_covered(self) -> int:
        """Covered points in the whole map."""
        return amount_covered(self.all_traces())

    def coverage_percentage(self) -> float:
        """Covered fraction of the whole map, 0.0-1.0."""
        return coverage_percentage(self.all_traces())