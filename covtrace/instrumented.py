"""State machine for binaries that record their own coverage."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from .statemachine import (
    NullStateData,
    RunError,
    StateData,
    StateMachineError,
    TestCoverageError,
    TestState,
)
from .traces import TraceMap

log = logging.getLogger(__name__)

PathLike = Union[str, Path]


class TraceEngine(enum.Enum):
    """How coverage is collected from a test."""

    AUTO = "auto"
    PTRACE = "ptrace"
    LLVM = "llvm"


@dataclass
class ProcessHandle:
    """A launched test process.

    ``child`` is a process object with a ``wait()`` method returning the
    exit status, such as ``subprocess.Popen``.
    """

    child: Any
    path: Path
    existing_profraws: frozenset = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        self.existing_profraws = frozenset(Path(p) for p in self.existing_profraws)


class LlvmInstrumentedData(StateData):
    """Runs an instrumented binary as a normal process and awaits its exit."""

    def __init__(
        self,
        process: Optional[ProcessHandle],
        traces: TraceMap,
        root: PathLike,
    ) -> None:
        self.process = process
        self.traces = traces
        self.root = Path(root)
        self.profraws: list[Path] = []

    def _strip_base(self, path: Path) -> Path:
        try:
            return path.relative_to(self.root)
        except ValueError:
            return path

    def start(self) -> Optional[TestState]:
        return TestState.wait_state()

    def init(self) -> TestState:
        raise StateMachineError("An instrumented binary has no initialise step")

    def wait(self) -> Optional[TestState]:
        process = self.process
        if process is None:
            raise TestCoverageError("Test was not launched")
        try:
            status = process.child.wait()
            profraws = sorted(
                entry
                for entry in self.root.iterdir()
                if entry.is_file()
                and entry.suffix == ".profraw"
                and entry not in process.existing_profraws
            )
        except OSError as exc:
            raise RunError(str(exc)) from exc
        log.info("For binary: %s", self._strip_base(process.path))
        for prof in profraws:
            log.info("Generated: %s", self._strip_base(prof))
        self.profraws = profraws
        self.process = None
        code = status if status is not None and status >= 0 else 1
        return TestState.end(code)

    def stop(self) -> TestState:
        raise StateMachineError("An instrumented binary is never stopped")


def create_state_machine(
    test: Union[ProcessHandle, int],
    traces: TraceMap,
    root: PathLike,
    engine: TraceEngine = TraceEngine.LLVM,
) -> tuple[TestState, StateData]:
    """The initial state and state data for tracing a test with the engine."""
    if engine is TraceEngine.PTRACE:
        log.error("The ptrace backend is not supported on this system")
        return TestState.end(1), NullStateData()
    if engine is TraceEngine.LLVM:
        if isinstance(test, ProcessHandle):
            return TestState.start_state(), LlvmInstrumentedData(test, traces, root)
        log.error("The llvm cov statemachine requires a process handle")
        return TestState.end(1), LlvmInstrumentedData(None, traces, root)
    log.error("Coverage collection is not currently supported on this system")
    return TestState.end(1), NullStateData()