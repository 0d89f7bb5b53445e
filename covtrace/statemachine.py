"""A state machine driving a traced test executable to completion."""

from __future__ import annotations

import abc
import enum
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional, Union

Timeout = Union[float, int, timedelta]

_NO_COLLECTOR = "No valid coverage collector"


class RunError(Exception):
    """Base of the errors raised while running a test under coverage."""


class TestRuntimeError(RunError):
    """The test executable misbehaved or timed out."""


class StateMachineError(RunError):
    """The state machine reached a state it cannot handle."""


class TestCoverageError(RunError):
    """Coverage could not be collected from the test."""


class StateKind(enum.Enum):
    """The phases a traced test moves through."""

    START = "start"
    INITIALISE = "initialise"
    WAITING = "waiting"
    STOPPED = "stopped"
    END = "end"


def _seconds(timeout: Timeout) -> float:
    if isinstance(timeout, timedelta):
        return timeout.total_seconds()
    return float(timeout)


@dataclass(frozen=True)
class TestState:
    """Current state of a traced test.

    ``start_time`` is set for the start and waiting states to support
    timeouts; ``code`` holds the exit code of an ended test.
    """

    kind: StateKind
    start_time: Optional[float] = None
    code: Optional[int] = None

    @classmethod
    def start_state(cls) -> "TestState":
        """A start state timed from now."""
        return cls(StateKind.START, start_time=time.monotonic())

    @classmethod
    def wait_state(cls) -> "TestState":
        """A waiting state timed from now."""
        return cls(StateKind.WAITING, start_time=time.monotonic())

    @classmethod
    def initialise(cls) -> "TestState":
        """The state in which the test process gets instrumented."""
        return cls(StateKind.INITIALISE)

    @classmethod
    def stopped(cls) -> "TestState":
        """The state in which a stopped test is examined."""
        return cls(StateKind.STOPPED)

    @classmethod
    def end(cls, code: int) -> "TestState":
        """The final state, carrying the test's exit code."""
        return cls(StateKind.END, code=code)

    def is_finished(self) -> bool:
        """True once the test has ended."""
        return self.kind is StateKind.END

    def _timed_out(self, timeout: Timeout) -> bool:
        started = self.start_time if self.start_time is not None else time.monotonic()
        return time.monotonic() - started >= _seconds(timeout)

    def step(self, data: "StateData", timeout: Timeout) -> "TestState":
        """Advance the machine by one step and return the next state."""
        if self.kind is StateKind.START:
            following = data.start()
            if following is not None:
                return following
            if self._timed_out(timeout):
                raise TestRuntimeError("Error: Timed out when starting test")
            return self
        if self.kind is StateKind.INITIALISE:
            return data.init()
        if self.kind is StateKind.WAITING:
            following = data.wait()
            if following is not None:
                return following
            if self._timed_out(timeout):
                raise TestRuntimeError("Error: Timed out waiting for test response")
            return self
        if self.kind is StateKind.STOPPED:
            return data.stop()
        return self


class ActionKind(enum.Enum):
    """What the tracer should do with a thread or process."""

    TRY_CONTINUE = "try_continue"
    CONTINUE = "continue"
    STEP = "step"
    DETACH = "detach"
    NOTHING = "nothing"


@dataclass(frozen=True)
class TracerAction:
    """An action for the tracer together with the handle it applies to."""

    kind: ActionKind
    data: Any = None

    def get_data(self) -> Any:
        """The handle the action applies to, or None for no action."""
        if self.kind is ActionKind.NOTHING:
            return None
        return self.data


class StateData(abc.ABC):
    """Platform-specific handling of each state of the machine."""

    @abc.abstractmethod
    def start(self) -> Optional[TestState]:
        """Begin tracing; None while still waiting for the test to start."""

    @abc.abstractmethod
    def init(self) -> TestState:
        """Prepare the test for tracing and return the next state."""

    @abc.abstractmethod
    def wait(self) -> Optional[TestState]:
        """Wait for the test; None if there is nothing to do yet."""

    @abc.abstractmethod
    def stop(self) -> TestState:
        """Handle a stop in the test, collecting coverage."""


class NullStateData(StateData):
    """State data for when no coverage collector is available."""

    def start(self) -> Optional[TestState]:
        raise StateMachineError(_NO_COLLECTOR)

    def init(self) -> TestState:
        raise StateMachineError(_NO_COLLECTOR)

    def wait(self) -> Optional[TestState]:
        raise StateMachineError(_NO_COLLECTOR)

    def stop(self) -> TestState:
        raise StateMachineError(_NO_COLLECTOR)