from datetime import timedelta

import pytest

from covtrace import statemachine as sm


class Recorder(sm.StateData):
    def __init__(self, start=None, wait=None):
        self._start = start
        self._wait = wait
        self.calls = []

    def start(self):
        self.calls.append("start")
        return self._start

    def init(self):
        self.calls.append("init")
        return sm.TestState.wait_state()

    def wait(self):
        self.calls.append("wait")
        return self._wait

    def stop(self):
        self.calls.append("stop")
        return sm.TestState.end(0)


def test_start_returns_next_state():
    data = Recorder(start=sm.TestState.initialise())
    following = sm.TestState.start_state().step(data, 60)
    assert following.kind is sm.StateKind.INITIALISE
    assert data.calls == ["start"]


def test_start_pending_keeps_state():
    state = sm.TestState.start_state()
    following = state.step(Recorder(), 60)
    assert following == state


def test_start_timeout():
    with pytest.raises(sm.TestRuntimeError, match="Timed out when starting test"):
        sm.TestState.start_state().step(Recorder(), 0)


def test_wait_timeout_with_timedelta():
    with pytest.raises(sm.TestRuntimeError, match="Timed out waiting for test response"):
        sm.TestState.wait_state().step(Recorder(), timedelta(0))


def test_wait_pending_keeps_state():
    state = sm.TestState.wait_state()
    assert state.step(Recorder(), timedelta(minutes=1)) == state


def test_wait_returns_stopped():
    data = Recorder(wait=sm.TestState.stopped())
    assert sm.TestState.wait_state().step(data, 60).kind is sm.StateKind.STOPPED


def test_initialise_and_stop_delegate():
    data = Recorder()
    assert sm.TestState.initialise().step(data, 60).kind is sm.StateKind.WAITING
    assert sm.TestState.stopped().step(data, 60) == sm.TestState.end(0)
    assert data.calls == ["init", "stop"]


def test_end_is_terminal():
    data = Recorder()
    state = sm.TestState.end(7)
    assert state.step(data, 0) == state
    assert state.is_finished()
    assert data.calls == []


def test_is_finished_only_for_end():
    states = [
        sm.TestState.start_state(),
        sm.TestState.wait_state(),
        sm.TestState.initialise(),
        sm.TestState.stopped(),
    ]
    assert [s.is_finished() for s in states] == [False] * 4


@pytest.mark.parametrize(
    "kind",
    [
        sm.ActionKind.TRY_CONTINUE,
        sm.ActionKind.CONTINUE,
        sm.ActionKind.STEP,
        sm.ActionKind.DETACH,
    ],
)
def test_action_data(kind):
    assert sm.TracerAction(kind, 42).get_data() == 42


def test_nothing_has_no_data():
    assert sm.TracerAction(sm.ActionKind.NOTHING, 42).get_data() is None


@pytest.mark.parametrize("method", ["start", "init", "wait", "stop"])
def test_null_state_data_errors(method):
    with pytest.raises(sm.StateMachineError, match="No valid coverage collector"):
        getattr(sm.NullStateData(), method)()


def test_null_state_data_through_step():
    with pytest.raises(sm.RunError):
        sm.TestState.start_state().step(sm.NullStateData(), 60)


def test_state_data_is_abstract():
    with pytest.raises(TypeError):
        sm.StateData()