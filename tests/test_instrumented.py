import subprocess
import sys

import pytest

from covtrace import instrumented as ins
from covtrace import statemachine as sm
from covtrace.traces import TraceMap


class FakeChild:
    def __init__(self, status):
        self.status = status

    def wait(self):
        return self.status


def run_to_end(state, data):
    while not state.is_finished():
        state = state.step(data, 30)
    return state


def test_real_process_exit_code(tmp_path):
    child = subprocess.Popen([sys.executable, "-c", "import sys; sys.exit(3)"])
    handle = ins.ProcessHandle(child, tmp_path / "bin")
    state, data = ins.create_state_machine(handle, TraceMap(), tmp_path)
    assert state.kind is sm.StateKind.START
    final = run_to_end(state, data)
    assert final == sm.TestState.end(3)


def test_signal_exit_maps_to_one(tmp_path):
    handle = ins.ProcessHandle(FakeChild(-9), tmp_path / "bin")
    data = ins.LlvmInstrumentedData(handle, TraceMap(), tmp_path)
    assert data.wait() == sm.TestState.end(1)
    assert data.process is None


def test_new_profraws_are_found(tmp_path):
    old = tmp_path / "old.profraw"
    old.write_bytes(b"")
    new = tmp_path / "new.profraw"
    new.write_bytes(b"")
    (tmp_path / "other.txt").write_text("x")
    (tmp_path / "dir.profraw").mkdir()
    handle = ins.ProcessHandle(FakeChild(0), tmp_path / "bin", frozenset([old]))
    data = ins.LlvmInstrumentedData(handle, TraceMap(), tmp_path)
    assert data.wait() == sm.TestState.end(0)
    assert data.profraws == [new]


def test_wait_without_process(tmp_path):
    data = ins.LlvmInstrumentedData(None, TraceMap(), tmp_path)
    with pytest.raises(sm.TestCoverageError, match="Test was not launched"):
        data.wait()


def test_wait_twice_fails(tmp_path):
    handle = ins.ProcessHandle(FakeChild(0), tmp_path / "bin")
    data = ins.LlvmInstrumentedData(handle, TraceMap(), tmp_path)
    data.wait()
    with pytest.raises(sm.TestCoverageError):
        data.wait()


def test_start_moves_to_waiting(tmp_path):
    data = ins.LlvmInstrumentedData(None, TraceMap(), tmp_path)
    assert data.start().kind is sm.StateKind.WAITING


@pytest.mark.parametrize("method", ["init", "stop"])
def test_unused_steps_raise(tmp_path, method):
    data = ins.LlvmInstrumentedData(None, TraceMap(), tmp_path)
    with pytest.raises(sm.StateMachineError) as excinfo:
        getattr(data, method)()
    assert issubclass(excinfo.type, sm.RunError)
    assert data.start().kind is sm.StateKind.WAITING


def test_pid_handle_is_rejected(tmp_path):
    state, data = ins.create_state_machine(1234, TraceMap(), tmp_path)
    assert state == sm.TestState.end(1)
    with pytest.raises(sm.TestCoverageError):
        data.wait()


@pytest.mark.parametrize("engine", [ins.TraceEngine.PTRACE, ins.TraceEngine.AUTO])
def test_unsupported_engines(tmp_path, engine):
    handle = ins.ProcessHandle(FakeChild(0), tmp_path / "bin")
    state, data = ins.create_state_machine(handle, TraceMap(), tmp_path, engine)
    assert state == sm.TestState.end(1)
    with pytest.raises(sm.StateMachineError):
        data.start()


def test_traces_are_kept(tmp_path):
    traces = TraceMap()
    handle = ins.ProcessHandle(FakeChild(0), tmp_path / "bin")
    _, data = ins.create_state_machine(handle, traces, tmp_path)
    assert data.traces is traces
    assert data.root == tmp_path