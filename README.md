# covtrace

`covtrace` keeps track of code coverage data gathered while a test binary
runs, and drives the run through a small state machine.

## Installation

```
pip install covtrace
```

To run the test suite:

```
pip install "covtrace[test]"
pytest
```

## Trace maps (`covtrace.traces`)

A `TraceMap` maps source files (`pathlib.Path`) to lists of `Trace` objects,
kept sorted by line. A `Trace` holds a `line`, a set of instruction
addresses in `address`, a `length`, an optional `fn_name` and a coverage
statistic in `stats`, which is one of:

- `LineStat(hits)` – how many times the line was hit;
- `BranchStat(state)` – a `LogicState(been_true, been_false)` for a branch;
- `ConditionStat(states)` – one `LogicState` per boolean sub-condition.

Adding two `LogicState`s ORs their flags. Adding two `LineStat`s sums the
hits and adding two `BranchStat`s adds their states; any other pairing keeps
the left-hand value. `str(LineStat(3))` is `"hits: 3"`; other stats print
as an empty string.

```python
from pathlib import Path
from covtrace.traces import TraceMap, Trace, LineStat

traces = TraceMap()
traces.add_trace(Path("src/lib.rs"), Trace(line=4, address={0x1000}, stats=LineStat(0)))
traces.add_trace(Path("src/lib.rs"), Trace.stub(5))

traces.increment_hit(0x1000)
print(traces.total_covered(), "/", traces.total_coverable())   # 1 / 2
print(traces.coverage_percentage())                              # 0.5
```

A line counts as one coverable point, a branch as two, and a condition as
two per sub-condition. `coverage_percentage` returns a fraction between 0.0
and 1.0, or NaN when nothing is coverable.

Other operations:

- `merge(other)` copies files and traces missing from this map, and sums the
  stats of traces with the same line and the same address set.
- `dedup()` collapses traces on the same line into the first of them,
  summing their stats; the addresses of the dropped traces are lost.
- `add_file`, `contains_file`, `contains_location(file, line)`, `files()`,
  `is_empty()`, iteration over files and `items()`.
- `get_trace(address)` returns the first trace holding the address;
  `increment_hit(address)` adds a hit to every line trace holding it;
  `get_location(address)` returns a `Location(file, line)` for the first
  trace with an address that, rounded down to a multiple of 8, equals the
  given one.
- `get_child_traces(root)` yields the traces of every file at or below
  `root`; `get_traces(root)` yields those of `root` itself if it is an
  existing file, otherwise those of files directly inside it.
- `coverable_in_path`, `covered_in_path`, `total_coverable`,
  `total_covered`.

The module-level `amount_coverable`, `amount_covered` and
`coverage_percentage` take any iterable of traces.

## The run state machine (`covtrace.statemachine`)

`TestState` is a frozen value with a `kind` (`StateKind.START`,
`INITIALISE`, `WAITING`, `STOPPED`, `END`), a `start_time` for the start and
waiting states and an exit `code` for the end state. It is built with
`start_state()`, `initialise()`, `wait_state()`, `stopped()` and `end(code)`.

`state.step(data, timeout)` calls the matching method of a `StateData`
implementation (`start`, `init`, `wait` or `stop`) and returns the next
state. When `start` or `wait` return `None` the state is kept, and once
`timeout` (seconds, or a `timedelta`) has passed since the state was created
a `TestRuntimeError` is raised. An ended state steps to itself.

`NullStateData` raises `StateMachineError` from every method.
`TracerAction(kind, data)` pairs an `ActionKind` with a process handle;
`get_data()` gives `None` for `ActionKind.NOTHING`.

All errors derive from `RunError`: `TestRuntimeError`, `StateMachineError`
and `TestCoverageError`.

## Instrumented binaries (`covtrace.instrumented`)

`create_state_machine(test, traces, root, engine=TraceEngine.LLVM)` returns
the first state and the state data for a run:

- with `TraceEngine.LLVM` and a `ProcessHandle`, a start state and an
  `LlvmInstrumentedData`;
- with `TraceEngine.LLVM` and anything else, an end state with code 1;
- with `TraceEngine.PTRACE` or `TraceEngine.AUTO`, an end state with code 1
  and a `NullStateData`.

`LlvmInstrumentedData.wait()` waits for the process, collects the new
`.profraw` files in `root` (those not listed in the handle's
`existing_profraws`) into its `profraws` attribute, logs them, and returns
an end state with the process's exit status, or 1 if the status is negative
or missing. Waiting without a process raises `TestCoverageError`; an
`OSError` is raised as `RunError`.

```python
import subprocess
from pathlib import Path
from covtrace.instrumented import ProcessHandle, TraceEngine, create_state_machine
from covtrace.traces import TraceMap

root = Path(".").resolve()
binary = root / "target" / "debug" / "my_tests"
existing = set(root.glob("*.profraw"))
child = subprocess.Popen([str(binary)], cwd=root)
handle = ProcessHandle(child=child, path=binary, existing_profraws=existing)

state, data = create_state_machine(handle, TraceMap(), root, TraceEngine.LLVM)
while not state.is_finished():
    state = state.step(data, timeout=60.0)
print("exit code:", state.code)
print("profiles:", data.profraws)
```

## What this package does not do

- It has no command-line tool; it is used as a library.
- It does not build test binaries, read debug information or profile data,
  or fill a `TraceMap` from them: traces are added by the caller.
- It has no breakpoint-based (ptrace) collector; that engine always ends at
  once with code 1.
- It writes no coverage reports.