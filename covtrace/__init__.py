"""Coverage trace maps and a state machine for running instrumented test binaries."""

__version__ = "0.1.0"
__all__ = ["traces", "statemachine", "instrumented"]