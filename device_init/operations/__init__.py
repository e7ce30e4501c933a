"""Manifest operations and their progress events."""

from device_init.operations.events import (
    BurnEvent,
    EndEvent,
    ErrorEvent,
    Event,
    OutputEvent,
    ProgressStream,
    StateEvent,
)
from device_init.operations.executor import (
    OperationError,
    ScriptExecutionError,
    execute,
    run_operations,
)

__all__ = [
    # Events
    "BurnEvent",
    "EndEvent",
    "ErrorEvent",
    "Event",
    "OutputEvent",
    "ProgressStream",
    "StateEvent",
    # Executor
    "OperationError",
    "ScriptExecutionError",
    "execute",
    "run_operations",
]
