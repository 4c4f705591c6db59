"""External process execution for scheduler tasks."""

from shipyard.process._policy import ExitCodePolicy, ExitStatus, normalize_exit_code
from shipyard.process._runner import (
    EXIT_NOT_EXECUTABLE,
    EXIT_NOT_FOUND,
    LineSink,
    ProcessResult,
    ProcessRunner,
    StartedProcess,
)

__all__ = [
    "EXIT_NOT_EXECUTABLE",
    "EXIT_NOT_FOUND",
    "ExitCodePolicy",
    "ExitStatus",
    "LineSink",
    "ProcessResult",
    "ProcessRunner",
    "StartedProcess",
    "normalize_exit_code",
]
