"""Shipyard exceptions.

This module provides the exception hierarchy shared by the scheduler, the
process runner and the distribution layer. Recoverable failures (builds,
processes) are converted to boolean outcomes by the distribution; contract
violations are meant to propagate.
"""


class ShipyardError(Exception):
    """Base exception for all Shipyard errors."""

    pass


class SchedulerError(ShipyardError):
    """Scheduler API misuse.

    These are programming errors, not runtime conditions. The scheduler does
    not contain them: the offending task chain is discarded and the error
    propagates out of `submit()` / `tick()`.
    """

    pass


class InvalidStateError(SchedulerError):
    """Raised when the last-result slot is read outside its valid window.

    The slot may only be read by a parent task while it is being resumed
    because one of its delegated children completed, and before it yields
    again.
    """

    def __init__(self, message: str | None = None):
        super().__init__(
            message
            or (
                "get_last_result() can only be called in the parent task right "
                "after the delegated task finished."
            )
        )


class BuildFailure(ShipyardError):
    """The artifact producer failed to build a target.

    Attributes:
        target: Name of the target that failed to build.
        message: Error message reported by the producer.
    """

    def __init__(self, target: str, message: str):
        self.target = target
        self.message = message
        super().__init__(f"Build of '{target}' failed: {message}")


class ProcessFailure(ShipyardError):
    """An external process exited with a failure code.

    The process runner reports exit codes as data. This is only raised when a
    caller opts in with `ProcessResult.check()`.

    Attributes:
        command: The command that was executed.
        exit_code: The process exit code.
        stderr: Captured standard error.
    """

    def __init__(self, command: str, exit_code: int, stderr: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        parts = [f"Command '{command}' failed with exit code {exit_code}"]
        if stderr:
            parts.append(stderr.strip())
        super().__init__(": ".join(parts))


class LockHeldError(ShipyardError):
    """The exclusive run lock is held by someone else."""

    def __init__(self, path: str, owner: str | None = None):
        self.path = path
        self.owner = owner
        msg = f"Lock '{path}' is already held"
        if owner:
            msg += f" by {owner}"
        super().__init__(msg)
