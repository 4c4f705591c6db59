"""External process execution integrated with the cooperative scheduler.

`ProcessRunner.start()` spawns a command and returns a wait task that yields
once per tick until the process has exited and its output has been drained.
Output lines are read by background threads but handed to the caller's sinks
from the wait task, i.e. on the scheduler thread.
"""

from __future__ import annotations

import logging
import os
import queue
import shlex
import signal
import subprocess
import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Generator, NamedTuple, cast

from shipyard.exceptions import ProcessFailure
from shipyard.process._policy import ExitCodePolicy, ExitStatus, normalize_exit_code
from shipyard.scheduler import CancellationToken, Task

logger = logging.getLogger(__name__)

LineSink = Callable[[str], None]

EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127

_STDOUT = "stdout"
_STDERR = "stderr"


@dataclass(frozen=True, slots=True)
class ProcessResult:
    """Outcome of `ProcessRunner.execute()`."""

    command: str
    exit_code: int
    status: ExitStatus
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.status == ExitStatus.SUCCESS

    @property
    def cancelled(self) -> bool:
        return self.status == ExitStatus.CANCELLED

    def check(self) -> "ProcessResult":
        """Raise `ProcessFailure` if the process failed."""
        if self.status == ExitStatus.FAILURE:
            raise ProcessFailure(self.command, self.exit_code, self.stderr)
        return self


class StartedProcess(NamedTuple):
    """A spawned process: its wait task and its cancellation hook."""

    wait: Task
    cancel: Callable[[bool], None]


class _OutputPump:
    """Reads one stream line by line on a daemon thread into a shared queue."""

    def __init__(
        self, stream: IO[str], kind: str, lines: "queue.Queue[tuple[str, str | None]]"
    ) -> None:
        self._stream = stream
        self._kind = kind
        self._lines = lines
        self._thread = threading.Thread(
            target=self._run, name=f"shipyard-{kind}-pump", daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        try:
            for line in self._stream:
                self._lines.put((self._kind, line.rstrip("\r\n")))
        finally:
            self._stream.close()
            # End of stream marker
            self._lines.put((self._kind, None))


def _write_input(stream: IO[str], text: str) -> None:
    try:
        with stream:
            stream.write(text)
    except BrokenPipeError:
        logger.debug("Process exited before consuming its input")


class ProcessRunner:
    """Starts external processes as scheduler tasks.

    Args:
        policy: Exit code interpretation. Defaults to the configured policy.
    """

    def __init__(self, policy: ExitCodePolicy | None = None) -> None:
        self.policy = policy or ExitCodePolicy.from_config()

    def start(
        self,
        command: str | Path,
        arguments: str | Sequence[str] = "",
        input: str | None = None,
        on_output: LineSink | None = None,
        on_error: LineSink | None = None,
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> StartedProcess:
        """Spawn `command` with `arguments`.

        Args:
            command: Executable path or name.
            arguments: Argument string (split with shlex) or sequence.
            input: Optional text piped to standard input.
            on_output: Called with every standard output line.
            on_error: Called with every standard error line.

        Returns:
            The wait task (completes with the exit code) and a cancel hook.
            `cancel(True)` kills the process, `cancel(False)` asks it to
            terminate.
        """
        argv = [str(command), *_split_arguments(arguments)]
        command_text = _format_command(argv)
        use_process_group = os.name != "nt"

        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE if input is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=str(cwd) if cwd is not None else None,
                env=dict(env) if env is not None else None,
                text=True,
                errors="replace",
                bufsize=1,
                start_new_session=use_process_group,
            )
        except OSError as e:
            if isinstance(e, PermissionError):
                exit_code = EXIT_NOT_EXECUTABLE
            else:
                exit_code = EXIT_NOT_FOUND
            logger.debug(f"Could not start {command_text}: {e}")
            wait = Task(
                _spawn_failed(str(e), exit_code, on_error), name=f"wait:{command_text}"
            )
            return StartedProcess(wait=wait, cancel=_noop_cancel)

        logger.debug(f"Started {command_text} (pid {process.pid})")

        lines: queue.Queue[tuple[str, str | None]] = queue.Queue()
        # All three streams are pipes
        _OutputPump(cast(IO[str], process.stdout), _STDOUT, lines)
        _OutputPump(cast(IO[str], process.stderr), _STDERR, lines)
        if input is not None:
            threading.Thread(
                target=_write_input,
                args=(cast(IO[str], process.stdin), input),
                name="shipyard-stdin-writer",
                daemon=True,
            ).start()

        def cancel(force: bool = True) -> None:
            if process.poll() is not None:
                return
            logger.debug(
                f"{'Killing' if force else 'Terminating'} {command_text} "
                f"(pid {process.pid})"
            )
            try:
                if use_process_group:
                    os.killpg(
                        process.pid, signal.SIGKILL if force else signal.SIGTERM
                    )
                elif force:
                    process.kill()
                else:
                    process.terminate()
            except ProcessLookupError:
                pass  # Exited in the meantime

        wait = Task(
            _wait_for_exit(process, lines, on_output, on_error),
            name=f"wait:{command_text}",
        )
        return StartedProcess(wait=wait, cancel=cancel)

    def execute(
        self,
        command: str | Path,
        arguments: str | Sequence[str] = "",
        input: str | None = None,
        on_output: LineSink | None = None,
        on_error: LineSink | None = None,
        *,
        token: CancellationToken | None = None,
        label: str | None = None,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> Generator[Any, Any, ProcessResult]:
        """Task running a process to completion while capturing its output.

        The cancel hook is registered on `token` while the process runs.
        Failures (per the exit code policy) are logged once with the captured
        output; cancellations are not.
        """
        stdout_lines: list[str] = []
        stderr_lines: list[str] = []

        def collect_output(line: str) -> None:
            stdout_lines.append(line)
            if on_output is not None:
                on_output(line)

        def collect_error(line: str) -> None:
            stderr_lines.append(line)
            if on_error is not None:
                on_error(line)

        started = self.start(
            command,
            arguments,
            input,
            collect_output,
            collect_error,
            cwd=cwd,
            env=env,
        )
        unregister = token.register(started.cancel) if token is not None else None
        try:
            exit_code = yield started.wait
        except GeneratorExit:
            started.cancel(True)
            raise
        finally:
            if unregister is not None:
                unregister()

        status = self.policy.classify(exit_code)
        result = ProcessResult(
            command=_format_command(
                [str(command), *_split_arguments(arguments)]
            ),
            exit_code=exit_code,
            status=status,
            stdout="\n".join(stdout_lines),
            stderr="\n".join(stderr_lines),
        )

        if status == ExitStatus.FAILURE:
            logger.error(
                f"{label or 'shipyard'}: Failed to execute {Path(command).name}: "
                f"{result.stderr}\nOutput: {result.stdout}"
            )
        elif status == ExitStatus.CANCELLED:
            logger.info(
                f"{label or 'shipyard'}: {Path(command).name} was cancelled "
                f"(exit code {exit_code})"
            )
        return result


def _wait_for_exit(
    process: subprocess.Popen[str],
    lines: "queue.Queue[tuple[str, str | None]]",
    on_output: LineSink | None,
    on_error: LineSink | None,
) -> Generator[None, None, int]:
    open_streams = 2
    while True:
        open_streams -= _dispatch_lines(lines, on_output, on_error)
        if open_streams == 0 and process.poll() is not None:
            break
        yield None
    return normalize_exit_code(process.returncode)


def _dispatch_lines(
    lines: "queue.Queue[tuple[str, str | None]]",
    on_output: LineSink | None,
    on_error: LineSink | None,
) -> int:
    """Deliver queued lines to the sinks, returning the number of closed streams."""
    closed = 0
    while True:
        try:
            kind, line = lines.get_nowait()
        except queue.Empty:
            return closed
        if line is None:
            closed += 1
            continue
        sink = on_output if kind == _STDOUT else on_error
        if sink is not None:
            sink(line)


def _spawn_failed(
    message: str, exit_code: int, on_error: LineSink | None
) -> Generator[None, None, int]:
    yield from ()
    if on_error is not None:
        on_error(message)
    return exit_code


def _noop_cancel(force: bool = True) -> None:
    pass


def _split_arguments(arguments: str | Sequence[str]) -> list[str]:
    if isinstance(arguments, str):
        return shlex.split(arguments)
    return [str(argument) for argument in arguments]


def _format_command(argv: Sequence[str]) -> str:
    return shlex.join([str(part) for part in argv])
