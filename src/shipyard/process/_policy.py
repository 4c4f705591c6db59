"""Exit code interpretation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from shipyard.config import config_provider


class ExitStatus(StrEnum):
    SUCCESS = "success"
    CANCELLED = "cancelled"  # Terminated by request, not an error
    FAILURE = "failure"


@dataclass(frozen=True, slots=True)
class ExitCodePolicy:
    """Maps process exit codes to an `ExitStatus`.

    The cancellation codes follow the shell convention of 128 + signal number
    (137 for SIGKILL, 143 for SIGTERM). What a termination code means depends
    on the execution environment, hence the policy is configurable.
    """

    success_codes: tuple[int, ...] = (0,)
    cancellation_codes: tuple[int, ...] = (137, 143)

    @classmethod
    def from_config(cls) -> "ExitCodePolicy":
        process_config = config_provider.get().process
        return cls(
            success_codes=tuple(process_config.success_exit_codes),
            cancellation_codes=tuple(process_config.cancellation_exit_codes),
        )

    def classify(self, exit_code: int) -> ExitStatus:
        if exit_code in self.success_codes:
            return ExitStatus.SUCCESS
        if exit_code in self.cancellation_codes:
            return ExitStatus.CANCELLED
        return ExitStatus.FAILURE


def normalize_exit_code(returncode: int) -> int:
    """Convert Popen's negative "killed by signal N" codes to 128 + N."""
    if returncode < 0:
        return 128 - returncode
    return returncode
