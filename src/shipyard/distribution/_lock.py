"""Exclusive locks held while a distribution is running."""

from __future__ import annotations

import abc
import logging
import os
import typing
from pathlib import Path
from types import TracebackType
from typing import Self

from shipyard.exceptions import LockHeldError

logger = logging.getLogger(__name__)


@typing.runtime_checkable
class ExclusiveLock(typing.Protocol):
    """Lock acquired when a run starts and released on every exit path."""

    @property
    def locked(self) -> bool: ...

    def acquire(self) -> None: ...

    def release(self) -> None: ...


class _ScopedLock(abc.ABC):
    @abc.abstractmethod
    def acquire(self) -> None: ...

    @abc.abstractmethod
    def release(self) -> None: ...

    def __enter__(self) -> Self:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.release()


class ReloadLock(_ScopedLock):
    """Counting in-process lock.

    Suspends anything that must not happen mid-run (e.g. hot reloading the
    host program) for as long as at least one holder remains. Check `locked`
    before reloading.
    """

    def __init__(self) -> None:
        self._count = 0

    @property
    def locked(self) -> bool:
        return self._count > 0

    @property
    def count(self) -> int:
        return self._count

    def acquire(self) -> None:
        self._count += 1

    def release(self) -> None:
        if self._count == 0:
            logger.warning("ReloadLock released more often than acquired")
            return
        self._count -= 1


class FileLock(_ScopedLock):
    """Cross-process lock file holding the owner's pid.

    A lock file left behind by a process that no longer exists is considered
    stale and taken over.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._held = False

    @property
    def locked(self) -> bool:
        return self._held

    def acquire(self) -> None:
        if self._held:
            raise LockHeldError(str(self.path), owner=f"pid {os.getpid()}")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._create()
        except FileExistsError:
            owner = self._read_owner()
            if owner is not None and _pid_alive(owner):
                raise LockHeldError(str(self.path), owner=f"pid {owner}")
            logger.warning(f"Removing stale lock {self.path} (owner {owner})")
            self.path.unlink(missing_ok=True)
            try:
                self._create()
            except FileExistsError:
                raise LockHeldError(str(self.path))
        self._held = True

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        try:
            self.path.unlink()
        except FileNotFoundError:
            logger.warning(f"Lock file {self.path} disappeared while held")

    def _create(self) -> None:
        fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))

    def _read_owner(self) -> int | None:
        try:
            return int(self.path.read_text().strip())
        except (OSError, ValueError):
            return None


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True
