import logging
import os
import subprocess
import sys
from pathlib import Path

import pytest

from shipyard.distribution import ExclusiveLock, FileLock, ReloadLock
from shipyard.distribution._lock import _ScopedLock
from shipyard.exceptions import LockHeldError


class TestReloadLock:
    def test_counts_holders(self):
        lock = ReloadLock()
        assert isinstance(lock, ExclusiveLock)
        assert not lock.locked

        lock.acquire()
        lock.acquire()
        assert lock.locked
        assert lock.count == 2

        lock.release()
        assert lock.locked
        lock.release()
        assert not lock.locked

    def test_over_release_warns(self, caplog: pytest.LogCaptureFixture):
        lock = ReloadLock()
        with caplog.at_level(logging.WARNING):
            lock.release()
        assert lock.count == 0
        assert "released more often" in caplog.text

    def test_context_manager(self):
        lock = ReloadLock()
        with lock:
            assert lock.locked
        assert not lock.locked


def test_lock_base_requires_acquire_and_release():
    class HalfLock(_ScopedLock):
        def acquire(self) -> None:
            pass

    with pytest.raises(TypeError):
        _ScopedLock()
    with pytest.raises(TypeError):
        HalfLock()


class TestFileLock:
    def test_acquire_and_release(self, tmp_path: Path):
        path = tmp_path / "state" / "run.lock"
        lock = FileLock(path)
        assert isinstance(lock, ExclusiveLock)

        lock.acquire()
        assert lock.locked
        assert path.read_text() == str(os.getpid())

        lock.release()
        assert not lock.locked
        assert not path.exists()
        lock.release()  # no-op once released

    def test_held_by_live_process(self, tmp_path: Path):
        path = tmp_path / "run.lock"
        with FileLock(path):
            with pytest.raises(LockHeldError) as exc_info:
                FileLock(path).acquire()
        assert exc_info.value.owner == f"pid {os.getpid()}"
        assert not path.exists()

    def test_reacquire_while_held(self, tmp_path: Path):
        lock = FileLock(tmp_path / "run.lock")
        lock.acquire()
        with pytest.raises(LockHeldError):
            lock.acquire()
        lock.release()

    def test_takes_over_stale_lock(self, tmp_path: Path, caplog):
        # The pid of a reaped child no longer belongs to a live process
        child = subprocess.Popen([sys.executable, "-c", "pass"])
        child.wait()

        path = tmp_path / "run.lock"
        path.write_text(str(child.pid))

        lock = FileLock(path)
        with caplog.at_level(logging.WARNING):
            lock.acquire()
        assert lock.locked
        assert path.read_text() == str(os.getpid())
        assert "stale lock" in caplog.text
        lock.release()

    def test_takes_over_unreadable_lock(self, tmp_path: Path):
        path = tmp_path / "run.lock"
        path.write_text("garbage")
        lock = FileLock(path)
        lock.acquire()
        assert lock.locked
        lock.release()
