"""Tick sources driving `Scheduler.tick()`.

A scheduler subscribes its `tick` method while it has active tasks and
unsubscribes once idle, so a host never polls an idle scheduler.
"""

from __future__ import annotations

import asyncio
import time
import typing
from typing import Any, Callable, Protocol

from shipyard.config import config_provider
from shipyard.exceptions import SchedulerError

if typing.TYPE_CHECKING:
    from shipyard.scheduler._task import Task


TickCallback = Callable[[], None]


class TickSource(Protocol):
    """Periodic callback source (idle loop, frame callback, event loop...)."""

    def subscribe(self, callback: TickCallback) -> None: ...

    def unsubscribe(self, callback: TickCallback) -> None: ...


class BlockingTickSource:
    """Tick source for synchronous hosts such as the CLI.

    Nothing happens until `run_until_idle()` or `run_until_complete()` is
    called; those loop over the subscribed callbacks every `interval` seconds.
    """

    def __init__(self, interval: float | None = None) -> None:
        if interval is None:
            interval = config_provider.get().scheduler.tick_interval
        self.interval = interval
        self._callbacks: list[TickCallback] = []

    def subscribe(self, callback: TickCallback) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unsubscribe(self, callback: TickCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    @property
    def has_subscribers(self) -> bool:
        return bool(self._callbacks)

    def tick(self) -> None:
        """Invoke every subscribed callback once."""
        for callback in list(self._callbacks):
            callback()

    def run_until_idle(self, timeout: float | None = None) -> bool:
        """Tick until nobody is subscribed.

        Returns:
            True once idle, False if `timeout` elapsed first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._callbacks:
            self.tick()
            if not self._callbacks:
                break
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(self.interval)
        return True

    def run_until_complete(self, task: Task, timeout: float | None = None) -> Any:
        """Tick until `task` is done and return its result.

        Raises:
            TimeoutError: If `timeout` elapsed first.
            SchedulerError: If nothing is ticking while the task is pending.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while not task.done:
            if not self._callbacks:
                raise SchedulerError(f"{task!r} is pending but nothing is ticking")
            self.tick()
            if task.done:
                break
            if deadline is not None and time.monotonic() >= deadline:
                raise TimeoutError(f"{task!r} did not complete within {timeout}s")
            time.sleep(self.interval)
        return task.result


class AsyncioTickSource:
    """Tick source scheduling callbacks on an asyncio event loop."""

    def __init__(
        self,
        interval: float | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        if interval is None:
            interval = config_provider.get().scheduler.tick_interval
        self.interval = interval
        self._loop = loop
        self._callbacks: list[TickCallback] = []
        self._handle: asyncio.TimerHandle | None = None

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def subscribe(self, callback: TickCallback) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)
        if self._handle is None:
            self._schedule()

    def unsubscribe(self, callback: TickCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)
        if not self._callbacks and self._handle is not None:
            self._handle.cancel()
            self._handle = None

    @property
    def has_subscribers(self) -> bool:
        return bool(self._callbacks)

    async def wait_idle(self) -> None:
        """Wait until nobody is subscribed."""
        while self._callbacks:
            await asyncio.sleep(self.interval)

    def _schedule(self) -> None:
        self._handle = self.loop.call_later(self.interval, self._fire)

    def _fire(self) -> None:
        self._handle = None
        try:
            for callback in list(self._callbacks):
                callback()
        finally:
            if self._callbacks and self._handle is None:
                self._schedule()
