"""Polling checkpoint tasks.

The scheduler has no timers of its own. Deadlines and waits are layered on
top as tasks that yield until their condition holds.
"""

from __future__ import annotations

import time
from typing import Callable, Generator

from shipyard.scheduler._cancellation import CancellationToken


def wait_until(
    predicate: Callable[[], bool],
    token: CancellationToken | None = None,
    timeout: float | None = None,
) -> Generator[None, None, bool]:
    """Yield until `predicate()` holds.

    Returns:
        True if the predicate held, False on timeout or cancellation.
    """
    deadline = None if timeout is None else time.monotonic() + timeout
    while not predicate():
        if token is not None and token.cancelled:
            return False
        if deadline is not None and time.monotonic() >= deadline:
            return False
        yield None
    return True


def sleep(
    seconds: float, token: CancellationToken | None = None
) -> Generator[None, None, bool]:
    """Yield for at least `seconds`.

    Returns:
        True if the full duration elapsed, False if cancelled first.
    """
    deadline = time.monotonic() + seconds
    while time.monotonic() < deadline:
        if token is not None and token.cancelled:
            return False
        yield None
    return True
