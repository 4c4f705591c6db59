"""Cooperative scheduling core.

- Task: generator wrapper with identity, checkpoint value and result
- Scheduler: single-threaded driver with delegation and result handoff
- CancellationToken: cooperative cancellation hooks for one run
- Tick sources: BlockingTickSource (sync hosts), AsyncioTickSource (asyncio)
- Checkpoint helpers: sleep(), wait_until()
"""

from shipyard.scheduler._cancellation import CancellationToken, CancelHook
from shipyard.scheduler._helpers import sleep, wait_until
from shipyard.scheduler._scheduler import (
    Scheduler,
    SchedulerProvider,
    scheduler_provider,
    zero_value,
)
from shipyard.scheduler._task import Task, TaskGenerator, is_delegation
from shipyard.scheduler._tick import (
    AsyncioTickSource,
    BlockingTickSource,
    TickCallback,
    TickSource,
)

__all__ = [
    "AsyncioTickSource",
    "BlockingTickSource",
    "CancelHook",
    "CancellationToken",
    "Scheduler",
    "SchedulerProvider",
    "Task",
    "TaskGenerator",
    "TickCallback",
    "TickSource",
    "is_delegation",
    "scheduler_provider",
    "sleep",
    "wait_until",
    "zero_value",
]
