"""Cooperative single-threaded task scheduler.

The scheduler owns a set of active tasks and advances each of them one
checkpoint per `tick()`. A task that yields another task (delegation) is
parked until the child completes; the child's final value is then sent back
into the parent, which is resumed synchronously in the same pass. Completion
therefore cascades up a chain of finished parents without waiting for further
ticks.

`submit()` and `tick()` must only be called from a single control thread.
"""

from __future__ import annotations

import contextlib
import logging
import typing
from typing import Any, Iterator, TypeVar
from uuid import UUID

from shipyard.exceptions import InvalidStateError, SchedulerError
from shipyard.scheduler._task import Task, TaskGenerator, is_delegation

if typing.TYPE_CHECKING:
    from shipyard.scheduler._tick import TickSource

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ZERO_VALUES: dict[type, Any] = {
    bool: False,
    int: 0,
    float: 0.0,
    str: "",
    bytes: b"",
}


def zero_value(expected_type: type) -> Any:
    """Return the zero value for a type (None for non-scalar types)."""
    return _ZERO_VALUES.get(expected_type)


def _matches(value: Any, expected_type: type) -> bool:
    if value is None:
        return False
    # bool is an int subclass, but a bool result is not an int result
    if isinstance(value, bool) and expected_type is not bool:
        return expected_type is object
    return isinstance(value, expected_type)


class Scheduler:
    """Drives tasks cooperatively.

    Args:
        tick_source: Optional periodic callback source. The scheduler
            subscribes while it has active tasks and unsubscribes when idle.
            Without one, `tick()` must be called by the host.
    """

    def __init__(self, tick_source: TickSource | None = None) -> None:
        self.tick_source = tick_source
        self._active: list[Task] = []
        # child task id -> parked parent task
        self._parents: dict[UUID, Task] = {}
        self._has_last_result = False
        self._last_result: Any = None
        self._subscribed = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(self, task: Task | TaskGenerator) -> bool:
        """Register a new top-level task and advance it once.

        Returns:
            True if the task is still pending, False if it finished
            synchronously (it is then never registered).
        """
        task = Task.of(task)
        self._check_schedulable(task)
        with self._result_window(False):
            self._advance(task)
        self._update_subscription()
        return not task.done

    def tick(self) -> None:
        """Advance every active task by one checkpoint.

        Tasks are processed in reverse registration order so that children
        appended during the pass are not advanced twice and no task is skipped.
        """
        with self._result_window(False):
            for index in range(len(self._active) - 1, -1, -1):
                if index >= len(self._active):
                    continue
                self._advance(self._active[index], index)
        self._update_subscription()

    def get_last_result(
        self, expected_type: type[T] | None = None, default: T | None = None
    ) -> Any:
        """Get the final value of the delegated task that just completed.

        Only valid in the parent task right after the delegated task finished
        and before the parent yields again. Prefer `value = yield child`.

        Args:
            expected_type: Expected type of the result. None returns the raw
                value.
            default: Returned on type mismatch. Defaults to the zero value of
                `expected_type`.

        Raises:
            InvalidStateError: If called outside the valid window.
        """
        if not self._has_last_result:
            raise InvalidStateError()
        value = self._last_result
        if expected_type is None or _matches(value, expected_type):
            return value
        if default is not None:
            return default
        return zero_value(expected_type)

    @property
    def active_tasks(self) -> tuple[Task, ...]:
        """Tasks currently registered for ticking (parked parents excluded)."""
        return tuple(self._active)

    @property
    def is_idle(self) -> bool:
        return not self._active

    def is_parked(self, task: Task) -> bool:
        """Whether the task is waiting on a delegated child."""
        return any(parent.id == task.id for parent in self._parents.values())

    def parent_of(self, task: Task) -> Task | None:
        return self._parents.get(task.id)

    def __len__(self) -> int:
        return len(self._active)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_schedulable(self, task: Task) -> None:
        if task.done:
            raise SchedulerError(f"{task!r} has already finished")
        if task.id in self._parents or task in self._active or self.is_parked(task):
            raise SchedulerError(f"{task!r} is already scheduled")

    def _advance(
        self,
        task: Task,
        index: int | None = None,
        send: Any = None,
        throw: BaseException | None = None,
        handoff: bool = False,
    ) -> None:
        """Advance a task, then follow delegations and completions.

        Descending into newly delegated children and resuming finished parents
        happen in one loop, so chains of any depth complete without growing
        the call stack.

        Args:
            index: Position of `task` in the active list, None if the task is
                not registered.
        """
        while True:
            if handoff:
                with self._result_window(True, send):
                    pending = self._step(task, send)
            else:
                pending = self._step(task, send, throw)

            if pending:
                if index is None:
                    self._activate(task)
                    index = len(self._active) - 1
                child = self._delegated_child(task)
                if child is None:
                    return
                # Park the parent until the child finishes
                del self._active[index]
                self._parents[child.id] = task
                logger.debug(f"{task!r} delegated to {child!r}")
                if not child.done:
                    task, index, send, throw, handoff = child, None, None, None, False
                    continue
                finished = child
            else:
                if index is not None:
                    del self._active[index]
                finished = task

            parent = self._parents.pop(finished.id, None)
            if parent is None:
                self._log_finished(finished)
                return
            task, index = parent, None
            if finished.exception is not None:
                send, throw, handoff = None, finished.exception, False
            else:
                send, throw, handoff = finished.result, None, True
                parent.handoff(send)

    def _step(
        self, task: Task, send: Any = None, throw: BaseException | None = None
    ) -> bool:
        try:
            return task.advance(send, throw)
        except SchedulerError:
            self._discard_chain(task)
            raise
        except Exception:
            # Recorded on task.exception, thrown into the parent by _advance
            return False

    def _delegated_child(self, task: Task) -> Task | None:
        """The task delegated to at the current checkpoint, if any."""
        value = task.current
        if not is_delegation(value):
            return None
        child = Task.of(value)
        if not child.done:
            try:
                self._check_schedulable(child)
            except SchedulerError:
                self._discard_chain(task)
                raise
        return child

    def _log_finished(self, task: Task) -> None:
        if task.exception is not None:
            logger.error(
                f"Task {task.name} failed: {task.exception!r}",
                exc_info=task.exception,
            )
        else:
            logger.debug(f"{task!r} finished with {task.result!r}")

    def _discard_chain(self, task: Task) -> None:
        """Drop a task and every parent waiting on it after a contract error."""
        if task in self._active:
            self._active.remove(task)
        current: Task | None = task
        while current is not None:
            try:
                current.close()
            except Exception as e:
                logger.warning(f"Failed to close {current!r}: {e}")
            current = self._parents.pop(current.id, None)
        self._update_subscription()

    def _activate(self, task: Task) -> None:
        self._active.append(task)
        if not self._subscribed and self.tick_source is not None:
            self.tick_source.subscribe(self.tick)
            self._subscribed = True

    def _update_subscription(self) -> None:
        if self._active or not self._subscribed:
            return
        if self.tick_source is not None:
            self.tick_source.unsubscribe(self.tick)
        self._subscribed = False

    @contextlib.contextmanager
    def _result_window(self, is_open: bool, value: Any = None) -> Iterator[None]:
        previous = (self._has_last_result, self._last_result)
        self._has_last_result = is_open
        self._last_result = value if is_open else None
        try:
            yield
        finally:
            self._has_last_result, self._last_result = previous


# --- Scheduler provider for dependency injection ---


class SchedulerProvider:
    """Provider for the default Scheduler instance.

    Distributions created without an explicit scheduler use this one. Tests
    can install their own with `set()`.
    """

    def __init__(self) -> None:
        self._scheduler: Scheduler | None = None

    def get(self) -> Scheduler:
        if self._scheduler is None:
            self._scheduler = Scheduler()
        return self._scheduler

    def set(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler

    def reset(self) -> None:
        self._scheduler = None


scheduler_provider = SchedulerProvider()
