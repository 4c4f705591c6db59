"""Task handle wrapping a generator.

A task is a resumable unit of work. Every `yield` is a checkpoint:
- `yield` / `yield None`: wait for the next tick
- `yield <scalar>`: wait for the next tick, exposing the value as `current`
- `yield <Task or generator>`: delegate, parking until the child completes.
  The child's final value is sent back, so `value = yield child` works.
"""

from __future__ import annotations

import inspect
import typing
from typing import Any, Generator
from uuid import UUID

import uuid6

TaskGenerator: typing.TypeAlias = Generator[Any, Any, Any]


class Task:
    """A resumable unit of work owned by a `Scheduler` once submitted."""

    def __init__(self, generator: TaskGenerator, name: str | None = None) -> None:
        if not inspect.isgenerator(generator):
            raise TypeError(
                f"Task requires a generator, got {type(generator).__name__}"
            )
        self.id: UUID = uuid6.uuid7()
        self.name = name or getattr(generator, "__qualname__", "task")
        self._generator = generator
        self._current: Any = None
        self._has_return_value = False
        self._return_value: Any = None
        self.done = False
        self.exception: BaseException | None = None

    @classmethod
    def of(cls, value: "Task | TaskGenerator") -> "Task":
        """Coerce a task or generator into a `Task`."""
        if isinstance(value, Task):
            return value
        return cls(value)

    @property
    def current(self) -> Any:
        """The current checkpoint value."""
        return self._current

    @property
    def result(self) -> Any:
        """The final checkpoint value.

        The generator's return value if it returned something other than None,
        else the last checkpoint value.
        """
        if self._has_return_value:
            return self._return_value
        return self._current

    @property
    def failed(self) -> bool:
        return self.exception is not None

    def advance(
        self, send: Any = None, throw: BaseException | None = None
    ) -> bool:
        """Advance the task to its next checkpoint.

        Args:
            send: Value sent into the generator (result of a delegated child).
            throw: Exception thrown into the generator at its current yield.

        Returns:
            True if the task yielded a new checkpoint, False if it finished.
            Exceptions raised by the task propagate to the caller.
        """
        if self.done:
            raise RuntimeError(f"{self!r} has already finished")
        try:
            if throw is not None:
                self._current = self._generator.throw(throw)
            else:
                self._current = self._generator.send(send)
        except StopIteration as stop:
            self.done = True
            if stop.value is not None:
                self._has_return_value = True
                self._return_value = stop.value
            return False
        except BaseException as e:
            self.done = True
            self.exception = e
            raise
        return True

    def handoff(self, value: Any) -> None:
        """Record a delegated child's final value as this task's checkpoint."""
        self._current = value

    def close(self) -> None:
        """Close the underlying generator, running its cleanup."""
        self.done = True
        self._generator.close()

    def __repr__(self) -> str:
        state = "done" if self.done else "pending"
        return f"Task({self.name!r}, {state}, id={self.id})"

    def __hash__(self) -> int:
        return hash(self.id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Task):
            return NotImplemented
        return self.id == other.id


def is_delegation(value: Any) -> bool:
    """Whether a checkpoint value asks the scheduler to run a nested task."""
    return isinstance(value, Task) or inspect.isgenerator(value)
