"""Tests for the cooperative Scheduler."""

import logging
import sys

import pytest

from shipyard.exceptions import InvalidStateError, SchedulerError
from shipyard.scheduler import Scheduler, SchedulerProvider, Task, zero_value


def returns_now(value):
    yield from ()
    return value


def returns_after_tick(value):
    yield
    return value


def forever(log=None, name=None):
    while True:
        if log is not None:
            log.append(name)
        yield


def nested(depth: int, value):
    """Delegates `depth` levels deep; the innermost task returns `value`."""
    if depth == 0:
        return (yield returns_after_tick(value))
    yield nested(depth - 1, value)


class RecordingTickSource:
    def __init__(self):
        self.events = []

    def subscribe(self, callback):
        self.events.append("subscribe")

    def unsubscribe(self, callback):
        self.events.append("unsubscribe")


class TestSubmit:
    def test_task_without_suspension_is_drained(self, scheduler: Scheduler):
        task = Task(returns_now(5))
        assert scheduler.submit(task) is False
        assert task.done
        assert task.result == 5
        assert task not in scheduler.active_tasks
        assert scheduler.is_idle

    def test_pending_task_is_registered(self, scheduler: Scheduler):
        task = Task(returns_after_tick("x"))
        assert scheduler.submit(task) is True
        assert scheduler.active_tasks == (task,)
        assert len(scheduler) == 1

        scheduler.tick()
        assert task.done
        assert task.result == "x"
        assert scheduler.is_idle

    def test_accepts_bare_generator(self, scheduler: Scheduler):
        assert scheduler.submit(returns_after_tick(1)) is True
        assert len(scheduler) == 1

    def test_scalar_checkpoint_is_exposed(self, scheduler: Scheduler):
        def progress():
            yield "half"
            yield "almost"

        task = Task(progress())
        scheduler.submit(task)
        assert task.current == "half"
        scheduler.tick()
        assert task.current == "almost"
        assert scheduler.active_tasks == (task,)

    def test_submitting_finished_task_fails(self, scheduler: Scheduler):
        task = Task(returns_now(1))
        scheduler.submit(task)
        with pytest.raises(SchedulerError, match="already finished"):
            scheduler.submit(task)

    def test_submitting_scheduled_task_fails(self, scheduler: Scheduler):
        task = Task(forever())
        scheduler.submit(task)
        with pytest.raises(SchedulerError, match="already scheduled"):
            scheduler.submit(task)


class TestDelegation:
    @pytest.mark.parametrize("depth", [0, 1, 5, 50])
    def test_identity_law(self, scheduler: Scheduler, depth: int, drive):
        """The outermost task finishes with the innermost task's value."""
        task = Task(nested(depth, {"payload": 1}))
        scheduler.submit(task)
        assert drive(scheduler, task) == {"payload": 1}

    @pytest.mark.parametrize("value", [0, False, "", None])
    def test_identity_law_with_falsy_values(self, scheduler: Scheduler, value):
        task = Task(nested(3, value))
        scheduler.submit(task)
        scheduler.tick()
        assert task.done
        assert task.result == value

    def test_deep_chain_completes_in_one_tick(self, scheduler: Scheduler):
        """Completion cascades through all finished parents in the same pass."""
        task = Task(nested(100, "deep"))
        scheduler.submit(task)
        assert not task.done
        assert len(scheduler) == 1  # only the innermost task is ticked

        scheduler.tick()
        assert task.done
        assert task.result == "deep"
        assert scheduler.is_idle

    def test_chain_deeper_than_recursion_limit(self, scheduler: Scheduler):
        depth = sys.getrecursionlimit() * 3
        task = Task(nested(depth, "bottom"))
        assert scheduler.submit(task) is True
        assert len(scheduler) == 1

        scheduler.tick()
        assert task.done
        assert not task.failed
        assert task.result == "bottom"
        assert scheduler.is_idle

    def test_exception_unwinds_chain_deeper_than_recursion_limit(
        self, scheduler: Scheduler
    ):
        def failing():
            yield
            raise ValueError("boom")

        def wrap(depth):
            if depth == 0:
                return (yield failing())
            return (yield wrap(depth - 1))

        task = Task(wrap(sys.getrecursionlimit() * 2))
        scheduler.submit(task)
        scheduler.tick()
        assert task.done
        assert isinstance(task.exception, ValueError)
        assert scheduler.is_idle

    def test_value_is_sent_back(self, scheduler: Scheduler):
        def parent():
            a = yield returns_after_tick(2)
            b = yield returns_now(3)
            return a * b

        task = Task(parent())
        scheduler.submit(task)
        scheduler.tick()
        assert task.result == 6

    def test_parent_is_parked(self, scheduler: Scheduler):
        child = Task(forever())

        def parent_gen():
            yield child

        parent = Task(parent_gen())
        scheduler.submit(parent)
        assert scheduler.active_tasks == (child,)
        assert scheduler.is_parked(parent)
        assert scheduler.parent_of(child) is parent
        assert scheduler.parent_of(parent) is None

    def test_delegating_to_finished_task(self, scheduler: Scheduler):
        done = Task(returns_now(7))
        while done.advance():
            pass

        def parent():
            value = yield done
            return value + 1

        task = Task(parent())
        assert scheduler.submit(task) is False
        assert task.result == 8

    def test_child_added_during_tick_is_not_advanced_twice(
        self, scheduler: Scheduler
    ):
        log = []

        def child():
            log.append("child started")
            yield
            log.append("child finished")

        def parent():
            yield
            yield child()
            log.append("parent resumed")

        scheduler.submit(parent())
        scheduler.tick()
        assert log == ["child started"]
        scheduler.tick()
        assert log == ["child started", "child finished", "parent resumed"]

    def test_reverse_registration_order(self, scheduler: Scheduler):
        log = []
        scheduler.submit(forever(log, "a"))
        scheduler.submit(forever(log, "b"))
        scheduler.submit(forever(log, "c"))
        log.clear()

        scheduler.tick()
        assert log == ["c", "b", "a"]

    def test_no_task_skipped_when_tasks_finish(self, scheduler: Scheduler):
        log = []

        def short(name):
            log.append(name)
            yield
            log.append(f"{name} done")

        for name in ("a", "b", "c"):
            scheduler.submit(short(name))
        log.clear()

        scheduler.tick()
        assert sorted(log) == ["a done", "b done", "c done"]
        assert scheduler.is_idle


class TestGetLastResult:
    def test_returns_child_value(self, scheduler: Scheduler):
        def parent():
            yield returns_after_tick(42)
            return scheduler.get_last_result(int)

        task = Task(parent())
        scheduler.submit(task)
        scheduler.tick()
        assert task.result == 42

    def test_without_expected_type(self, scheduler: Scheduler):
        def parent():
            yield returns_now([1, 2])
            return scheduler.get_last_result()

        task = Task(parent())
        scheduler.submit(task)
        assert task.result == [1, 2]

    @pytest.mark.parametrize(
        "expected_type, zero",
        [(str, ""), (bool, False), (float, 0.0), (bytes, b""), (list, None)],
    )
    def test_mismatch_returns_zero_value(
        self, scheduler: Scheduler, expected_type, zero
    ):
        results = []

        def parent():
            yield returns_now(42)
            results.append(scheduler.get_last_result(expected_type))

        scheduler.submit(parent())
        assert results == [zero]

    def test_bool_is_not_an_int(self, scheduler: Scheduler):
        results = []

        def parent():
            yield returns_now(True)
            results.append(scheduler.get_last_result(int))
            results.append(scheduler.get_last_result(bool))

        scheduler.submit(parent())
        assert results == [0, True]

    def test_mismatch_with_default(self, scheduler: Scheduler):
        def parent():
            yield returns_now(42)
            return scheduler.get_last_result(str, default="n/a")

        task = Task(parent())
        scheduler.submit(task)
        assert task.result == "n/a"

    def test_outside_any_task_fails(self, scheduler: Scheduler):
        with pytest.raises(InvalidStateError):
            scheduler.get_last_result()

    def test_before_any_delegation_fails(self, scheduler: Scheduler):
        def misuse():
            scheduler.get_last_result()
            yield

        with pytest.raises(InvalidStateError):
            scheduler.submit(misuse())
        assert scheduler.is_idle

    def test_after_yielding_again_fails(self, scheduler: Scheduler):
        def misuse():
            yield returns_now(1)
            yield
            scheduler.get_last_result()

        scheduler.submit(misuse())
        with pytest.raises(InvalidStateError):
            scheduler.tick()
        assert scheduler.is_idle

    def test_not_visible_to_newly_started_child(self, scheduler: Scheduler):
        def child():
            scheduler.get_last_result()
            yield

        def parent():
            yield returns_now(1)
            yield child()

        with pytest.raises(InvalidStateError):
            scheduler.submit(parent())

    def test_independent_chains_do_not_cross_talk(self, scheduler: Scheduler):
        results = {}

        def parent(name):
            yield returns_after_tick(name)
            results[name] = scheduler.get_last_result(str)

        scheduler.submit(parent("a"))
        scheduler.submit(parent("b"))
        scheduler.tick()
        assert results == {"a": "a", "b": "b"}


class TestExceptions:
    def test_exception_thrown_into_parent(self, scheduler: Scheduler):
        def failing():
            yield
            raise ValueError("boom")

        def parent():
            try:
                yield failing()
            except ValueError as e:
                return f"caught {e}"

        task = Task(parent())
        scheduler.submit(task)
        scheduler.tick()
        assert task.result == "caught boom"
        assert not task.failed

    def test_uncaught_exception_is_logged(
        self, scheduler: Scheduler, caplog: pytest.LogCaptureFixture
    ):
        def failing():
            yield
            raise ValueError("boom")

        def parent():
            yield failing()

        task = Task(parent(), name="parent")
        other = Task(forever())
        scheduler.submit(task)
        scheduler.submit(other)

        with caplog.at_level(logging.ERROR, logger="shipyard.scheduler._scheduler"):
            scheduler.tick()

        assert task.done
        assert isinstance(task.exception, ValueError)
        assert scheduler.active_tasks == (other,)
        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
        assert "parent" in errors[0].getMessage()

    def test_delegating_to_scheduled_task_discards_chain(
        self, scheduler: Scheduler
    ):
        shared = Task(forever())
        scheduler.submit(shared)
        cleaned = []

        def parent():
            try:
                yield shared
            finally:
                cleaned.append(True)

        with pytest.raises(SchedulerError, match="already scheduled"):
            scheduler.submit(parent())
        assert scheduler.active_tasks == (shared,)
        assert cleaned == [True]


class TestTickSource:
    def test_subscribes_only_while_active(self):
        source = RecordingTickSource()
        scheduler = Scheduler(source)

        scheduler.submit(returns_now(1))
        assert source.events == []

        scheduler.submit(returns_after_tick(1))
        assert source.events == ["subscribe"]

        scheduler.submit(returns_after_tick(2))
        assert source.events == ["subscribe"]

        scheduler.tick()
        assert source.events == ["subscribe", "unsubscribe"]

        scheduler.submit(returns_after_tick(3))
        assert source.events == ["subscribe", "unsubscribe", "subscribe"]

    def test_unsubscribes_after_discarded_chain(self):
        source = RecordingTickSource()
        scheduler = Scheduler(source)

        def misuse():
            yield
            scheduler.get_last_result()

        scheduler.submit(misuse())
        with pytest.raises(InvalidStateError):
            scheduler.tick()
        assert source.events == ["subscribe", "unsubscribe"]


class TestSchedulerProvider:
    def test_default_instance(self):
        provider = SchedulerProvider()
        assert provider.get() is provider.get()

    def test_set_and_reset(self):
        provider = SchedulerProvider()
        scheduler = Scheduler()
        provider.set(scheduler)
        assert provider.get() is scheduler
        provider.reset()
        assert provider.get() is not scheduler


def test_zero_value():
    assert zero_value(int) == 0
    assert zero_value(str) == ""
    assert zero_value(dict) is None
