"""Run controller: build targets, then distribute them as a scheduled task."""

from __future__ import annotations

import abc
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path
from typing import Any, ClassVar, Generator
from uuid import UUID

import uuid6

from shipyard.distribution._lock import ExclusiveLock, ReloadLock
from shipyard.exceptions import BuildFailure, LockHeldError
from shipyard.process import LineSink, ProcessResult, ProcessRunner
from shipyard.scheduler import CancellationToken, Scheduler, Task, scheduler_provider
from shipyard.targets import (
    ArtifactProducer,
    ArtifactRegistry,
    BuildOptions,
    BuildPath,
    BuildProfile,
    CommandArtifactProducer,
    InMemoryArtifactRegistry,
    artifact_exists,
)

logger = logging.getLogger(__name__)


class RunState(StrEnum):
    IDLE = "idle"
    BUILDING_TARGETS = "building_targets"
    DISTRIBUTING = "distributing"
    DONE = "done"
    CANCELLED = "cancelled"


@dataclass
class RunSession:
    """One end-to-end execution of build-then-distribute."""

    force_build: bool = False
    id: UUID = field(default_factory=uuid6.uuid7)
    token: CancellationToken = field(default_factory=CancellationToken)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    build_paths: list[BuildPath] = field(default_factory=list)


class Distribution(abc.ABC):
    """Base class of all distribution strategies.

    A distribution makes sure every target of its profiles has an artifact,
    building the missing ones (or all of them when forced), and then runs the
    strategy-specific `distribute_builds()` task on the scheduler. Only one
    run can be active at a time; while it is active the exclusive `lock` is
    held.

    Subclasses implement `distribute_builds()` as a generator. It may delegate
    to other tasks (`result = yield self.execute(...)`) and must return a
    boolean outcome.

    Args:
        name: Name used in log messages.
        profiles: Build profiles whose targets are distributed. None entries
            are skipped.
        scheduler: Scheduler running the distribution. Defaults to the one
            from `scheduler_provider`.
        registry: Where the last artifact path of every target is recorded.
        producer: Builds missing artifacts. Defaults to a
            `CommandArtifactProducer` writing to `registry`.
        lock: Exclusive lock held while running. Defaults to a `ReloadLock`.
        process_runner: Runner used by `execute()`.
    """

    can_run_without_build_targets: ClassVar[bool] = False

    def __init__(
        self,
        name: str,
        profiles: Sequence[BuildProfile | None] | None = None,
        *,
        scheduler: Scheduler | None = None,
        registry: ArtifactRegistry | None = None,
        producer: ArtifactProducer | None = None,
        lock: ExclusiveLock | None = None,
        process_runner: ProcessRunner | None = None,
    ) -> None:
        self.name = name
        self.profiles: list[BuildProfile | None] = list(profiles or [])
        self.scheduler = (
            scheduler if scheduler is not None else scheduler_provider.get()
        )
        self.registry = (
            registry if registry is not None else InMemoryArtifactRegistry()
        )
        self.producer = (
            producer if producer is not None else CommandArtifactProducer(self.registry)
        )
        self.lock = lock if lock is not None else ReloadLock()
        self.process_runner = (
            process_runner if process_runner is not None else ProcessRunner()
        )
        self.last_outcome: bool | None = None
        self._is_running = False
        self._state = RunState.IDLE
        self._session: RunSession | None = None
        # Session of the run whose strategy is executing right now
        self._bound_session: RunSession | None = None

    # ------------------------------------------------------------------
    # Running flag and state
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._is_running

    @is_running.setter
    def is_running(self, value: bool) -> None:
        if value == self._is_running:
            return
        if value:
            self.lock.acquire()
            self._is_running = True
        else:
            self._is_running = False
            self.lock.release()

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def session(self) -> RunSession | None:
        """The active run session, if any."""
        return self._session

    @property
    def token(self) -> CancellationToken | None:
        """Cancellation token of the active run.

        Inside `distribute_builds()` this is always the token of the run that
        started the strategy, also after that run was force cancelled.
        """
        session = self._bound_session or self._session
        return session.token if session is not None else None

    @property
    def cancelled(self) -> bool:
        """Whether the active run has been asked to stop."""
        token = self.token
        return token is not None and token.cancelled

    # ------------------------------------------------------------------
    # Builds
    # ------------------------------------------------------------------

    def has_all_builds(self) -> bool:
        """Whether every target has an existing artifact."""
        for profile in self.profiles:
            if profile is None:
                continue
            for target in profile.targets:
                path = self.registry.get_last_build_path(profile, target)
                if not artifact_exists(path):
                    return False
        return True

    def build(self) -> bool:
        """Rebuild every target."""
        try:
            self.ensure_builds(force_build=True)
        except BuildFailure as e:
            logger.error(f"{self.name}: {e}")
            return False
        return True

    def ensure_builds(self, force_build: bool = False) -> list[BuildPath]:
        """Make sure every target has an artifact.

        Targets are built when forced or when their recorded artifact is
        missing. Targets appearing in several profiles are resolved by the
        last profile.

        Returns:
            One `BuildPath` per target name, in first-seen order.

        Raises:
            BuildFailure: On the first target that fails to build. Targets
                built before it keep their artifacts.
        """
        build_paths: dict[str, BuildPath] = {}
        for profile in self.profiles:
            if profile is None:
                continue
            for target in profile.targets:
                path = self.registry.get_last_build_path(profile, target)
                if force_build or not artifact_exists(path):
                    options = BuildOptions.default_for(target, force=force_build)
                    result = self.producer.build(profile, target, options)
                    if not result.ok:
                        raise BuildFailure(target.name, result.error or "")
                    path = self.registry.get_last_build_path(profile, target)
                    path = path or result.path
                if not path:
                    raise BuildFailure(target.name, "no artifact path recorded")
                build_paths[target.name] = BuildPath(target, path)
        return list(build_paths.values())

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def distribute(self, force_build: bool = False) -> Task:
        """Submit a run to the scheduler.

        Returns:
            The run's task. Its result is the boolean outcome. When a run is
            already in progress the task is finished immediately with False.
        """
        task = Task(self.run(force_build), name=f"distribute:{self.name}")
        self.scheduler.submit(task)
        return task

    def run(self, force_build: bool = False) -> Generator[Any, Any, bool]:
        """Task building the targets and distributing them."""
        if self._is_running:
            logger.debug(f"{self.name}: Already running")
            return False

        try:
            session = self._begin(force_build)
        except LockHeldError as e:
            logger.error(f"{self.name}: {e}")
            return False

        outcome = False
        try:
            try:
                build_paths = self.ensure_builds(force_build)
            except BuildFailure as e:
                logger.error(f"{self.name}: {e}")
                return False
            session.build_paths = build_paths

            if not build_paths and not self.can_run_without_build_targets:
                logger.error(f"{self.name}: No build paths for distribution")
                return False

            self._state = RunState.DISTRIBUTING
            logger.info(f"{self.name}: Distributing {len(build_paths)} build(s)")
            strategy = self.distribute_builds(build_paths, force_build)
            try:
                outcome = bool((yield self._bind(session, strategy)))
            except Exception as e:
                logger.error(f"{self.name}: Distribution failed: {e!r}", exc_info=e)
                outcome = False
            return outcome
        finally:
            self._end(session, outcome)

    @abc.abstractmethod
    def distribute_builds(
        self, build_paths: list[BuildPath], force_build: bool
    ) -> Generator[Any, Any, bool]:
        """Task distributing the resolved builds, returning the outcome."""
        ...

    def execute(
        self,
        command: str | Path,
        arguments: str | Sequence[str] = "",
        input: str | None = None,
        on_output: LineSink | None = None,
        on_error: LineSink | None = None,
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> Generator[Any, Any, ProcessResult]:
        """Task running a process that is cancelled together with this run."""
        return self.process_runner.execute(
            command,
            arguments,
            input,
            on_output,
            on_error,
            token=self.token,
            label=self.name,
            cwd=cwd,
            env=env,
        )

    def cancel(self) -> None:
        """Ask every in-flight operation of the active run to stop.

        The running flag clears once the run observes the cancellation and
        finishes.
        """
        session = self._session
        if session is None:
            return
        logger.info(f"{self.name}: Cancelling")
        session.token.cancel(force=True)

    def force_cancel(self) -> None:
        """Cancel, then clear the running flag and release the lock right away.

        For recovering from a run that does not finish after `cancel()`. The
        abandoned run no longer affects this distribution when it completes.
        """
        self.cancel()
        if self._session is not None:
            self._session = None
            self._state = RunState.CANCELLED
            self.last_outcome = False
            logger.warning(f"{self.name}: Force cancelled")
        self.is_running = False

    # ------------------------------------------------------------------
    # Session bookkeeping
    # ------------------------------------------------------------------

    def _begin(self, force_build: bool) -> RunSession:
        self.is_running = True
        session = RunSession(force_build=force_build)
        self._session = session
        self._state = RunState.BUILDING_TARGETS
        logger.info(f"{self.name}: Starting run {session.id}")
        return session

    def _bind(
        self, session: RunSession, strategy: Generator[Any, Any, bool]
    ) -> Generator[Any, Any, bool]:
        """Drive `strategy`, exposing `session` through `token` at every step."""
        value: Any = None
        error: Exception | None = None
        try:
            while True:
                previous = self._bound_session
                self._bound_session = session
                try:
                    if error is not None:
                        checkpoint = strategy.throw(error)
                    else:
                        checkpoint = strategy.send(value)
                except StopIteration as stop:
                    return stop.value
                finally:
                    self._bound_session = previous
                try:
                    value, error = (yield checkpoint), None
                except Exception as e:
                    # Delivered to the strategy at its own checkpoint
                    value, error = None, e
        finally:
            strategy.close()

    def _end(self, session: RunSession, outcome: bool) -> None:
        if self._session is not session:
            logger.debug(f"{self.name}: Run {session.id} ended after force cancel")
            return
        self._session = None
        self._state = (
            RunState.CANCELLED
            if session.token.cancelled or self._state != RunState.DISTRIBUTING
            else RunState.DONE
        )
        self.last_outcome = outcome
        self.is_running = False
        logger.info(
            f"{self.name}: Run {session.id} {self._state} "
            f"({'succeeded' if outcome else 'failed'})"
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, state={self._state})"
