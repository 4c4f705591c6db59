import os
import time
import typing
from pathlib import Path

import pytest

from shipyard.config import (
    ProcessConfig,
    SchedulerConfig,
    ShipyardConfig,
    config_provider,
)
from shipyard.scheduler import Scheduler, Task, scheduler_provider
from shipyard.targets import BuildProfile, BuildTarget, InMemoryArtifactRegistry

TICK_INTERVAL = 0.01


@pytest.fixture(scope="function", autouse=True)
def cleared_shipyard_env_vars(
    monkeypatch: pytest.MonkeyPatch,
) -> typing.Generator[None, None, None]:
    """Clear SHIPYARD_* environment variables for the duration of the test."""
    for var in list(os.environ):
        if var.startswith("SHIPYARD_"):
            monkeypatch.delenv(var)
    yield


@pytest.fixture(scope="function", autouse=True)
def shipyard_config(tmp_path: Path) -> typing.Generator[ShipyardConfig, None, None]:
    """Fast ticking configuration with state kept in the test's tmp dir."""
    config = ShipyardConfig(
        scheduler=SchedulerConfig(tick_interval=TICK_INTERVAL),
        process=ProcessConfig(),
        state_dir=tmp_path / "state",
    )
    config_provider.set(config)
    yield config
    config_provider.reset()


@pytest.fixture(scope="function", autouse=True)
def _reset_scheduler_provider() -> typing.Generator[None, None, None]:
    yield
    scheduler_provider.reset()


@pytest.fixture
def scheduler() -> Scheduler:
    return Scheduler()


@pytest.fixture
def drive() -> typing.Callable[..., typing.Any]:
    """Tick a scheduler until a task is done, returning the task's result."""

    def _drive(
        scheduler: Scheduler, task: Task, timeout: float = 10.0
    ) -> typing.Any:
        deadline = time.monotonic() + timeout
        while not task.done:
            if time.monotonic() >= deadline:
                raise TimeoutError(f"{task!r} did not finish within {timeout}s")
            scheduler.tick()
            time.sleep(TICK_INTERVAL)
        return task.result

    return _drive


@pytest.fixture
def registry() -> InMemoryArtifactRegistry:
    return InMemoryArtifactRegistry()


@pytest.fixture
def three_targets(tmp_path: Path) -> BuildProfile:
    """Profile with three targets whose build commands create their output."""
    targets = []
    for name in ("linux", "macos", "windows"):
        output = tmp_path / "builds" / name
        targets.append(
            BuildTarget(
                name=name,
                platform=name,
                build_command=f"mkdir -p '{output}'",
                output_path=str(output),
            )
        )
    return BuildProfile(name="release", targets=targets)
