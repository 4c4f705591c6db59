import typing
from pathlib import Path

import pytest

from shipyard.distribution import Distribution, ReloadLock
from shipyard.scheduler import wait_until
from shipyard.targets import (
    BuildPath,
    BuildProfile,
    BuildResult,
    BuildTarget,
    InMemoryArtifactRegistry,
)


class RecordingProducer:
    """Artifact producer creating a directory per target and recording calls."""

    def __init__(
        self,
        registry: InMemoryArtifactRegistry,
        root: Path,
        fail: typing.Iterable[str] = (),
    ) -> None:
        self.registry = registry
        self.root = root
        self.fail = set(fail)
        self.built: list[str] = []

    def build(self, profile, target, options) -> BuildResult:
        self.built.append(target.name)
        if target.name in self.fail:
            return BuildResult.failure(f"{target.name} does not compile")
        path = self.root / profile.name / target.name
        path.mkdir(parents=True, exist_ok=True)
        self.registry.set_last_build_path(profile, target, str(path))
        return BuildResult.success(str(path))


class RecordingDistribution(Distribution):
    """Strategy recording what it was asked to distribute.

    Waits `ticks` ticks (or, with `wait_for_cancel`, until cancelled) and
    returns `outcome`.
    """

    def __init__(
        self,
        *args,
        outcome: bool = True,
        ticks: int = 0,
        wait_for_cancel: bool = False,
        error: Exception | None = None,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.outcome = outcome
        self.ticks = ticks
        self.wait_for_cancel = wait_for_cancel
        self.error = error
        self.calls: list[tuple[list[BuildPath], bool]] = []

    def distribute_builds(self, build_paths, force_build):
        self.calls.append((build_paths, force_build))
        for _ in range(self.ticks):
            yield
        if self.wait_for_cancel:
            finished = yield wait_until(lambda: False, token=self.token)
            return finished
        if self.error is not None:
            raise self.error
        return self.outcome


@pytest.fixture
def artifacts_root(tmp_path: Path) -> Path:
    return tmp_path / "artifacts"


@pytest.fixture
def producer(
    registry: InMemoryArtifactRegistry, artifacts_root: Path
) -> RecordingProducer:
    return RecordingProducer(registry, artifacts_root)


@pytest.fixture
def profile() -> BuildProfile:
    return BuildProfile(
        name="release",
        targets=[
            BuildTarget(name=name, platform=name)
            for name in ("linux", "macos", "windows")
        ],
    )


@pytest.fixture
def lock() -> ReloadLock:
    return ReloadLock()


@pytest.fixture
def make_distribution(scheduler, registry, producer, lock, profile):
    """Factory for a RecordingDistribution wired to the test fixtures."""

    def _make(profiles=None, **kwargs) -> RecordingDistribution:
        kwargs.setdefault("scheduler", scheduler)
        kwargs.setdefault("registry", registry)
        kwargs.setdefault("producer", producer)
        kwargs.setdefault("lock", lock)
        return RecordingDistribution(
            "test", [profile] if profiles is None else profiles, **kwargs
        )

    return _make
