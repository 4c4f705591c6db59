"""Build target descriptors and build outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field


class BuildTarget(BaseModel):
    """A single build target, e.g. one platform of a game build.

    Attributes:
        name: Unique name of the target.
        platform: Free-form platform identifier ("macos", "linux64", ...).
        build_command: Command producing the artifact (string run through the
            shell, or argument list). Used by `CommandArtifactProducer`.
        output_path: Where the artifact is expected after a build.
        cwd: Working directory for the build command.
        env: Extra environment variables for the build command.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    platform: str = ""
    build_command: str | list[str] | None = None
    output_path: str | None = None
    cwd: str | None = None
    env: dict[str, str] = Field(default_factory=dict)


class BuildProfile(BaseModel):
    """A named group of build targets."""

    name: str
    targets: list[BuildTarget] = Field(default_factory=list)


class BuildOptions(BaseModel):
    """Options handed to the artifact producer for one build."""

    model_config = ConfigDict(frozen=True)

    output_path: str | None = None
    env: dict[str, str] = Field(default_factory=dict)
    force: bool = False

    @classmethod
    def default_for(cls, target: BuildTarget, force: bool = False) -> "BuildOptions":
        return cls(output_path=target.output_path, env=dict(target.env), force=force)


class BuildPath(NamedTuple):
    """A built target and the path of its artifact."""

    target: BuildTarget
    path: str


@dataclass(frozen=True)
class BuildResult:
    """Outcome of a build: an artifact path or an error message."""

    path: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return not self.error

    @classmethod
    def success(cls, path: str) -> "BuildResult":
        return cls(path=path)

    @classmethod
    def failure(cls, error: str) -> "BuildResult":
        return cls(error=error or "unknown error")


def artifact_exists(path: str | None) -> bool:
    """Whether something exists at a recorded artifact path."""
    return bool(path) and Path(path).exists()  # type: ignore[arg-type]
