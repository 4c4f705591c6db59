"""JSON manifests describing build profiles and a distribution."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from shipyard.distribution._base import Distribution
from shipyard.distribution._meta import MetaDistribution
from shipyard.distribution._script import ScriptDistribution
from shipyard.targets import BuildProfile


class ScriptDistributionConfig(BaseModel):
    """Manifest entry for a `ScriptDistribution`.

    `profiles` names the manifest profiles to distribute. None selects all of
    them.
    """

    type: Literal["script"] = "script"
    name: str
    profiles: list[str] | None = None
    script: str
    arguments: str = "{path}"
    cwd: str | None = None
    env: dict[str, str] = Field(default_factory=dict)


class MetaDistributionConfig(BaseModel):
    """Manifest entry for a `MetaDistribution`."""

    type: Literal["meta"] = "meta"
    name: str
    distributions: list[DistributionConfig] = Field(default_factory=list)


DistributionConfig = Annotated[
    Union[ScriptDistributionConfig, MetaDistributionConfig],
    Field(discriminator="type"),
]

MetaDistributionConfig.model_rebuild()


class Manifest(BaseModel):
    """Root of a manifest file.

    Example:
        {
          "name": "game",
          "profiles": [
            {"name": "release", "targets": [
              {"name": "linux", "platform": "linux64",
               "build_command": "make linux", "output_path": "out/linux"}
            ]}
          ],
          "distribution": {"type": "script", "name": "upload",
                           "script": "./upload.sh",
                           "arguments": "--target {target} {path}"}
        }
    """

    name: str | None = None
    profiles: list[BuildProfile] = Field(default_factory=list)
    distribution: DistributionConfig

    def select_profiles(self, names: list[str] | None) -> list[BuildProfile]:
        if names is None:
            return list(self.profiles)
        by_name = {profile.name: profile for profile in self.profiles}
        missing = [name for name in names if name not in by_name]
        if missing:
            raise ValueError(f"Unknown profile(s): {', '.join(missing)}")
        return [by_name[name] for name in names]

    def create_distribution(self, **kwargs: Any) -> Distribution:
        """Instantiate the manifest's distribution.

        Keyword arguments (scheduler, registry, producer, lock,
        process_runner) are passed to the distribution. Nested distributions
        share them, except for the lock which only the outermost one holds.
        """
        return self._create(self.distribution, kwargs)

    def _create(
        self,
        entry: ScriptDistributionConfig | MetaDistributionConfig,
        kwargs: dict[str, Any],
    ) -> Distribution:
        if isinstance(entry, ScriptDistributionConfig):
            return ScriptDistribution(
                entry.name,
                self.select_profiles(entry.profiles),
                script=entry.script,
                arguments=entry.arguments,
                cwd=entry.cwd,
                env=entry.env,
                **kwargs,
            )
        child_kwargs = {key: value for key, value in kwargs.items() if key != "lock"}
        children = [self._create(child, child_kwargs) for child in entry.distributions]
        return MetaDistribution(entry.name, children, **kwargs)


def load_manifest(path: str | Path) -> Manifest:
    """Load and validate a manifest file.

    Raises:
        FileNotFoundError: If the file does not exist.
        pydantic.ValidationError: If the content is not a valid manifest.
    """
    with open(path) as f:
        data = json.load(f)
    return Manifest.model_validate(data)
