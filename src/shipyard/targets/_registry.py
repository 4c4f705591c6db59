"""Registries remembering the last artifact path of every target."""

from __future__ import annotations

import json
import logging
import typing
from pathlib import Path

import uuid6

from shipyard.targets._base import BuildProfile, BuildTarget

logger = logging.getLogger(__name__)


@typing.runtime_checkable
class ArtifactRegistry(typing.Protocol):
    """Maps a (profile, target) pair to the last known artifact path."""

    def get_last_build_path(
        self, profile: BuildProfile, target: BuildTarget
    ) -> str | None: ...

    def set_last_build_path(
        self, profile: BuildProfile, target: BuildTarget, path: str
    ) -> None: ...


class InMemoryArtifactRegistry:
    """Artifact registry kept in memory, mostly for tests."""

    def __init__(self, paths: dict[tuple[str, str], str] | None = None) -> None:
        self.paths: dict[tuple[str, str], str] = dict(paths or {})

    def get_last_build_path(
        self, profile: BuildProfile, target: BuildTarget
    ) -> str | None:
        return self.paths.get((profile.name, target.name))

    def set_last_build_path(
        self, profile: BuildProfile, target: BuildTarget, path: str
    ) -> None:
        self.paths[(profile.name, target.name)] = path


class JsonArtifactRegistry:
    """Artifact registry persisted as JSON.

    File layout: {"<profile>": {"<target>": "<path>"}}. Writes go through a
    temporary file renamed into place.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, dict[str, str]]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Could not load artifact registry {self.path}: {e}")
            return {}

    def get_last_build_path(
        self, profile: BuildProfile, target: BuildTarget
    ) -> str | None:
        return self._load().get(profile.name, {}).get(target.name)

    def set_last_build_path(
        self, profile: BuildProfile, target: BuildTarget, path: str
    ) -> None:
        data = self._load()
        data.setdefault(profile.name, {})[target.name] = path

        tmp_path = self.path.with_suffix(f".tmp-{uuid6.uuid7()}")
        tmp_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(tmp_path, "w") as f:
                json.dump(data, f, indent=2)
            tmp_path.replace(self.path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
