"""Artifact producers turning build targets into artifacts."""

from __future__ import annotations

import logging
import os
import subprocess
import typing

from shipyard.targets._base import (
    BuildOptions,
    BuildProfile,
    BuildResult,
    BuildTarget,
    artifact_exists,
)
from shipyard.targets._registry import ArtifactRegistry

logger = logging.getLogger(__name__)


@typing.runtime_checkable
class ArtifactProducer(typing.Protocol):
    """Builds a target synchronously.

    A successful build must leave the artifact path recorded in the artifact
    registry used by the distribution.
    """

    def build(
        self, profile: BuildProfile, target: BuildTarget, options: BuildOptions
    ) -> BuildResult: ...


class CommandArtifactProducer:
    """Builds targets by running their `build_command`.

    A string command runs through the shell, a list is executed directly. The
    build succeeds when the command exits with 0 and the target's output path
    exists afterwards; the path is then recorded in `registry`.
    """

    def __init__(self, registry: ArtifactRegistry) -> None:
        self.registry = registry

    def build(
        self, profile: BuildProfile, target: BuildTarget, options: BuildOptions
    ) -> BuildResult:
        if not target.build_command:
            return BuildResult.failure(f"Target '{target.name}' has no build command")

        output_path = options.output_path or target.output_path
        if not output_path:
            return BuildResult.failure(f"Target '{target.name}' has no output path")

        env = {**os.environ, **options.env}
        env["SHIPYARD_TARGET"] = target.name
        env["SHIPYARD_OUTPUT_PATH"] = output_path

        logger.info(f"Building {profile.name}/{target.name}")
        try:
            completed = subprocess.run(
                target.build_command,
                shell=isinstance(target.build_command, str),
                cwd=target.cwd,
                env=env,
                capture_output=True,
                text=True,
                errors="replace",
            )
        except OSError as e:
            return BuildResult.failure(f"Could not run build command: {e}")

        if completed.returncode != 0:
            detail = completed.stderr.strip() or completed.stdout.strip()
            return BuildResult.failure(
                f"Build command exited with code {completed.returncode}: {detail}"
            )

        if not artifact_exists(output_path):
            return BuildResult.failure(
                f"Build command succeeded but nothing exists at {output_path}"
            )

        self.registry.set_last_build_path(profile, target, output_path)
        logger.info(f"Built {profile.name}/{target.name} to {output_path}")
        return BuildResult.success(output_path)
