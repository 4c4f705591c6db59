"""Distribution running a script for every build."""

from __future__ import annotations

import logging
import os
import shlex
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Generator

from shipyard.distribution._base import Distribution
from shipyard.targets import BuildPath, BuildProfile

logger = logging.getLogger(__name__)


class ScriptDistribution(Distribution):
    """Runs `script` once per build path, one after the other.

    `arguments` is split like a shell command line; the placeholders
    `{path}`, `{target}` and `{platform}` are substituted in every argument,
    so paths containing spaces stay a single argument.

    The run succeeds when every invocation succeeds. It stops at the first
    failing or cancelled invocation.
    """

    def __init__(
        self,
        name: str,
        profiles: Sequence[BuildProfile | None] | None = None,
        *,
        script: str | Path,
        arguments: str = "{path}",
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, profiles, **kwargs)
        self.script = script
        self.arguments = arguments
        self.cwd = cwd
        self.env = dict(env or {})

    def format_arguments(self, build_path: BuildPath) -> list[str]:
        values = {
            "path": build_path.path,
            "target": build_path.target.name,
            "platform": build_path.target.platform,
        }
        return [part.format(**values) for part in shlex.split(self.arguments)]

    def distribute_builds(
        self, build_paths: list[BuildPath], force_build: bool
    ) -> Generator[Any, Any, bool]:
        env = {**os.environ, **self.env} if self.env else None
        for build_path in build_paths:
            if self.cancelled:
                return False
            logger.info(
                f"{self.name}: Running {self.script} for {build_path.target.name}"
            )
            result = yield self.execute(
                self.script,
                self.format_arguments(build_path),
                on_output=self._log_line,
                on_error=self._log_line,
                cwd=self.cwd,
                env=env,
            )
            if not result.ok:
                return False
        return True

    def _log_line(self, line: str) -> None:
        logger.info(f"{self.name}: {line}")
