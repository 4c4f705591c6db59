"""Distribution chaining other distributions."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Generator

from shipyard.distribution._base import Distribution
from shipyard.targets import BuildPath

logger = logging.getLogger(__name__)


class MetaDistribution(Distribution):
    """Runs several distributions in order.

    Each child builds its own targets. The run stops at the first child that
    fails and succeeds only when all of them do.
    """

    can_run_without_build_targets = True

    def __init__(
        self, name: str, distributions: Sequence[Distribution], **kwargs: Any
    ) -> None:
        super().__init__(name, **kwargs)
        self.distributions = list(distributions)

    def distribute_builds(
        self, build_paths: list[BuildPath], force_build: bool
    ) -> Generator[Any, Any, bool]:
        for distribution in self.distributions:
            if self.cancelled:
                return False
            logger.info(f"{self.name}: Running {distribution.name}")
            ok = yield distribution.run(force_build)
            if not ok:
                logger.error(f"{self.name}: {distribution.name} failed")
                return False
        return True

    def cancel(self) -> None:
        super().cancel()
        for distribution in self.distributions:
            distribution.cancel()

    def force_cancel(self) -> None:
        for distribution in self.distributions:
            distribution.force_cancel()
        super().force_cancel()
