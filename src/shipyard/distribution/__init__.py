"""Run controller and generic distribution strategies."""

from shipyard.distribution._base import Distribution, RunSession, RunState
from shipyard.distribution._lock import ExclusiveLock, FileLock, ReloadLock
from shipyard.distribution._manifest import (
    DistributionConfig,
    Manifest,
    MetaDistributionConfig,
    ScriptDistributionConfig,
    load_manifest,
)
from shipyard.distribution._meta import MetaDistribution
from shipyard.distribution._script import ScriptDistribution

__all__ = [
    "Distribution",
    "DistributionConfig",
    "ExclusiveLock",
    "FileLock",
    "Manifest",
    "MetaDistribution",
    "MetaDistributionConfig",
    "ReloadLock",
    "RunSession",
    "RunState",
    "ScriptDistribution",
    "ScriptDistributionConfig",
    "load_manifest",
]
