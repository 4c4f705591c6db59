from importlib.metadata import version

from shipyard.config import config_provider, get_config
from shipyard.distribution import (
    Distribution,
    FileLock,
    Manifest,
    MetaDistribution,
    ReloadLock,
    RunState,
    ScriptDistribution,
    load_manifest,
)
from shipyard.exceptions import (
    BuildFailure,
    InvalidStateError,
    LockHeldError,
    ProcessFailure,
    SchedulerError,
    ShipyardError,
)
from shipyard.process import ExitCodePolicy, ExitStatus, ProcessResult, ProcessRunner
from shipyard.scheduler import (
    AsyncioTickSource,
    BlockingTickSource,
    CancellationToken,
    Scheduler,
    Task,
    scheduler_provider,
    sleep,
    wait_until,
)
from shipyard.targets import (
    BuildPath,
    BuildProfile,
    BuildResult,
    BuildTarget,
    CommandArtifactProducer,
    InMemoryArtifactRegistry,
    JsonArtifactRegistry,
)

__version__ = version("shipyard")


__all__ = [
    "__version__",
    "AsyncioTickSource",
    "BlockingTickSource",
    "BuildFailure",
    "BuildPath",
    "BuildProfile",
    "BuildResult",
    "BuildTarget",
    "CancellationToken",
    "CommandArtifactProducer",
    "config_provider",
    "Distribution",
    "ExitCodePolicy",
    "ExitStatus",
    "FileLock",
    "get_config",
    "InMemoryArtifactRegistry",
    "InvalidStateError",
    "JsonArtifactRegistry",
    "load_manifest",
    "LockHeldError",
    "Manifest",
    "MetaDistribution",
    "ProcessFailure",
    "ProcessResult",
    "ProcessRunner",
    "ReloadLock",
    "RunState",
    "Scheduler",
    "scheduler_provider",
    "SchedulerError",
    "ScriptDistribution",
    "ShipyardError",
    "sleep",
    "Task",
    "wait_until",
]
