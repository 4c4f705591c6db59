"""Build targets, artifact registries and artifact producers."""

from shipyard.targets._base import (
    BuildOptions,
    BuildPath,
    BuildProfile,
    BuildResult,
    BuildTarget,
    artifact_exists,
)
from shipyard.targets._producer import ArtifactProducer, CommandArtifactProducer
from shipyard.targets._registry import (
    ArtifactRegistry,
    InMemoryArtifactRegistry,
    JsonArtifactRegistry,
)

__all__ = [
    "ArtifactProducer",
    "ArtifactRegistry",
    "BuildOptions",
    "BuildPath",
    "BuildProfile",
    "BuildResult",
    "BuildTarget",
    "CommandArtifactProducer",
    "InMemoryArtifactRegistry",
    "JsonArtifactRegistry",
    "artifact_exists",
]
