"""Build and distribution commands for Shipyard CLI."""

import signal
import time
from pathlib import Path
from types import FrameType

import typer
from pydantic import ValidationError

from shipyard.config import config_provider
from shipyard.distribution import Distribution, FileLock, Manifest, load_manifest
from shipyard.scheduler import BlockingTickSource, Scheduler
from shipyard.targets import JsonArtifactRegistry, artifact_exists

MANIFEST_ARGUMENT = typer.Argument(
    ..., exists=True, dir_okay=False, help="Path to the manifest JSON file"
)


def _load(manifest_path: Path) -> Manifest:
    try:
        return load_manifest(manifest_path)
    except (ValueError, ValidationError) as e:
        typer.echo(f"Error: Invalid manifest {manifest_path}: {e}", err=True)
        raise typer.Exit(1)


def _create_distribution(
    manifest: Manifest, scheduler: Scheduler | None = None
) -> Distribution:
    config = config_provider.get()
    try:
        return manifest.create_distribution(
            scheduler=scheduler if scheduler is not None else Scheduler(),
            registry=JsonArtifactRegistry(config.artifacts_path),
            lock=FileLock(config.lock_path),
        )
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def status(manifest_path: Path = MANIFEST_ARGUMENT) -> None:
    """Show the last build path of every target."""
    manifest = _load(manifest_path)
    registry = JsonArtifactRegistry(config_provider.get().artifacts_path)

    for profile in manifest.profiles:
        typer.echo(f"{profile.name}:")
        if not profile.targets:
            typer.echo("  (no targets)")
        for target in profile.targets:
            path = registry.get_last_build_path(profile, target)
            if artifact_exists(path):
                typer.echo(f"  {target.name}: {path}")
            elif path:
                typer.echo(f"  {target.name}: {path} (missing)")
            else:
                typer.echo(f"  {target.name}: (not built)")


def build(manifest_path: Path = MANIFEST_ARGUMENT) -> None:
    """Rebuild every target of the manifest's distribution."""
    distribution = _create_distribution(_load(manifest_path))
    if not distribution.build():
        raise typer.Exit(1)
    typer.echo("Build succeeded")


def distribute(
    manifest_path: Path = MANIFEST_ARGUMENT,
    force_build: bool = typer.Option(
        False, "--force-build", "-f", help="Rebuild targets that already have builds"
    ),
) -> None:
    """Build missing targets and run the manifest's distribution.

    Press Ctrl+C once to cancel, twice to abandon the run immediately.
    """
    tick_source = BlockingTickSource(config_provider.get().scheduler.tick_interval)
    distribution = _create_distribution(
        _load(manifest_path), scheduler=Scheduler(tick_source)
    )

    interrupts = 0

    def on_interrupt(signum: int, frame: FrameType | None) -> None:
        nonlocal interrupts
        interrupts += 1
        if interrupts == 1:
            typer.echo("Cancelling... (press Ctrl+C again to force)", err=True)
            distribution.cancel()
        else:
            distribution.force_cancel()

    previous_handler = signal.signal(signal.SIGINT, on_interrupt)
    try:
        task = distribution.distribute(force_build)
        while not task.done and interrupts < 2:
            tick_source.tick()
            if not task.done:
                time.sleep(tick_source.interval)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if task.done and not task.failed and task.result:
        typer.echo(f"Distribution '{distribution.name}' succeeded")
        return

    typer.echo(f"Distribution '{distribution.name}' failed", err=True)
    raise typer.Exit(1)
