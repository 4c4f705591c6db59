"""Configuration commands for Shipyard CLI."""

import typer

from shipyard.config import config_provider, find_project_config

app = typer.Typer(help="Inspect Shipyard configuration")


@app.command("show")
def show_config() -> None:
    """Show the resolved configuration."""
    config = config_provider.get()
    project_config = find_project_config()

    typer.echo("Configuration:")
    typer.echo(f"  Project config: {project_config or '(none)'}")
    typer.echo(f"  State directory: {config.state_dir}")
    typer.echo(f"  Log level: {config.log_level}")

    typer.echo("")
    typer.echo("Scheduler:")
    typer.echo(f"  Tick interval: {config.scheduler.tick_interval}s")

    typer.echo("")
    typer.echo("Process exit codes:")
    typer.echo(
        f"  Success: {', '.join(str(c) for c in config.process.success_exit_codes)}"
    )
    cancellation = config.process.cancellation_exit_codes
    typer.echo(
        f"  Cancellation: {', '.join(str(c) for c in cancellation) or '(none)'}"
    )
