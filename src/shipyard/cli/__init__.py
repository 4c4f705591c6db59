"""Shipyard CLI - Command line interface for Shipyard.

Usage:
    shipyard version
    shipyard config show

    shipyard status <manifest>
    shipyard build <manifest>
    shipyard distribute <manifest> [--force-build]

Configuration:
    Settings are read from SHIPYARD_* environment variables and from
    .shipyard/config.json in the working directory or one of its parents.
    Set SHIPYARD_LOG_LEVEL=DEBUG to see scheduler bookkeeping.
"""

import logging

import typer

from shipyard.cli import config, run
from shipyard.config import config_provider

# Main CLI app
app = typer.Typer(
    name="shipyard",
    help="Shipyard CLI - Build targets and run distributions",
    no_args_is_help=True,
)

# Add subcommands
app.add_typer(config.app, name="config")
app.command("status")(run.status)
app.command("build")(run.build)
app.command("distribute")(run.distribute)


@app.command()
def version() -> None:
    """Show the Shipyard version."""
    try:
        from importlib.metadata import version as get_version

        ver = get_version("shipyard")
    except Exception:
        ver = "unknown"

    typer.echo(f"shipyard {ver}")


@app.callback()
def main(
    log_level: str | None = typer.Option(
        None, "--log-level", "-l", help="Log level (defaults to configuration)"
    ),
) -> None:
    """Shipyard CLI - Build targets and run distributions.

    Use 'shipyard status' to see which targets still need a build.
    Use 'shipyard distribute' to build missing targets and distribute them.
    """
    level = (log_level or config_provider.get().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


if __name__ == "__main__":
    app()
