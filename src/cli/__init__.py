"""Main CLI application module.

This module provides the main entry point for the devdb CLI, which manages
the dev container's PostgreSQL cluster.

Commands:
- up: Initialize, resume or recover the cluster
- status / health: Inspect the running cluster
- restart: Restart the server
- backup: Data directory backups (create, list, restore, cleanup)
"""

import sys
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger

from .commands import backup_app, health, restart, status, up
from .context import build_cli_context
from .shared.console import console

# Create the main CLI application
app = typer.Typer(
    help="🐘 devdb - PostgreSQL lifecycle manager for the dev container",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.callback()
def configure(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="YAML settings file (defaults to $DEVDB_CONFIG or ./devdb.yaml)",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logs on stderr"),
    ] = False,
) -> None:
    """Load settings once and share them with every command."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")

    try:
        ctx.obj = build_cli_context(config)
    except ValueError as e:
        console.handle_error("Invalid configuration", str(e))


# Register cluster lifecycle commands at the top level
app.command()(up)
app.command()(status)
app.command()(health)
app.command()(restart)

# Register command groups
app.add_typer(backup_app, name="backup")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
