"""Backup CLI commands.

Commands:
    create  - Create a new backup of the PostgreSQL data directory
    list    - List all available backups
    restore - Restore from a specific backup
    cleanup - Remove the oldest backups beyond the retention count
"""

from typing import Annotated

import typer
from rich.table import Table

from src.cli.context import get_cli_context
from src.cli.shared.console import with_error_handling

app = typer.Typer(
    name="backup",
    help="💾 PostgreSQL data directory backups",
    no_args_is_help=True,
)


@app.command()
@with_error_handling
def create(ctx: typer.Context) -> None:
    """Create a new backup of the current PostgreSQL data.

    PostgreSQL is stopped for the copy and started again afterwards.

    Examples:
        devdb-cli backup create
    """
    cli = get_cli_context(ctx)
    handle = cli.backups.create()
    cli.console.print(f"\n[bold green]🎉 Backup created: {handle.name}[/bold green]")


@app.command(name="list")
@with_error_handling
def list_backups(ctx: typer.Context) -> None:
    """List all available backups, newest first.

    Examples:
        devdb-cli backup list
    """
    cli = get_cli_context(ctx)
    backups = cli.backups.list_backups()

    if not backups:
        cli.console.info("No backups found")
        return

    table = Table(title=f"Backups in {cli.settings.backup_dir}")
    table.add_column("Name", style="cyan")
    table.add_column("Size", style="green", justify="right")
    table.add_column("Modified", style="blue")
    for backup in backups:
        table.add_row(
            backup.name,
            backup.size_human,
            backup.modified.strftime("%Y-%m-%d %H:%M:%S"),
        )
    cli.console.print(table)
    cli.console.ok(f"Found {len(backups)} backup(s)")


@app.command()
@with_error_handling
def restore(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Backup name, e.g. data_20231201_120000")],
    yes: Annotated[
        bool,
        typer.Option(
            "--yes",
            "-y",
            help="Skip confirmation prompt",
        ),
    ] = False,
) -> None:
    """Restore the data directory from a backup (DESTRUCTIVE).

    The current data is copied to data_current_<timestamp> first, so a
    restore can itself be undone.

    Examples:
        devdb-cli backup restore data_20231201_120000
        devdb-cli backup restore data_20231201_120000 --yes
    """
    cli = get_cli_context(ctx)

    def confirm(prompt: str) -> bool:
        return cli.console.confirm_action(
            action=prompt,
            details=f"Data directory: {cli.settings.data_dir}",
            extra_warning="This will overwrite your current PostgreSQL data!",
        )

    result = cli.backups.restore(name, assume_yes=yes, confirm=confirm)
    if not result.restored:
        cli.console.print("[dim]Operation cancelled.[/dim]")
        return

    if result.safety_backup:
        cli.console.info(f"Previous data kept as {result.safety_backup.name}")
    cli.console.print(f"\n[bold green]🎉 Restored from {name}[/bold green]")


@app.command()
@with_error_handling
def cleanup(
    ctx: typer.Context,
    max_backups: Annotated[
        int | None,
        typer.Option(
            "--max-backups",
            "-n",
            min=1,
            help="Backups to keep (defaults to MAX_BACKUPS)",
        ),
    ] = None,
) -> None:
    """Remove the oldest backups beyond the retention count.

    Examples:
        devdb-cli backup cleanup
        devdb-cli backup cleanup --max-backups 3
    """
    cli = get_cli_context(ctx)
    removed = cli.backups.cleanup(max_backups)
    if not removed:
        cli.console.info("Nothing to clean up")
