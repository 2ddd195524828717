"""Cluster lifecycle CLI commands.

Commands:
    up      - Initialize, resume or recover the cluster and verify it
    status  - Show PostgreSQL status and database sizes
    health  - Run health checks
    restart - Restart the PostgreSQL server
"""

import time

import typer
from rich.table import Table

from src.cli.context import get_cli_context
from src.cli.shared.console import with_error_handling
from src.infra.postgres import PostgresConnection


@with_error_handling
def up(ctx: typer.Context) -> None:
    """🚀 Make sure PostgreSQL is initialized, running and reachable.

    Safe to run on every container start. Initializes a new cluster when
    none exists, starts an existing one, and rebuilds a corrupted data
    directory after keeping a copy of it.

    Examples:
        devdb-cli up
    """
    cli = get_cli_context(ctx)
    cli.console.print_header("Starting PostgreSQL")
    result = cli.orchestrator().ensure_running()

    if result.forensic_backup:
        cli.console.print(
            "[yellow]Corrupted data preserved at "
            f"{result.forensic_backup.path}[/yellow]"
        )
    cli.console.print(
        f"\n[bold green]🎉 PostgreSQL ready ({result.path.value})[/bold green]"
    )


@with_error_handling
def status(ctx: typer.Context) -> None:
    """📊 Show PostgreSQL status and information.

    Examples:
        devdb-cli status
    """
    cli = get_cli_context(ctx)
    settings = cli.settings
    cli.console.print_header("PostgreSQL Status")

    if not cli.engine.is_accepting_connections():
        cli.console.error("PostgreSQL is not running")
        cli.console.print("\n🔍 Checking logs for errors...")
        cli.console.print(cli.controller.tail_log(settings.log_path))
        raise typer.Exit(1)

    cli.console.ok("PostgreSQL is running")

    try:
        start = time.perf_counter()
        with PostgresConnection(settings) as conn:
            version = conn.scalar("SELECT version();")
            latency_ms = (time.perf_counter() - start) * 1000

            info_table = Table(title="Connection")
            info_table.add_column("Metric", style="cyan")
            info_table.add_column("Value", style="green")
            info_table.add_row("Version", str(version))
            info_table.add_row("Host", f"{settings.host}:{settings.port}")
            info_table.add_row("User", settings.app_user)
            info_table.add_row("Data directory", str(settings.data_dir))
            info_table.add_row("Connection Latency", f"{latency_ms:.2f} ms")

            active_conns = conn.scalar(
                "SELECT count(*) FROM pg_stat_activity WHERE state = 'active';"
            )
            total_conns = conn.scalar("SELECT count(*) FROM pg_stat_activity;")
            info_table.add_row(
                "Connections", f"{active_conns} active / {total_conns} total"
            )
            cli.console.print(info_table)

            size_table = Table(title="\nDatabase Sizes")
            size_table.add_column("Database", style="cyan")
            size_table.add_column("Size", style="green")
            for row in conn.execute(
                "SELECT datname, pg_size_pretty(pg_database_size(datname)) AS size "
                "FROM pg_database ORDER BY pg_database_size(datname) DESC;"
            ):
                size_table.add_row(row["datname"], row["size"])
            cli.console.print(size_table)
    except Exception as exc:
        cli.console.error(f"Failed to connect: {exc}")
        cli.console.print(f"[dim]Host: {settings.host}:{settings.port}[/dim]")
        raise typer.Exit(1) from None


@with_error_handling
def health(ctx: typer.Context) -> None:
    """🩺 Run the PostgreSQL health check.

    Checks that the server answers, the data directory is intact, disk
    usage is below 80%, and no query has been active for over 5 minutes.

    Examples:
        devdb-cli health
    """
    cli = get_cli_context(ctx)
    if not cli.health_checker().check_all():
        raise typer.Exit(1)


@with_error_handling
def restart(ctx: typer.Context) -> None:
    """🔄 Restart the PostgreSQL server.

    Examples:
        devdb-cli restart
    """
    cli = get_cli_context(ctx)
    s = cli.settings
    cli.controller.restart(s.data_dir, s.log_path, s.max_retries, s.startup_timeout)
    cli.console.ok("PostgreSQL restarted successfully")
