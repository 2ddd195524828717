"""CLI context and dependency container."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import click
import typer

from src.cli.shared.console import CLIConsole, console
from src.infra.postgres import (
    BackupManager,
    ClusterSettings,
    FileOps,
    HealthChecker,
    PgCtlEngine,
    Probe,
    ProcessController,
    RecoveryOrchestrator,
    get_file_ops,
    load_settings,
)
from src.infra.utils.runner import CommandRunner


@dataclass(frozen=True)
class CLIContext:
    """Runtime dependencies for CLI commands."""

    console: CLIConsole
    settings: ClusterSettings
    engine: PgCtlEngine
    files: FileOps
    probe: Probe
    controller: ProcessController
    backups: BackupManager

    def orchestrator(self) -> RecoveryOrchestrator:
        return RecoveryOrchestrator(
            self.settings,
            self.engine,
            self.files,
            self.probe,
            self.controller,
            self.backups,
            console=self.console,
        )

    def health_checker(self) -> HealthChecker:
        return HealthChecker(self.settings, self.engine, self.probe, console=self.console)


def build_cli_context(config_path: Path | None = None) -> CLIContext:
    """Build a fresh CLIContext from configuration."""
    settings = load_settings(config_path)
    runner = CommandRunner(sudo=settings.use_sudo)
    engine = PgCtlEngine(settings, runner)
    files = get_file_ops(runner)
    probe = Probe(engine, files, settings.service_user, console=console)
    controller = ProcessController(
        engine, probe, files, retry_delay=settings.retry_delay, console=console
    )
    backups = BackupManager(settings, engine, controller, files, console=console)

    return CLIContext(
        console=console,
        settings=settings,
        engine=engine,
        files=files,
        probe=probe,
        controller=controller,
        backups=backups,
    )


def get_cli_context(ctx: typer.Context | None = None) -> CLIContext:
    """Return the CLIContext from Typer, falling back to a new instance."""
    context = ctx or click.get_current_context(silent=True)
    if context and isinstance(context.obj, CLIContext):
        return context.obj
    return build_cli_context()
