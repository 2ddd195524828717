"""PostgreSQL health checks.

Read-only checks for the maintenance `health` command: is the engine up,
is the data directory intact, is the disk filling, are queries stuck.
"""

import shutil
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from src.infra.constants import DEFAULT_CONSTANTS
from src.utils.console_like import ConsoleLike, coalesce_console

from .engine import PostgresEngine
from .probe import Probe
from .settings import ClusterSettings


class CheckStatus(Enum):
    """Status of a health check."""

    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"
    SKIP = "skip"


@dataclass
class CheckResult:
    """Result of a single health check."""

    name: str
    status: CheckStatus
    message: str
    details: str | None = None


def disk_usage_percent(path: Path) -> int:
    """Used space of the filesystem holding `path`, as df reports it."""
    usage = shutil.disk_usage(path)
    return round(usage.used * 100 / usage.total) if usage.total else 0


class HealthChecker:
    """Runs the maintenance health checks."""

    def __init__(
        self,
        settings: ClusterSettings,
        engine: PostgresEngine,
        probe: Probe,
        *,
        disk_usage: Callable[[Path], int] = disk_usage_percent,
        console: ConsoleLike | None = None,
    ) -> None:
        self._settings = settings
        self._engine = engine
        self._probe = probe
        self._disk_usage = disk_usage
        self._console = coalesce_console(console)
        self._results: list[CheckResult] = []

    def _ok(self, name: str, message: str) -> None:
        self._results.append(CheckResult(name, CheckStatus.PASS, message))
        self._console.ok(f"  {message}")

    def _bad(self, name: str, message: str, details: str | None = None) -> None:
        self._results.append(CheckResult(name, CheckStatus.FAIL, message, details))
        self._console.error(f"  {message}")

    def _warn(self, name: str, message: str, details: str | None = None) -> None:
        self._results.append(CheckResult(name, CheckStatus.WARN, message, details))
        self._console.warn(f"  {message}")

    def _skip(self, name: str, message: str) -> None:
        self._results.append(CheckResult(name, CheckStatus.SKIP, message))
        self._console.print(f"[dim]⏭️  {message}[/dim]")

    @property
    def results(self) -> list[CheckResult]:
        return list(self._results)

    def check_all(self) -> bool:
        """Run all health checks.

        Returns:
            True if no check failed (warnings allowed)
        """
        self._results = []
        self._console.print("\n[bold]== PostgreSQL Health Check ==[/bold]")

        running = self._check_running()
        self._check_data_directory()
        self._check_disk_usage()
        if running:
            self._check_long_queries()
        else:
            self._skip("long_queries", "Long-running query check skipped")

        issues = [r for r in self._results if r.status == CheckStatus.FAIL]
        if issues:
            self._console.error(f"Health check found {len(issues)} issue(s)")
            return False
        self._console.ok("Health check completed - all systems normal")
        return True

    def _check_running(self) -> bool:
        if self._engine.is_accepting_connections():
            self._ok("running", "PostgreSQL is running")
            return True
        self._bad("running", "PostgreSQL is not running")
        return False

    def _check_data_directory(self) -> None:
        report = self._probe.check_integrity(self._settings.data_dir)
        if report.valid:
            self._ok("data_directory", "Data directory is intact")
        else:
            self._bad(
                "data_directory",
                "Data directory is missing or corrupted",
                ", ".join(report.problems),
            )

    def _check_disk_usage(self) -> None:
        try:
            percent = self._disk_usage(self._settings.data_dir)
        except OSError as e:
            self._warn("disk_usage", "Could not read disk usage", str(e))
            return
        if percent > DEFAULT_CONSTANTS.DISK_USAGE_WARN_PERCENT:
            self._warn("disk_usage", f"High disk usage: {percent}%")
        else:
            self._ok("disk_usage", f"Disk usage: {percent}%")

    def _check_long_queries(self) -> None:
        minutes = DEFAULT_CONSTANTS.LONG_QUERY_MINUTES
        result = self._engine.query(
            "SELECT count(*) FROM pg_stat_activity WHERE state = 'active' "
            f"AND now() - query_start > interval '{minutes} minutes';"
        )
        if not result.success:
            self._warn("long_queries", "Could not query pg_stat_activity", result.output)
            return

        count = int(result.stdout.strip() or 0)
        if count > 0:
            self._warn(
                "long_queries",
                f"Found {count} long-running queries (> {minutes} minutes)",
            )
        else:
            self._ok("long_queries", "No long-running queries detected")
