"""Shared fixtures for the PostgreSQL lifecycle tests.

The fake engine works against a real temporary directory: initdb writes the
marker files, start writes postmaster.pid and appends to the log, stop
removes it. Everything else (file operations, probe, controller, backups)
is the production code.
"""

import os
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import Mock

import pytest

from src.infra.postgres import (
    BackupManager,
    ClusterSettings,
    LocalFileOps,
    Probe,
    ProcessController,
    RecoveryOrchestrator,
    StopMode,
)
from src.infra.postgres.recovery import BaselineGate
from src.infra.utils.runner import CommandResult

__all__ = [
    "FakeClock",
    "FakeConnection",
    "FakeEngine",
    "SleepRecorder",
    "backups",
    "clock",
    "cluster_settings",
    "connection_state",
    "console",
    "controller",
    "engine",
    "files",
    "make_backup",
    "make_data_dir",
    "orchestrator",
    "probe",
    "sleeps",
]


class FakeEngine:
    """In-memory engine that keeps the data directory files realistic."""

    def __init__(self) -> None:
        self.running = False
        self.start_failures = 0
        self.never_ready = False
        self.stop_fails = False
        self.init_fails = False
        self.missing: list[str] = []
        self.versions: list[str] = ["14", "15"]
        self.roles: set[str] = {"postgres"}
        self.long_queries = 0
        self.queries: list[str] = []
        self.init_calls = 0
        self.start_calls = 0
        self.stop_calls: list[StopMode] = []

    def missing_binaries(self) -> list[str]:
        return list(self.missing)

    def installed_versions(self) -> list[str]:
        return list(self.versions)

    def init_cluster(self, data_dir: Path) -> CommandResult:
        self.init_calls += 1
        if self.init_fails:
            return CommandResult(
                success=False, stderr="initdb: error: could not create directory"
            )
        if data_dir.exists() and any(data_dir.iterdir()):
            return CommandResult(
                success=False,
                stderr=f'initdb: error: directory "{data_dir}" exists but is not empty',
                returncode=1,
            )
        data_dir.mkdir(parents=True, exist_ok=True)
        (data_dir / "global").mkdir()
        (data_dir / "PG_VERSION").write_text("15\n")
        (data_dir / "global" / "pg_control").write_bytes(b"\x00" * 64)
        (data_dir / "postgresql.conf").write_text("# defaults\n")
        (data_dir / "pg_hba.conf").write_text("# initdb defaults\n")
        return CommandResult(success=True, stdout="Success.")

    def start(self, data_dir: Path, log_path: Path) -> CommandResult:
        self.start_calls += 1
        log_path.parent.mkdir(parents=True, exist_ok=True)
        if self.start_failures > 0:
            self.start_failures -= 1
            with open(log_path, "a") as f:
                f.write("FATAL:  could not create lock file\n")
            # A crashed postmaster leaves its pid file behind
            (data_dir / "postmaster.pid").write_text("31337\n")
            return CommandResult(
                success=False,
                stderr="pg_ctl: could not start server",
                returncode=1,
            )

        with open(log_path, "a") as f:
            f.write("LOG:  database system is ready to accept connections\n")
        (data_dir / "postmaster.pid").write_text("4242\n")
        if not self.never_ready:
            self.running = True
        return CommandResult(success=True, stdout="server starting")

    def stop(self, data_dir: Path, mode: StopMode = StopMode.FAST) -> CommandResult:
        self.stop_calls.append(mode)
        if self.stop_fails:
            return CommandResult(
                success=False, stderr="pg_ctl: server does not shut down", returncode=1
            )
        if not self.running:
            return CommandResult(
                success=False,
                stderr='pg_ctl: PID file "postmaster.pid" does not exist',
                returncode=1,
            )
        self.running = False
        (data_dir / "postmaster.pid").unlink(missing_ok=True)
        return CommandResult(success=True, stdout="server stopped")

    def is_accepting_connections(self) -> bool:
        return self.running

    def query(self, sql: str) -> CommandResult:
        self.queries.append(sql)
        if not self.running:
            return CommandResult(
                success=False, stderr="psql: error: connection refused", returncode=2
            )
        if "FROM pg_roles" in sql:
            found = any(f"rolname='{role}'" in sql for role in self.roles)
            return CommandResult(success=True, stdout="1\n" if found else "")
        if "pg_stat_activity" in sql:
            return CommandResult(success=True, stdout=f"{self.long_queries}\n")
        return CommandResult(success=True)

    def create_role(self, name: str) -> CommandResult:
        self.roles.add(name)
        return CommandResult(success=True)


class SleepRecorder:
    """Stands in for time.sleep and remembers every delay."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeClock:
    """Returns a new minute on every call, so backup names never collide."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(minutes=1)
        return current


class FakeConnection:
    """Replaces PostgresConnection for the orchestrator."""

    def __init__(self, settings: ClusterSettings, state: dict) -> None:
        self.settings = settings
        self._state = state

    def test_connection(self) -> tuple[bool, str]:
        self._state["calls"] += 1
        if self._state["ok"]:
            return True, "PostgreSQL 15.4 on x86_64-pc-linux-gnu"
        return False, "Connection failed: password authentication failed"

    def get_connection_string(self) -> str:
        s = self.settings
        return f"postgresql://{s.app_user}:***@{s.host}:{s.port}/postgres"

    def __enter__(self) -> "FakeConnection":
        return self

    def __exit__(self, *args: object) -> None:
        return None


def make_data_dir(path: Path, *, pid: str | None = None) -> Path:
    """Create a data directory with every required marker."""
    (path / "global").mkdir(parents=True, exist_ok=True)
    (path / "PG_VERSION").write_text("15\n")
    (path / "global" / "pg_control").write_bytes(b"\x00" * 64)
    (path / "postgresql.conf").write_text("# defaults\n")
    (path / "base").mkdir(exist_ok=True)
    (path / "base" / "16384").write_text("rows")
    if pid is not None:
        (path / "postmaster.pid").write_text(pid)
    return path


def make_backup(root: Path, name: str, mtime: float, content: str = "rows") -> Path:
    """Create a backup directory with a fixed modification time."""
    backup = root / name
    backup.mkdir(parents=True)
    (backup / "PG_VERSION").write_text("15\n")
    (backup / "marker.txt").write_text(content)
    os.utime(backup, (mtime, mtime))
    return backup


@pytest.fixture
def cluster_settings(tmp_path):
    """Settings pointing every path into a temporary directory."""
    return ClusterSettings(
        bin_root=tmp_path / "bin",
        default_cluster_root=None,
        use_sudo=False,
        data_dir=tmp_path / "data",
        log_path=tmp_path / "log" / "postgresql.log",
        socket_dir=tmp_path / "run",
        backup_dir=tmp_path / "backups",
        baseline_marker=tmp_path / "baseline-marker",
        max_backups=7,
        max_retries=3,
        startup_timeout=3,
        retry_delay=5.0,
    )


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def files():
    return LocalFileOps()


@pytest.fixture
def console():
    return Mock()


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def probe(engine, files, cluster_settings, sleeps, console):
    return Probe(
        engine, files, cluster_settings.service_user, sleep=sleeps, console=console
    )


@pytest.fixture
def controller(engine, probe, files, cluster_settings, sleeps, console):
    return ProcessController(
        engine,
        probe,
        files,
        retry_delay=cluster_settings.retry_delay,
        sleep=sleeps,
        console=console,
    )


@pytest.fixture
def backups(cluster_settings, engine, controller, files, clock, console):
    return BackupManager(
        cluster_settings, engine, controller, files, clock=clock, console=console
    )


@pytest.fixture
def connection_state():
    """Shared switch for FakeConnection: flip "ok" to simulate auth failure."""
    return {"ok": True, "calls": 0}


@pytest.fixture
def orchestrator(
    cluster_settings, engine, files, probe, controller, backups, connection_state, console
):
    return RecoveryOrchestrator(
        cluster_settings,
        engine,
        files,
        probe,
        controller,
        backups,
        connect=lambda settings: FakeConnection(settings, connection_state),
        baseline_gate=BaselineGate(cluster_settings.baseline_marker),
        console=console,
    )
