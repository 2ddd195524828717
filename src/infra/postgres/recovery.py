"""PostgreSQL startup and recovery.

`RecoveryOrchestrator.ensure_running()` is safe to call on every container
start. It picks one of three paths:

- first init: no PG_VERSION, so initdb, configure, start, create roles
  (leftover files are copied aside and removed first, initdb needs an
  empty directory)
- resume: the data directory is intact, so start it (or leave it running)
- recover: markers are missing or unreadable, so keep a forensic copy,
  wipe, and run first init

It then proves connectivity with an authenticated query and takes one
baseline backup per orchestrator lifetime.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from loguru import logger

from src.utils.console_like import ConsoleLike, coalesce_console

from .backup import BackupManager
from .connection import PostgresConnection
from .engine import PostgresEngine, quote_ident, quote_literal
from .errors import (
    BackupError,
    ClusterError,
    ClusterInitError,
    ConnectivityError,
    MissingBinariesError,
)
from .files import FileOps
from .models import BackupHandle, DataDirectory
from .probe import Probe
from .process import ProcessController
from .settings import ClusterSettings


class StartupPath(str, Enum):
    """Which branch ensure_running took."""

    FIRST_INIT = "first_init"
    RESUME = "resume"
    RECOVER = "recover"


@dataclass
class EnsureResult:
    """Summary of one ensure_running call."""

    path: StartupPath
    server_version: str
    forensic_backup: BackupHandle | None = None
    baseline_backup: BackupHandle | None = None
    already_running: bool = False


class BaselineGate:
    """Allows exactly one baseline backup per orchestrator lifetime.

    The marker lives in /tmp, so it survives repeated CLI invocations
    inside one container run and resets when the container restarts.
    """

    def __init__(self, marker: Path) -> None:
        self._marker = marker
        self._taken = False

    def is_open(self) -> bool:
        return not self._taken and not self._marker.exists()

    def close(self) -> None:
        self._taken = True
        try:
            self._marker.touch()
        except OSError as e:
            logger.warning(f"Could not write baseline marker {self._marker}: {e}")


def pg_hba_policy(app_user: str, superuser: str = "postgres") -> str:
    """Access policy: trust for the app role, peer or md5 for everyone else."""
    return f"""# PostgreSQL Client Authentication Configuration
# TYPE  DATABASE        USER            ADDRESS                 METHOD

# Allow postgres superuser via peer authentication (local socket)
local   all             {superuser}                                peer

# Allow application user via trust (dev environment only)
local   all             {app_user}                    trust
host    all             {app_user}    127.0.0.1/32    trust
host    all             {app_user}    ::1/128         trust

# All other users require password
local   all             all                                     peer
host    all             all             127.0.0.1/32            md5
host    all             all             ::1/128                 md5
"""


def baseline_config(settings: ClusterSettings) -> str:
    """Settings appended to postgresql.conf after initdb."""
    return f"""
# Dev container configuration
listen_addresses = '{settings.host}'
port = {settings.port}
unix_socket_directories = '{settings.socket_dir}'
"""


class RecoveryOrchestrator:
    """Brings the dev container cluster to a running, verified state."""

    def __init__(
        self,
        settings: ClusterSettings,
        engine: PostgresEngine,
        files: FileOps,
        probe: Probe,
        controller: ProcessController,
        backups: BackupManager,
        *,
        connect: Callable[[ClusterSettings], PostgresConnection] = PostgresConnection,
        baseline_gate: BaselineGate | None = None,
        console: ConsoleLike | None = None,
    ) -> None:
        self._settings = settings
        self._engine = engine
        self._files = files
        self._probe = probe
        self._controller = controller
        self._backups = backups
        self._connect = connect
        self._baseline_gate = baseline_gate or BaselineGate(settings.baseline_marker)
        self._console = coalesce_console(console)
        self._data = DataDirectory(settings.data_dir)

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def check_binaries(self) -> None:
        """Fail fast if the configured PostgreSQL version is not installed."""
        missing = self._engine.missing_binaries()
        if not missing:
            return
        versions = self._engine.installed_versions()
        raise MissingBinariesError(
            f"PostgreSQL {self._settings.version} binaries not found",
            "Missing:\n  "
            + "\n  ".join(missing)
            + "\nAvailable versions:\n  "
            + ("\n  ".join(versions) if versions else "None found"),
        )

    def prepare_directories(self) -> None:
        """Create log, socket and data directories owned by the service user."""
        s = self._settings
        for path, mode in (
            (s.log_dir, 0o755),
            (s.socket_dir, 0o775),
            (s.data_dir, 0o700),
        ):
            self._files.ensure_dir(path, mode, owner=s.service_user)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _remove_default_cluster(self) -> None:
        root = self._settings.default_cluster_root
        if root is None:
            return
        default = root / self._settings.version / "main"
        if self._files.is_dir(default):
            self._console.info(f"Removing default cluster at {default}")
            self._files.remove_tree(default)

    def _start(self) -> None:
        s = self._settings
        self._controller.start(s.data_dir, s.log_path, s.max_retries, s.startup_timeout)

    def _sql(self, sql: str, failure: str) -> str:
        result = self._engine.query(sql)
        if not result.success:
            raise ClusterInitError(failure, result.output or None)
        return result.stdout

    def ensure_app_role(self) -> None:
        """Create the application role, or update its password if it exists."""
        s = self._settings
        exists = self._sql(
            f"SELECT 1 FROM pg_roles WHERE rolname={quote_literal(s.app_user)}",
            f"Failed to look up user {s.app_user}",
        )
        if exists.strip() == "1":
            self._console.info(f"User {s.app_user} already exists, updating password...")
        else:
            self._console.info(f"Creating user {s.app_user}...")
            result = self._engine.create_role(s.app_user)
            if not result.success:
                raise ClusterInitError(
                    f"Failed to create user {s.app_user}", result.output or None
                )
        self._sql(
            f"ALTER USER {quote_ident(s.app_user)} "
            f"PASSWORD {quote_literal(s.app_password)};",
            f"Failed to set password for {s.app_user}",
        )

    def initialize_cluster(self) -> None:
        """Run initdb, write configuration and access policy, start, set roles."""
        s = self._settings
        self._remove_default_cluster()

        self._console.info("Initializing new PostgreSQL cluster...")
        result = self._engine.init_cluster(s.data_dir)
        if not result.success:
            raise ClusterInitError(
                "Failed to initialize PostgreSQL cluster", result.output or None
            )

        self._console.info("Writing PostgreSQL configuration...")
        self._files.write_text(self._data.config_file, baseline_config(s), append=True)

        self._console.info("Writing authentication configuration...")
        self._files.write_text(
            self._data.hba_file,
            pg_hba_policy(s.app_user, s.superuser),
            owner=s.service_user,
        )

        self._start()

        self._console.info("Creating database users...")
        self._sql(
            f"ALTER USER {quote_ident(s.superuser)} "
            f"PASSWORD {quote_literal(s.effective_superuser_password)};",
            f"Failed to set {s.superuser} user password",
        )
        self.ensure_app_role()
        self._console.ok("Initial cluster configured")

    def resume_cluster(self) -> bool:
        """Start an intact cluster unless it is already running.

        Returns:
            True if PostgreSQL was already running
        """
        if self._engine.is_accepting_connections():
            self._console.ok("PostgreSQL is already running")
            return True
        self._controller.clear_stale_pid(self._settings.data_dir)
        self._start()
        return False

    def recover_cluster(self, problems: list[str]) -> BackupHandle | None:
        """Keep a forensic copy of corrupted data, wipe, and reinitialize.

        A failed forensic copy never blocks recovery: corrupted data may
        not be copyable.

        Returns:
            The forensic backup, or None if none was taken
        """
        s = self._settings
        self._console.error(
            f"Data directory corruption detected: {', '.join(problems)}"
        )
        self._console.info("Data directory will be reinitialized...")

        forensic = self._preserve_and_clear()
        self.initialize_cluster()
        return forensic

    def _preserve_and_clear(self) -> BackupHandle | None:
        """Copy whatever is in the data directory aside, then empty it."""
        s = self._settings
        if self._files.is_empty(s.data_dir):
            return None

        forensic = None
        self._console.info("Creating backup before recovery...")
        try:
            forensic = self._backups.snapshot(s.data_dir)
            self._console.ok(f"Backup created at {forensic.path}")
        except BackupError as e:
            logger.warning(f"Forensic backup failed: {e.message} {e.details or ''}")
            self._console.warn(
                "FORENSIC BACKUP FAILED: existing data will be deleted "
                f"without a copy ({e.message})"
            )

        self._console.info("Removing existing data directory contents...")
        self._files.clear_dir(s.data_dir)
        return forensic

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_connection(self) -> str:
        """Run an authenticated round-trip query as the application role.

        Returns:
            The server version string

        Raises:
            ConnectivityError: If the query fails; details hold the log tail
        """
        self._console.info("Verifying connection...")
        with self._connect(self._settings) as conn:
            ok, message = conn.test_connection()
        if not ok:
            raise ConnectivityError(
                f"Failed to connect to PostgreSQL: {message}",
                self._controller.tail_log(self._settings.log_path),
            )
        self._console.ok("Connection verified")
        return message

    def take_baseline_backup(self) -> BackupHandle | None:
        """Create the one baseline backup of this lifetime; failures only warn."""
        if not self._baseline_gate.is_open():
            return None

        self._console.info("Creating initial backup after successful startup...")
        try:
            handle = self._backups.create()
        except ClusterError as e:
            logger.warning(f"Baseline backup failed: {e.message}")
            self._console.warn(
                f"Failed to create initial backup, but PostgreSQL is working ({e.message})"
            )
            return None

        self._baseline_gate.close()
        self._console.ok("Initial backup created successfully")
        return handle

    def print_info(self, server_version: str) -> None:
        s = self._settings
        with self._connect(s) as conn:
            url = conn.get_connection_string()
        self._console.print("📊 [bold]PostgreSQL Info:[/bold]")
        self._console.print(f"   - Version: {server_version}")
        self._console.print(f"   - Data directory: {s.data_dir}")
        self._console.print(f"   - Port: {s.port}")
        self._console.print(f"   - User: {s.app_user}")
        self._console.print(f"   - Connection: {url}")

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def ensure_running(self) -> EnsureResult:
        """Initialize, resume or recover the cluster, then verify it.

        Raises:
            ClusterError: On any fatal condition (missing binaries, directory
                creation failure, init failure, start failure after retries,
                connectivity failure)
        """
        s = self._settings
        self._console.info(f"Initializing (version: {s.version}, data: {s.data_dir})")

        self.check_binaries()
        self.prepare_directories()

        forensic = None
        already_running = False
        if not self._files.is_file(self._data.version_marker):
            self._console.info("No existing cluster found, initializing new cluster")
            path = StartupPath.FIRST_INIT
            if not self._files.is_empty(s.data_dir):
                self._console.warn(
                    "Data directory is not empty but holds no cluster, "
                    "moving its contents aside"
                )
                forensic = self._preserve_and_clear()
            self.initialize_cluster()
        else:
            self._console.info("Existing cluster found, checking integrity...")
            report = self._probe.check_integrity(s.data_dir)
            if report.valid:
                self._console.ok("Data integrity check passed, starting existing cluster")
                path = StartupPath.RESUME
                already_running = self.resume_cluster()
            else:
                self._console.error("Data integrity check failed, recovering cluster...")
                path = StartupPath.RECOVER
                forensic = self.recover_cluster(report.problems)

        server_version = self.verify_connection()
        baseline = self.take_baseline_backup()
        self.print_info(server_version)

        return EnsureResult(
            path=path,
            server_version=server_version,
            forensic_backup=forensic,
            baseline_backup=baseline,
            already_running=already_running,
        )
