"""PostgreSQL data directory backups.

Backups are whole copies of the data directory, taken while the engine is
stopped so the files are consistent. Each lives in
`<backup_root>/data_<YYYYMMDD_HHMMSS>`; retention keeps the newest N by
modification time.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from loguru import logger

from src.infra.constants import DEFAULT_CONSTANTS
from src.utils.console_like import ConsoleLike, coalesce_console

from .engine import PostgresEngine, StopMode
from .errors import (
    BackupError,
    BackupNotFoundError,
    ClusterError,
    ConfirmationRequiredError,
    EngineNotRunningError,
    FileOpsError,
    RestoreError,
)
from .files import FileOps
from .models import BackupHandle, DataDirectory, EntryStat
from .process import ProcessController
from .settings import ClusterSettings


@dataclass(frozen=True)
class RetentionPolicy:
    """Keep at most `max_backups` backups, evicting the oldest first."""

    max_backups: int

    def __post_init__(self) -> None:
        if self.max_backups < 1:
            raise ValueError("max_backups must be at least 1")

    def select_evictions(self, backups: list[BackupHandle]) -> list[BackupHandle]:
        """Return the backups to delete, oldest first."""
        ordered = sorted(backups, key=lambda b: (b.modified, b.name))
        excess = len(ordered) - self.max_backups
        return ordered[:excess] if excess > 0 else []


@dataclass
class RestoreResult:
    """Outcome of a restore request."""

    restored: bool
    backup: BackupHandle
    safety_backup: BackupHandle | None = None
    ready: bool = False


class BackupManager:
    """Creates, lists, restores and prunes data directory backups.

    Create and restore stop the engine: treat them as full outages.
    """

    def __init__(
        self,
        settings: ClusterSettings,
        engine: PostgresEngine,
        controller: ProcessController,
        files: FileOps,
        *,
        clock: Callable[[], datetime] = datetime.now,
        console: ConsoleLike | None = None,
    ) -> None:
        self._settings = settings
        self._engine = engine
        self._controller = controller
        self._files = files
        self._clock = clock
        self._console = coalesce_console(console)
        self.backup_dir = settings.backup_dir
        self.retention = RetentionPolicy(settings.max_backups)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ensure_backup_dir(self) -> None:
        if not self._files.is_dir(self.backup_dir):
            self._console.info(f"Creating backup directory: {self.backup_dir}")
        self._files.ensure_dir(
            self.backup_dir, 0o755, owner=self._settings.service_user
        )

    def _unique_name(self, prefix: str) -> str:
        base = f"{prefix}{self._clock().strftime(DEFAULT_CONSTANTS.TIMESTAMP_FORMAT)}"
        name = base
        suffix = 2
        while self._files.is_dir(self.backup_dir / name):
            name = f"{base}_{suffix}"
            suffix += 1
        return name

    def _handle(self, entry: EntryStat) -> BackupHandle:
        return BackupHandle(
            name=entry.path.name,
            path=entry.path,
            size_bytes=entry.size_bytes,
            modified=datetime.fromtimestamp(entry.mtime),
        )

    def _start_engine(self) -> None:
        s = self._settings
        self._controller.start(s.data_dir, s.log_path, s.max_retries, s.startup_timeout)

    def _restart_best_effort(self) -> None:
        try:
            self._start_engine()
        except ClusterError as e:
            logger.warning(f"Restart after failed backup also failed: {e}")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def snapshot(
        self,
        data_dir: Path | None = None,
        *,
        prefix: str = DEFAULT_CONSTANTS.BACKUP_PREFIX,
    ) -> BackupHandle:
        """Copy a data directory into the backup root, engine untouched.

        The copy lands in a hidden staging directory first and is renamed
        into place only once complete, so a failed copy is never listed.

        Raises:
            BackupError: If the copy fails (the staging copy is removed)
        """
        source = data_dir or self._settings.data_dir
        self._ensure_backup_dir()

        name = self._unique_name(prefix)
        staging = self.backup_dir / f"{DEFAULT_CONSTANTS.STAGING_PREFIX}{name}"
        target = self.backup_dir / name

        try:
            self._files.copy_tree(source, staging)
            self._files.move(staging, target)
        except FileOpsError as e:
            try:
                self._files.remove_tree(staging)
            except FileOpsError as cleanup_error:
                logger.warning(f"Could not remove staging copy: {cleanup_error}")
            raise BackupError(f"Failed to back up {source}", e.details) from e

        for entry in self._files.list_dirs(self.backup_dir):
            if entry.path.name == name:
                return self._handle(entry)
        return BackupHandle(
            name=name, path=target, size_bytes=0, modified=self._clock()
        )

    def create(self) -> BackupHandle:
        """Create a consistent backup of the live data directory.

        Procedure: stop (fast), copy, restart, apply retention. If the copy
        fails the engine is still restarted before the error propagates.

        Raises:
            EngineNotRunningError: If PostgreSQL is not running
            BackupError: If the copy fails
        """
        s = self._settings
        if not self._engine.is_accepting_connections():
            raise EngineNotRunningError(
                "PostgreSQL is not running. Please start PostgreSQL first."
            )

        self._console.print("\n[bold]== Creating PostgreSQL Backup ==[/bold]")
        self._console.info(f"Data dir: {s.data_dir}")
        self._console.info(f"Backup dir: {self.backup_dir}")

        self._console.info("Stopping PostgreSQL for backup...")
        self._controller.stop(s.data_dir, StopMode.FAST)

        try:
            handle = self.snapshot(s.data_dir)
        except BackupError:
            self._console.error("Failed to create backup")
            self._restart_best_effort()
            raise

        self._console.ok(f"Backup created successfully: {handle.path}")
        self._start_engine()
        self.cleanup()
        return handle

    def list_backups(self, *, newest_first: bool = True) -> list[BackupHandle]:
        """List backups under the backup root.

        Returns:
            Backups ordered by modification time (then name)
        """
        backups = [
            self._handle(entry)
            for entry in self._files.list_dirs(self.backup_dir)
            if DEFAULT_CONSTANTS.BACKUP_NAME_PATTERN.match(entry.path.name)
        ]
        return sorted(
            backups, key=lambda b: (b.modified, b.name), reverse=newest_first
        )

    def restore(
        self,
        name: str,
        *,
        assume_yes: bool = False,
        confirm: Callable[[str], bool] | None = None,
    ) -> RestoreResult:
        """Replace the live data directory with a backup.

        Args:
            name: Backup directory name, e.g. data_20231201_120000
            assume_yes: Skip confirmation (non-interactive callers)
            confirm: Called with a prompt; must return True to proceed

        Returns:
            RestoreResult; restored is False if the user declined

        Raises:
            BackupNotFoundError: If the backup does not exist (data untouched)
            ConfirmationRequiredError: If neither assume_yes nor confirm given
            RestoreError: If clearing or copying the data directory fails
        """
        s = self._settings
        backup_path = self.backup_dir / name
        available = self.list_backups()
        backup = next((b for b in available if b.name == name), None)

        if backup is None or not self._files.is_dir(backup_path):
            listing = "\n".join(b.name for b in available) or "No backups found"
            raise BackupNotFoundError(f"Backup not found: {name}", listing)

        if not assume_yes:
            if confirm is None:
                raise ConfirmationRequiredError(
                    "Restore overwrites the current PostgreSQL data",
                    "Pass --yes to restore non-interactively.",
                )
            if not confirm(f"Restore from '{name}'?"):
                self._console.info("Restore cancelled")
                return RestoreResult(restored=False, backup=backup)

        self._console.info(f"Restoring from backup: {name}")
        self._console.info("Stopping PostgreSQL...")
        self._controller.stop(s.data_dir, StopMode.FAST)

        safety = None
        if not self._files.is_empty(s.data_dir):
            try:
                safety = self.snapshot(
                    s.data_dir, prefix=DEFAULT_CONSTANTS.SAFETY_BACKUP_PREFIX
                )
            except BackupError:
                self._console.error("Failed to back up current data, restore aborted")
                self._restart_best_effort()
                raise
            self._console.info(f"Created backup of current data: {safety.name}")

        try:
            self._files.clear_dir(s.data_dir)
            self._files.copy_contents(backup_path, s.data_dir)
            self._files.remove_file(DataDirectory(s.data_dir).pid_file)
        except FileOpsError as e:
            hint = f"\nCurrent data was saved as {safety.name}" if safety else ""
            raise RestoreError(
                f"Failed to restore from backup {name}", f"{e.message}{hint}"
            ) from e

        self._console.ok("Restore completed successfully")
        self._start_engine()
        self._console.ok("PostgreSQL is ready after restore")
        return RestoreResult(
            restored=True, backup=backup, safety_backup=safety, ready=True
        )

    def cleanup(self, max_backups: int | None = None) -> int:
        """Delete the oldest backups until at most max_backups remain.

        Returns:
            Number of backups removed
        """
        policy = (
            RetentionPolicy(max_backups) if max_backups is not None else self.retention
        )
        evictions = policy.select_evictions(self.list_backups(newest_first=False))
        if not evictions:
            return 0

        self._console.info(
            f"Cleaning up old backups (keeping {policy.max_backups}, "
            f"removing {len(evictions)})"
        )
        for backup in evictions:
            self._console.info(f"Removing old backup: {backup.name}")
            self._files.remove_tree(backup.path)

        self._console.ok("Cleanup completed")
        return len(evictions)
