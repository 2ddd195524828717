"""Data types shared by the lifecycle components."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from src.infra.constants import DEFAULT_CONSTANTS, ClusterConstants


@dataclass(frozen=True)
class DataDirectory:
    """A PostgreSQL data directory and the files that define it."""

    path: Path
    constants: ClusterConstants = DEFAULT_CONSTANTS

    @property
    def version_marker(self) -> Path:
        return self.path / self.constants.VERSION_MARKER

    @property
    def control_file(self) -> Path:
        return self.path / self.constants.CONTROL_FILE

    @property
    def config_file(self) -> Path:
        return self.path / self.constants.CONFIG_FILE

    @property
    def hba_file(self) -> Path:
        return self.path / self.constants.HBA_FILE

    @property
    def pid_file(self) -> Path:
        return self.path / self.constants.PID_FILE

    def marker(self, relative: str) -> Path:
        return self.path / relative


@dataclass(frozen=True)
class BackupHandle:
    """A registered whole-directory backup.

    Attributes:
        name: Directory name, e.g. data_20231201_120000
        path: Absolute path of the backup directory
        size_bytes: On-disk size of the directory tree
        modified: Modification time, used for retention ordering
    """

    name: str
    path: Path
    size_bytes: int
    modified: datetime

    @property
    def is_safety_copy(self) -> bool:
        """True for data_current_* copies taken by restore."""
        return self.name.startswith(DEFAULT_CONSTANTS.SAFETY_BACKUP_PREFIX)

    @property
    def size_human(self) -> str:
        return format_size(self.size_bytes)


@dataclass(frozen=True)
class EntryStat:
    """Name, size and mtime of one directory entry."""

    path: Path
    size_bytes: int
    mtime: float


def format_size(size_bytes: int) -> str:
    """Format a byte count the way `du -h` does (1K, 2.5M, ...)."""
    size = float(size_bytes)
    for unit in ("B", "K", "M", "G"):
        if size < 1024:
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}T"
