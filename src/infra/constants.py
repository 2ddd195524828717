"""Cluster constants.

This module centralizes the marker file names, naming conventions, and
fixed thresholds used by the PostgreSQL lifecycle manager.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class ClusterConstants:
    """Constants for the PostgreSQL data directory and its backups.

    All attributes are class-level and immutable.
    """

    # Data directory markers (relative to the data directory)
    VERSION_MARKER: str = "PG_VERSION"
    CONTROL_FILE: str = "global/pg_control"
    CONFIG_FILE: str = "postgresql.conf"
    HBA_FILE: str = "pg_hba.conf"
    PID_FILE: str = "postmaster.pid"

    # Engine binaries that must exist before anything else runs
    REQUIRED_BINARIES: tuple[str, ...] = ("initdb", "pg_ctl", "psql")

    # Backup naming
    BACKUP_PREFIX: str = "data_"
    SAFETY_BACKUP_PREFIX: str = "data_current_"
    STAGING_PREFIX: str = ".staging-"
    TIMESTAMP_FORMAT: str = "%Y%m%d_%H%M%S"

    # Startup and diagnostics
    RETRY_DELAY_SECONDS: float = 5.0
    LOG_TAIL_LINES: int = 20

    # Health thresholds
    DISK_USAGE_WARN_PERCENT: int = 80
    LONG_QUERY_MINUTES: int = 5

    # Matches data_20231201_120000 and data_current_20231201_120000[_2]
    BACKUP_NAME_PATTERN: re.Pattern[str] = re.compile(
        r"^data_(current_)?\d{8}_\d{6}(_\d+)?$"
    )

    @property
    def required_markers(self) -> tuple[str, ...]:
        """Files a valid data directory must contain, in report order."""
        return (self.VERSION_MARKER, self.CONTROL_FILE, self.CONFIG_FILE)


DEFAULT_CONSTANTS = ClusterConstants()
