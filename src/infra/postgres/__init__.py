"""PostgreSQL lifecycle management for the dev container.

This module provides Python implementations of the container's PostgreSQL
scripts: cluster initialization, integrity checks, corruption recovery,
start/stop with retries, whole-directory backups with retention, and
health checks.

They replace the bash scripts previously in .devcontainer/scripts/services/
and are used by the `devdb-cli` commands.
"""

from .backup import BackupManager, RestoreResult, RetentionPolicy
from .connection import PostgresConnection
from .engine import PgCtlEngine, PostgresEngine, StopMode
from .errors import ClusterError
from .files import FileOps, LocalFileOps, SudoFileOps, get_file_ops
from .health import HealthChecker
from .models import BackupHandle, DataDirectory
from .probe import IntegrityReport, Probe
from .process import EngineState, ProcessController, StartResult
from .recovery import EnsureResult, RecoveryOrchestrator, StartupPath
from .settings import ClusterSettings, load_settings

__all__ = [
    "BackupHandle",
    "BackupManager",
    "ClusterError",
    "ClusterSettings",
    "DataDirectory",
    "EngineState",
    "EnsureResult",
    "FileOps",
    "HealthChecker",
    "IntegrityReport",
    "LocalFileOps",
    "PgCtlEngine",
    "PostgresConnection",
    "PostgresEngine",
    "Probe",
    "ProcessController",
    "RecoveryOrchestrator",
    "RestoreResult",
    "RetentionPolicy",
    "StartResult",
    "StartupPath",
    "StopMode",
    "SudoFileOps",
    "get_file_ops",
    "load_settings",
]
