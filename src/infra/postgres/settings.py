"""Cluster settings.

All configuration is resolved once, at the CLI boundary, into a
`ClusterSettings` instance that is passed to every component. Nothing
below this module reads the environment.
"""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from src.infra.utils.config_utils import substitute_env_vars

CONFIG_PATH = Path("devdb.yaml")

# Environment variable -> ClusterSettings field
ENV_FIELDS: dict[str, str] = {
    "POSTGRES_VERSION": "version",
    "DATABASE_USERNAME": "app_user",
    "DATABASE_PASSWORD": "app_password",
    "POSTGRES_PASSWORD": "superuser_password",
    "PGDATA": "data_dir",
    "PG_LOG": "log_path",
    "PG_SOCKET_DIR": "socket_dir",
    "PGPORT": "port",
    "BACKUP_DIR": "backup_dir",
    "MAX_BACKUPS": "max_backups",
    "PG_MAX_RETRIES": "max_retries",
    "PG_STARTUP_TIMEOUT": "startup_timeout",
    "PG_BIN_ROOT": "bin_root",
    "DEVDB_SERVICE_USER": "service_user",
    "DEVDB_USE_SUDO": "use_sudo",
    "DEVDB_BASELINE_MARKER": "baseline_marker",
}


class ClusterSettings(BaseModel):
    """Settings for one PostgreSQL cluster in the dev container."""

    # Engine
    version: str = "15"
    bin_root: Path = Path("/usr/lib/postgresql")
    default_cluster_root: Path | None = Path("/var/lib/postgresql")
    service_user: str = "postgres"
    use_sudo: bool = True
    encoding: str = "UTF8"
    locale: str = "C.UTF-8"

    # Roles
    superuser: str = "postgres"
    superuser_password: str | None = None
    app_user: str = "dbuser"
    app_password: str = "password"

    # Network
    host: str = "localhost"
    port: int = 5432

    # Paths
    data_dir: Path = Path("/var/lib/postgresql-data")
    log_path: Path = Path("/var/log/postgresql/postgresql.log")
    socket_dir: Path = Path("/var/run/postgresql")
    backup_dir: Path = Path("/var/lib/postgresql-backup")
    baseline_marker: Path = Path("/tmp/devdb-baseline-backup")

    # Lifecycle policy
    max_backups: int = Field(default=7, ge=1)
    max_retries: int = Field(default=3, ge=1)
    startup_timeout: int = Field(default=30, ge=1)
    retry_delay: float = Field(default=5.0, ge=0)

    @property
    def bin_dir(self) -> Path:
        """Directory holding the versioned PostgreSQL binaries."""
        return self.bin_root / self.version / "bin"

    @property
    def log_dir(self) -> Path:
        return self.log_path.parent

    @property
    def effective_superuser_password(self) -> str:
        """Superuser password, falling back to the application password."""
        return self.superuser_password or self.app_password

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ClusterSettings":
        """Build settings from environment variables, defaults for the rest.

        Raises:
            ValueError: If a variable holds a value of the wrong type
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {
            field: env[var] for var, field in ENV_FIELDS.items() if env.get(var)
        }
        try:
            return cls(**values)
        except ValidationError as e:
            raise ValueError(f"Invalid configuration: {e}") from e


def load_settings(file_path: Path | None = None) -> ClusterSettings:
    """
    Load cluster settings.

    Args:
        file_path: Optional YAML file. Defaults to $DEVDB_CONFIG, then
            ./devdb.yaml. When no file exists, settings come from the
            environment (see ENV_FIELDS).

    Returns:
        Validated ClusterSettings

    Raises:
        ValueError: If the YAML is malformed, lacks a 'config' key, references
            a missing required variable, or fails validation

    YAML Structure Requirements:
        The YAML file must have a top-level 'config:' key whose keys are
        ClusterSettings field names. Values may use ${VAR:-default}.
    """
    load_dotenv()

    if file_path is None:
        env_path = os.getenv("DEVDB_CONFIG")
        file_path = Path(env_path) if env_path else CONFIG_PATH

    if not file_path.exists():
        logger.debug(f"No config file at {file_path}, using environment")
        return ClusterSettings.from_env()

    logger.info(f"Loading configuration from {file_path}")
    content = substitute_env_vars(file_path.read_text())

    try:
        loaded: dict[str, Any] = yaml.safe_load(content)
        if not loaded:
            raise ValueError("Failed to parse YAML")
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML: {e}") from e

    if not isinstance(loaded, dict):
        raise ValueError("Invalid YAML structure: top level must be a mapping")
    if "config" not in loaded:
        raise ValueError("Invalid YAML structure: missing 'config' key")

    section = loaded["config"] or {}
    if not isinstance(section, dict):
        raise ValueError("Invalid YAML structure: 'config' must be a mapping")

    # Empty strings from ${VAR:-} mean "unset"
    config_data = {k: v for k, v in section.items() if v != ""}

    try:
        return ClusterSettings(**config_data)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e
