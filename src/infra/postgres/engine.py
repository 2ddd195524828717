"""PostgreSQL engine control surface.

Wraps the versioned PostgreSQL binaries (initdb, pg_ctl, pg_isready, psql,
createuser). Commands run as the service identity so that peer
authentication over the Unix socket works for the superuser.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Protocol

from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.utils.runner import CommandResult, CommandRunner

from .settings import ClusterSettings


class StopMode(str, Enum):
    """pg_ctl shutdown modes used by the manager."""

    FAST = "fast"


def quote_literal(value: str) -> str:
    """Quote a value as an SQL string literal."""
    return "'" + value.replace("'", "''") + "'"


def quote_ident(value: str) -> str:
    """Quote a value as an SQL identifier."""
    return '"' + value.replace('"', '""') + '"'


class PostgresEngine(Protocol):
    def missing_binaries(self) -> list[str]: ...

    def installed_versions(self) -> list[str]: ...

    def init_cluster(self, data_dir: Path) -> CommandResult: ...

    def start(self, data_dir: Path, log_path: Path) -> CommandResult: ...

    def stop(self, data_dir: Path, mode: StopMode) -> CommandResult: ...

    def is_accepting_connections(self) -> bool: ...

    def query(self, sql: str) -> CommandResult: ...

    def create_role(self, name: str) -> CommandResult: ...


class PgCtlEngine:
    """Engine control through the PostgreSQL command line tools."""

    def __init__(self, settings: ClusterSettings, runner: CommandRunner) -> None:
        self._settings = settings
        self._runner = runner

    def _bin(self, name: str) -> str:
        return str(self._settings.bin_dir / name)

    def _run(self, cmd: list[str]) -> CommandResult:
        return self._runner.run(self._runner.as_user(self._settings.service_user, cmd))

    def _conn_args(self) -> list[str]:
        s = self._settings
        return ["-h", str(s.socket_dir), "-p", str(s.port)]

    def missing_binaries(self) -> list[str]:
        """Return required binaries that are absent or not executable."""
        bin_dir = self._settings.bin_dir
        if not bin_dir.is_dir():
            return [str(bin_dir)]
        return [
            str(bin_dir / name)
            for name in DEFAULT_CONSTANTS.REQUIRED_BINARIES
            if not os.access(bin_dir / name, os.X_OK)
        ]

    def installed_versions(self) -> list[str]:
        root = self._settings.bin_root
        if not root.is_dir():
            return []
        return sorted(p.name for p in root.iterdir() if p.is_dir())

    def init_cluster(self, data_dir: Path) -> CommandResult:
        s = self._settings
        return self._run(
            [
                self._bin("initdb"),
                "-D",
                str(data_dir),
                f"--encoding={s.encoding}",
                f"--locale={s.locale}",
            ]
        )

    def start(self, data_dir: Path, log_path: Path) -> CommandResult:
        return self._run(
            [self._bin("pg_ctl"), "-D", str(data_dir), "-l", str(log_path), "start"]
        )

    def stop(self, data_dir: Path, mode: StopMode = StopMode.FAST) -> CommandResult:
        return self._run(
            [self._bin("pg_ctl"), "-D", str(data_dir), "stop", "-m", mode.value]
        )

    def is_accepting_connections(self) -> bool:
        return self._run([self._bin("pg_isready"), "-q", *self._conn_args()]).success

    def query(self, sql: str) -> CommandResult:
        """Run SQL as the superuser; rows come back unaligned, tuples only."""
        return self._run(
            [
                self._bin("psql"),
                "-X",
                "-q",
                "-t",
                "-A",
                "-v",
                "ON_ERROR_STOP=1",
                *self._conn_args(),
                "-U",
                self._settings.superuser,
                "-d",
                "postgres",
                "-c",
                sql,
            ]
        )

    def create_role(self, name: str) -> CommandResult:
        return self._run(
            [
                self._bin("createuser"),
                *self._conn_args(),
                "-U",
                self._settings.superuser,
                "-s",
                name,
            ]
        )
