"""Data directory and readiness checks.

The probe only looks. It never repairs anything; deciding what to do about
a failed check is the orchestrator's job.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from src.infra.constants import DEFAULT_CONSTANTS
from src.utils.console_like import ConsoleLike, coalesce_console

from .engine import PostgresEngine
from .files import FileOps
from .models import DataDirectory


@dataclass
class IntegrityReport:
    """Outcome of a data directory integrity check."""

    valid: bool
    missing: list[str] = field(default_factory=list)
    unreadable: list[str] = field(default_factory=list)

    @property
    def problems(self) -> list[str]:
        """Every missing or unreadable marker, for diagnostics."""
        return [*self.missing, *self.unreadable]


class Probe:
    """Checks data directory structure and engine readiness."""

    def __init__(
        self,
        engine: PostgresEngine,
        files: FileOps,
        service_user: str,
        *,
        sleep: Callable[[float], None] = time.sleep,
        console: ConsoleLike | None = None,
    ) -> None:
        self._engine = engine
        self._files = files
        self._service_user = service_user
        self._sleep = sleep
        self._console = coalesce_console(console)

    def check_integrity(self, data_dir: Path) -> IntegrityReport:
        """Check that every required marker exists and pg_control is readable.

        Args:
            data_dir: Data directory to inspect

        Returns:
            IntegrityReport naming all missing markers, not just the first
        """
        directory = DataDirectory(data_dir)
        missing = [
            marker
            for marker in DEFAULT_CONSTANTS.required_markers
            if not self._files.is_file(directory.marker(marker))
        ]

        unreadable = []
        if DEFAULT_CONSTANTS.CONTROL_FILE not in missing and not (
            self._files.is_readable_by(directory.control_file, self._service_user)
        ):
            unreadable.append(DEFAULT_CONSTANTS.CONTROL_FILE)

        return IntegrityReport(
            valid=not missing and not unreadable,
            missing=missing,
            unreadable=unreadable,
        )

    def is_ready(self, timeout_seconds: int) -> bool:
        """Poll the readiness probe once per second.

        Returns:
            True on the first successful poll, False after timeout_seconds polls
        """
        for attempt in range(1, timeout_seconds + 1):
            if self._engine.is_accepting_connections():
                return True
            self._console.print(
                f"[dim]⏳ Waiting for server... ({attempt}/{timeout_seconds})[/dim]"
            )
            self._sleep(1)
        return False
