"""Engine process control.

Starts and stops PostgreSQL against one data directory. Startup is a
bounded retry loop: attempt counter plus a fixed delay, with the sleep
function injectable so tests can count attempts without waiting.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from loguru import logger

from src.infra.constants import DEFAULT_CONSTANTS
from src.utils.console_like import ConsoleLike, coalesce_console

from .engine import PostgresEngine, StopMode
from .errors import EngineStartError, EngineStopError
from .files import FileOps
from .models import DataDirectory
from .probe import Probe


class EngineState(str, Enum):
    """Lifecycle of one engine process."""

    STOPPED = "stopped"
    STARTING = "starting"
    READY = "ready"
    FAILED = "failed"


@dataclass
class StartResult:
    """Successful start: how many attempts it took."""

    state: EngineState
    attempts: int
    failed_attempts: list[str] = field(default_factory=list)


class ProcessController:
    """Starts, stops and restarts the engine for a data directory."""

    def __init__(
        self,
        engine: PostgresEngine,
        probe: Probe,
        files: FileOps,
        *,
        retry_delay: float = DEFAULT_CONSTANTS.RETRY_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        console: ConsoleLike | None = None,
    ) -> None:
        self._engine = engine
        self._probe = probe
        self._files = files
        self._retry_delay = retry_delay
        self._sleep = sleep
        self._console = coalesce_console(console)
        self.state = EngineState.STOPPED

    def clear_stale_pid(self, data_dir: Path) -> bool:
        """Remove postmaster.pid left by an unclean shutdown.

        The file is only removed when nothing answers the readiness probe,
        so a live server is never mistaken for a stale one.

        Returns:
            True if a stale pid file was removed
        """
        pid_file = DataDirectory(data_dir).pid_file
        if not self._files.is_file(pid_file):
            return False
        if self._engine.is_accepting_connections():
            return False

        self._console.info("Removing stale PID file...")
        self._files.remove_file(pid_file)
        return True

    def tail_log(
        self, log_path: Path, lines: int = DEFAULT_CONSTANTS.LOG_TAIL_LINES
    ) -> str:
        """Return the last lines of the engine log for diagnostics."""
        tail = self._files.tail(log_path, lines)
        if not tail:
            return f"Log file not found or empty: {log_path}"
        return f"Last {len(tail)} lines of {log_path}:\n" + "\n".join(tail)

    def start(
        self,
        data_dir: Path,
        log_path: Path,
        max_retries: int,
        startup_timeout: int,
    ) -> StartResult:
        """Start the engine and wait for readiness, retrying on failure.

        Args:
            data_dir: Data directory to serve
            log_path: File receiving the server log
            max_retries: Total number of attempts
            startup_timeout: Readiness polls per attempt (one per second)

        Returns:
            StartResult with state READY

        Raises:
            EngineStartError: After max_retries failed attempts; details hold
                the tail of the engine log
        """
        self._console.info("Starting PostgreSQL server...")
        failures: list[str] = []

        for attempt in range(1, max_retries + 1):
            self.state = EngineState.STARTING
            self.clear_stale_pid(data_dir)

            result = self._engine.start(data_dir, log_path)
            if result.success and self._probe.is_ready(startup_timeout):
                self.state = EngineState.READY
                self._console.ok("PostgreSQL is ready")
                return StartResult(
                    state=self.state, attempts=attempt, failed_attempts=failures
                )

            reason = (
                "server did not become ready"
                if result.success
                else result.output or f"pg_ctl exited {result.returncode}"
            )
            failures.append(reason)
            logger.debug(f"Start attempt {attempt} failed: {reason}")

            # Stop any partially started process
            self.stop(data_dir, StopMode.FAST, best_effort=True)

            if attempt < max_retries:
                self._console.info(
                    f"PostgreSQL start attempt {attempt} failed, "
                    f"retrying in {self._retry_delay:g} seconds..."
                )
                self._sleep(self._retry_delay)
            else:
                self._console.info(f"PostgreSQL start attempt {attempt} failed")

        self.state = EngineState.FAILED
        raise EngineStartError(
            f"Failed to start PostgreSQL after {max_retries} attempts",
            self.tail_log(log_path),
        )

    def stop(
        self,
        data_dir: Path,
        mode: StopMode = StopMode.FAST,
        *,
        best_effort: bool = False,
    ) -> None:
        """Stop the engine. Stopping a stopped engine is not an error.

        Raises:
            EngineStopError: If not best_effort and the engine still answers
        """
        result = self._engine.stop(data_dir, mode)
        if not result.success:
            if best_effort:
                logger.debug(f"Ignoring stop failure: {result.output}")
            elif self._engine.is_accepting_connections():
                raise EngineStopError("Failed to stop PostgreSQL", result.output or None)
            else:
                logger.debug("Engine already stopped")
        self.state = EngineState.STOPPED

    def restart(
        self,
        data_dir: Path,
        log_path: Path,
        max_retries: int,
        startup_timeout: int,
    ) -> StartResult:
        """Fast stop followed by a start with retries."""
        self._console.warn("Restarting PostgreSQL...")
        self.stop(data_dir, StopMode.FAST, best_effort=True)
        return self.start(data_dir, log_path, max_retries, startup_timeout)
