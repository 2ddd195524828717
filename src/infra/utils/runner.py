"""Command runner for executing external commands.

This module provides the base command execution functionality used by
the engine control surface and the privileged filesystem operations.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from loguru import logger


@dataclass
class CommandResult:
    """Result of a command execution."""

    success: bool
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0

    @property
    def output(self) -> str:
        """Combined output, stderr last."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class CommandRunner:
    """Low-level command executor with consistent result handling.

    All PostgreSQL binaries and `sudo` filesystem helpers go through this
    runner, so tests can replace a single object to observe every command.
    """

    def __init__(self, cwd: Path | None = None, sudo: bool = False) -> None:
        """Initialize the command runner.

        Args:
            cwd: Working directory for commands (defaults to the process cwd)
            sudo: Whether `as_user` should prefix commands with `sudo -u`
        """
        self.cwd = cwd
        self.sudo = sudo

    def as_user(self, user: str, cmd: Sequence[str]) -> list[str]:
        """Build a command line that runs `cmd` as `user`."""
        if not self.sudo:
            return list(cmd)
        return ["sudo", "-u", user, *cmd]

    def as_root(self, cmd: Sequence[str]) -> list[str]:
        """Build a command line that runs `cmd` with elevated privileges."""
        if not self.sudo:
            return list(cmd)
        return ["sudo", *cmd]

    def run(
        self,
        cmd: Sequence[str],
        *,
        input: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Execute a command and return structured result.

        Args:
            cmd: Command and arguments as a sequence
            input: Text piped to stdin
            timeout: Seconds before the command is killed

        Returns:
            CommandResult with success status, output, and return code
        """
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                list(cmd),
                cwd=self.cwd,
                input=input,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except FileNotFoundError as e:
            logger.debug(f"Command not found: {cmd[0]}")
            return CommandResult(success=False, stderr=str(e), returncode=127)
        except subprocess.TimeoutExpired as e:
            logger.debug(f"Command timed out after {timeout}s: {cmd[0]}")
            return CommandResult(
                success=False, stderr=f"Timed out after {e.timeout}s", returncode=124
            )

        logger.debug(f"Exit code {result.returncode}: {cmd[0]}")
        return CommandResult(
            success=result.returncode == 0,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            returncode=result.returncode,
        )
