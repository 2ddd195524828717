"""Privileged filesystem operations.

Every mutation of the data directory and the backup root goes through a
`FileOps` implementation:

- `LocalFileOps` works directly with pathlib/shutil. It is used when the
  manager already runs as the service identity, and in tests.
- `SudoFileOps` shells out through `sudo` the way the container scripts do,
  for when the data directory belongs to another user.
"""

from __future__ import annotations

import os
import shutil
from collections import deque
from pathlib import Path
from typing import Protocol

from loguru import logger

from src.infra.utils.runner import CommandRunner

from .errors import FileOpsError
from .models import EntryStat


class FileOps(Protocol):
    def is_file(self, path: Path) -> bool: ...

    def is_dir(self, path: Path) -> bool: ...

    def is_empty(self, path: Path) -> bool: ...

    def is_readable_by(self, path: Path, user: str) -> bool: ...

    def ensure_dir(self, path: Path, mode: int, owner: str | None = None) -> None: ...

    def copy_tree(self, src: Path, dst: Path) -> None: ...

    def copy_contents(self, src: Path, dst: Path) -> None: ...

    def move(self, src: Path, dst: Path) -> None: ...

    def remove_tree(self, path: Path) -> None: ...

    def clear_dir(self, path: Path) -> None: ...

    def remove_file(self, path: Path) -> None: ...

    def write_text(
        self, path: Path, text: str, *, append: bool = False, owner: str | None = None
    ) -> None: ...

    def tail(self, path: Path, lines: int) -> list[str]: ...

    def list_dirs(self, root: Path) -> list[EntryStat]: ...


def _tree_size(path: Path) -> int:
    total = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for name in filenames:
            try:
                total += os.lstat(os.path.join(dirpath, name)).st_size
            except OSError:
                continue
    return total


class LocalFileOps:
    """Direct filesystem access as the current user."""

    def is_file(self, path: Path) -> bool:
        return path.is_file()

    def is_dir(self, path: Path) -> bool:
        return path.is_dir()

    def is_empty(self, path: Path) -> bool:
        """True if `path` is missing or has no entries."""
        if not path.is_dir():
            return True
        return next(path.iterdir(), None) is None

    def is_readable_by(self, path: Path, user: str) -> bool:
        # Already running as the service identity
        return os.access(path, os.R_OK)

    def ensure_dir(self, path: Path, mode: int, owner: str | None = None) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileOpsError(f"Cannot create directory {path}", str(e)) from e
        try:
            path.chmod(mode)
            if owner and os.geteuid() == 0:
                shutil.chown(path, owner, owner)
        except (OSError, LookupError) as e:
            logger.warning(f"Could not set ownership/mode on {path}: {e}")

    def copy_tree(self, src: Path, dst: Path) -> None:
        """Copy `src` to a new directory `dst`.

        `dst` gets a fresh mtime, as `cp -r` gives it; retention relies on it.
        """
        try:
            shutil.copytree(src, dst, symlinks=True)
            os.utime(dst, None)
        except (OSError, shutil.Error) as e:
            raise FileOpsError(f"Failed to copy {src} to {dst}", str(e)) from e
        logger.debug(f"Copied {src} -> {dst}")

    def copy_contents(self, src: Path, dst: Path) -> None:
        """Copy every entry of `src` into the existing directory `dst`."""
        try:
            shutil.copytree(src, dst, symlinks=True, dirs_exist_ok=True)
        except (OSError, shutil.Error) as e:
            raise FileOpsError(f"Failed to copy {src}/* to {dst}", str(e)) from e
        logger.debug(f"Copied contents {src} -> {dst}")

    def move(self, src: Path, dst: Path) -> None:
        try:
            os.rename(src, dst)
        except OSError as e:
            raise FileOpsError(f"Failed to rename {src} to {dst}", str(e)) from e

    def remove_tree(self, path: Path) -> None:
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise FileOpsError(f"Failed to remove {path}", str(e)) from e
        logger.debug(f"Removed {path}")

    def clear_dir(self, path: Path) -> None:
        """Delete the contents of `path`, keeping the directory itself."""
        if not path.is_dir():
            return
        for entry in path.iterdir():
            if entry.is_dir() and not entry.is_symlink():
                self.remove_tree(entry)
            else:
                self.remove_file(entry)

    def remove_file(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise FileOpsError(f"Failed to remove {path}", str(e)) from e

    def write_text(
        self, path: Path, text: str, *, append: bool = False, owner: str | None = None
    ) -> None:
        try:
            with open(path, "a" if append else "w") as f:
                f.write(text)
        except OSError as e:
            raise FileOpsError(f"Failed to write {path}", str(e)) from e

    def tail(self, path: Path, lines: int) -> list[str]:
        if not path.is_file():
            return []
        try:
            with open(path, errors="replace") as f:
                return [line.rstrip("\n") for line in deque(f, maxlen=lines)]
        except OSError as e:
            logger.debug(f"Could not read {path}: {e}")
            return []

    def list_dirs(self, root: Path) -> list[EntryStat]:
        if not root.is_dir():
            return []
        entries = []
        for entry in root.iterdir():
            if entry.is_dir() and not entry.is_symlink():
                entries.append(
                    EntryStat(
                        path=entry,
                        size_bytes=_tree_size(entry),
                        mtime=entry.stat().st_mtime,
                    )
                )
        return entries


class SudoFileOps:
    """Filesystem access through `sudo`, for directories owned by postgres."""

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def _ok(self, *cmd: str) -> bool:
        return self._runner.run(self._runner.as_root(cmd)).success

    def _must(self, message: str, *cmd: str) -> str:
        result = self._runner.run(self._runner.as_root(cmd))
        if not result.success:
            raise FileOpsError(message, result.output or None)
        return result.stdout

    def is_file(self, path: Path) -> bool:
        return self._ok("test", "-f", str(path))

    def is_dir(self, path: Path) -> bool:
        return self._ok("test", "-d", str(path))

    def is_empty(self, path: Path) -> bool:
        result = self._runner.run(self._runner.as_root(["ls", "-A", str(path)]))
        return not result.success or not result.stdout.strip()

    def is_readable_by(self, path: Path, user: str) -> bool:
        cmd = self._runner.as_user(user, ["test", "-r", str(path)])
        return self._runner.run(cmd).success

    def ensure_dir(self, path: Path, mode: int, owner: str | None = None) -> None:
        self._must(f"Cannot create directory {path}", "mkdir", "-p", str(path))
        if owner and not self._ok("chown", f"{owner}:{owner}", str(path)):
            logger.warning(f"Could not chown {path} to {owner}")
        if not self._ok("chmod", format(mode, "o"), str(path)):
            logger.warning(f"Could not chmod {path} to {mode:o}")

    def copy_tree(self, src: Path, dst: Path) -> None:
        self._must(f"Failed to copy {src} to {dst}", "cp", "-a", str(src), str(dst))
        self._must(f"Failed to touch {dst}", "touch", str(dst))

    def copy_contents(self, src: Path, dst: Path) -> None:
        # "src/." copies dotfiles too, unlike a shell glob
        self._must(
            f"Failed to copy {src}/* to {dst}", "cp", "-a", f"{src}/.", str(dst)
        )

    def move(self, src: Path, dst: Path) -> None:
        self._must(f"Failed to rename {src} to {dst}", "mv", "-T", str(src), str(dst))

    def remove_tree(self, path: Path) -> None:
        self._must(f"Failed to remove {path}", "rm", "-rf", str(path))

    def clear_dir(self, path: Path) -> None:
        self._must(
            f"Failed to clear {path}",
            "find",
            str(path),
            "-mindepth",
            "1",
            "-delete",
        )

    def remove_file(self, path: Path) -> None:
        self._must(f"Failed to remove {path}", "rm", "-f", str(path))

    def write_text(
        self, path: Path, text: str, *, append: bool = False, owner: str | None = None
    ) -> None:
        tee = ["tee", "-a", str(path)] if append else ["tee", str(path)]
        cmd = self._runner.as_user(owner, tee) if owner else self._runner.as_root(tee)
        result = self._runner.run(cmd, input=text)
        if not result.success:
            raise FileOpsError(f"Failed to write {path}", result.output or None)

    def tail(self, path: Path, lines: int) -> list[str]:
        result = self._runner.run(
            self._runner.as_root(["tail", "-n", str(lines), str(path)])
        )
        if not result.success:
            return []
        return result.stdout.splitlines()

    def list_dirs(self, root: Path) -> list[EntryStat]:
        result = self._runner.run(
            self._runner.as_root(
                [
                    "find",
                    str(root),
                    "-mindepth",
                    "1",
                    "-maxdepth",
                    "1",
                    "-type",
                    "d",
                    "-printf",
                    "%T@\t%p\n",
                ]
            )
        )
        if not result.success:
            return []

        entries = []
        for line in result.stdout.splitlines():
            mtime, _, raw_path = line.partition("\t")
            path = Path(raw_path)
            du = self._runner.run(self._runner.as_root(["du", "-sb", str(path)]))
            size = int(du.stdout.split()[0]) if du.success and du.stdout else 0
            entries.append(EntryStat(path=path, size_bytes=size, mtime=float(mtime)))
        return entries


def get_file_ops(runner: CommandRunner) -> FileOps:
    """Pick the implementation matching the runner's privilege mode."""
    return SudoFileOps(runner) if runner.sudo else LocalFileOps()
