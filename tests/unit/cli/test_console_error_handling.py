import pytest
import typer

from src.cli.shared.console import CLIConsole, with_error_handling
from src.infra.postgres.errors import BackupNotFoundError, ClusterError


def test_with_error_handling_handles_cluster_error():
    @with_error_handling
    def _command() -> None:
        raise ClusterError("Boom", details="extra")

    with pytest.raises(typer.Exit) as excinfo:
        _command()

    assert excinfo.value.exit_code == 1


def test_with_error_handling_handles_error_subclasses():
    @with_error_handling
    def _command() -> None:
        raise BackupNotFoundError("Backup not found: data_x", "data_20240101_120000")

    with pytest.raises(typer.Exit) as excinfo:
        _command()

    assert excinfo.value.exit_code == 1


def test_with_error_handling_handles_keyboard_interrupt():
    @with_error_handling
    def _command() -> None:
        raise KeyboardInterrupt

    with pytest.raises(typer.Exit) as excinfo:
        _command()

    assert excinfo.value.exit_code == 130


def test_with_error_handling_lets_other_errors_through():
    @with_error_handling
    def _command() -> None:
        raise RuntimeError("bug")

    with pytest.raises(RuntimeError):
        _command()


def test_confirm_action_accepts_yes(monkeypatch):
    cli_console = CLIConsole()
    monkeypatch.setattr(cli_console.console, "input", lambda prompt: " Yes ")

    assert cli_console.confirm_action("Restore backup") is True


def test_confirm_action_defaults_to_no(monkeypatch):
    cli_console = CLIConsole()
    monkeypatch.setattr(cli_console.console, "input", lambda prompt: "")

    assert cli_console.confirm_action("Restore backup") is False


def test_confirm_action_eof_cancels(monkeypatch):
    cli_console = CLIConsole()

    def closed_stdin(prompt):
        raise EOFError

    monkeypatch.setattr(cli_console.console, "input", closed_stdin)

    assert cli_console.confirm_action("Restore backup") is False
