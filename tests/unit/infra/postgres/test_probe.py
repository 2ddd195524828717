"""Tests for data directory integrity and readiness checks."""

from unittest.mock import Mock

from src.infra.postgres import Probe
from tests.fixtures import make_data_dir


def test_check_integrity_valid_directory(probe, cluster_settings):
    """A directory with every marker passes."""
    make_data_dir(cluster_settings.data_dir)

    report = probe.check_integrity(cluster_settings.data_dir)

    assert report.valid is True
    assert report.missing == []
    assert report.problems == []


def test_check_integrity_reports_every_missing_marker(probe, cluster_settings):
    """All missing markers are listed, in a stable order."""
    cluster_settings.data_dir.mkdir()

    report = probe.check_integrity(cluster_settings.data_dir)

    assert report.valid is False
    assert report.missing == ["PG_VERSION", "global/pg_control", "postgresql.conf"]


def test_check_integrity_partial_directory(probe, cluster_settings):
    """PG_VERSION alone is not enough."""
    data_dir = cluster_settings.data_dir
    data_dir.mkdir()
    (data_dir / "PG_VERSION").write_text("15\n")

    report = probe.check_integrity(data_dir)

    assert report.valid is False
    assert report.missing == ["global/pg_control", "postgresql.conf"]


def test_check_integrity_missing_directory(probe, tmp_path):
    """A data directory that does not exist is reported, not raised."""
    report = probe.check_integrity(tmp_path / "nope")

    assert report.valid is False
    assert len(report.missing) == 3


def test_check_integrity_unreadable_control_file(
    probe, files, cluster_settings, monkeypatch
):
    """pg_control that the service user cannot read counts as corruption."""
    make_data_dir(cluster_settings.data_dir)
    monkeypatch.setattr(files, "is_readable_by", lambda path, user: False)

    report = probe.check_integrity(cluster_settings.data_dir)

    assert report.valid is False
    assert report.missing == []
    assert report.unreadable == ["global/pg_control"]
    assert report.problems == ["global/pg_control"]


def test_is_ready_returns_immediately_when_accepting(probe, engine, sleeps):
    """No waiting when the server already answers."""
    engine.running = True

    assert probe.is_ready(30) is True
    assert sleeps.calls == []


def test_is_ready_times_out(probe, sleeps, console):
    """One poll per second, then give up."""
    assert probe.is_ready(3) is False
    assert sleeps.calls == [1, 1, 1]
    assert console.print.call_count == 3


def test_is_ready_succeeds_after_polling(files, sleeps, console):
    """Readiness on a later poll stops the loop."""
    engine = Mock()
    engine.is_accepting_connections.side_effect = [False, False, True]
    probe = Probe(engine, files, "postgres", sleep=sleeps, console=console)

    assert probe.is_ready(10) is True
    assert sleeps.calls == [1, 1]
