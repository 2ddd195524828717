"""Tests for cluster settings loading."""

from pathlib import Path

import pytest

from src.infra.postgres import ClusterSettings, load_settings


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No devdb variables and no .env file in the working directory."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DEVDB_CONFIG", raising=False)
    for var in (
        "POSTGRES_VERSION",
        "DATABASE_USERNAME",
        "DATABASE_PASSWORD",
        "POSTGRES_PASSWORD",
        "PGDATA",
        "PGPORT",
        "BACKUP_DIR",
        "MAX_BACKUPS",
        "DEVDB_USE_SUDO",
    ):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


def test_defaults():
    settings = ClusterSettings()

    assert settings.version == "15"
    assert settings.app_user == "dbuser"
    assert settings.data_dir == Path("/var/lib/postgresql-data")
    assert settings.backup_dir == Path("/var/lib/postgresql-backup")
    assert settings.max_backups == 7
    assert settings.max_retries == 3
    assert settings.startup_timeout == 30
    assert settings.bin_dir == Path("/usr/lib/postgresql/15/bin")
    assert settings.log_dir == Path("/var/log/postgresql")


def test_superuser_password_falls_back_to_app_password():
    assert ClusterSettings(app_password="pw").effective_superuser_password == "pw"
    assert (
        ClusterSettings(app_password="pw", superuser_password="su")
        .effective_superuser_password
        == "su"
    )


def test_from_env_maps_variables():
    settings = ClusterSettings.from_env(
        {
            "POSTGRES_VERSION": "16",
            "DATABASE_USERNAME": "rails",
            "PGDATA": "/data/pg",
            "MAX_BACKUPS": "3",
            "DEVDB_USE_SUDO": "false",
        }
    )

    assert settings.version == "16"
    assert settings.app_user == "rails"
    assert settings.data_dir == Path("/data/pg")
    assert settings.max_backups == 3
    assert settings.use_sudo is False
    assert settings.bin_dir == Path("/usr/lib/postgresql/16/bin")


def test_from_env_ignores_empty_values():
    settings = ClusterSettings.from_env({"POSTGRES_VERSION": "", "PGPORT": ""})

    assert settings.version == "15"
    assert settings.port == 5432


def test_from_env_rejects_invalid_values():
    with pytest.raises(ValueError, match="Invalid configuration"):
        ClusterSettings.from_env({"PGPORT": "not-a-port"})


def test_max_backups_must_be_positive():
    with pytest.raises(ValueError):
        ClusterSettings(max_backups=0)


def test_load_settings_without_file_uses_environment(clean_env, monkeypatch):
    monkeypatch.setenv("DATABASE_USERNAME", "from_env")

    settings = load_settings()

    assert settings.app_user == "from_env"


def test_load_settings_from_yaml(clean_env, monkeypatch):
    monkeypatch.setenv("BACKUP_DIR", "/srv/backups")
    config = clean_env / "devdb.yaml"
    config.write_text(
        "config:\n"
        '  version: "16"\n'
        '  backup_dir: "${BACKUP_DIR:-/var/lib/postgresql-backup}"\n'
        '  superuser_password: "${POSTGRES_PASSWORD:-}"\n'
        "  max_backups: 4\n"
    )

    settings = load_settings(config)

    assert settings.version == "16"
    assert settings.backup_dir == Path("/srv/backups")
    assert settings.superuser_password is None
    assert settings.max_backups == 4


def test_load_settings_uses_devdb_config_env(clean_env, monkeypatch):
    config = clean_env / "custom.yaml"
    config.write_text("config:\n  port: 5433\n")
    monkeypatch.setenv("DEVDB_CONFIG", str(config))

    assert load_settings().port == 5433


def test_load_settings_requires_config_key(clean_env):
    config = clean_env / "devdb.yaml"
    config.write_text("settings:\n  port: 5433\n")

    with pytest.raises(ValueError, match="missing 'config' key"):
        load_settings(config)


@pytest.mark.parametrize(
    "content",
    ["config\n", "- config\n", "config:\n  - port\n", "config: 5433\n"],
)
def test_load_settings_rejects_non_mapping_structure(clean_env, content):
    """Scalars and lists where mappings belong are configuration errors."""
    config = clean_env / "devdb.yaml"
    config.write_text(content)

    with pytest.raises(ValueError, match="Invalid YAML structure"):
        load_settings(config)


def test_load_settings_rejects_malformed_yaml(clean_env):
    config = clean_env / "devdb.yaml"
    config.write_text("config: [unclosed\n")

    with pytest.raises(ValueError, match="Error parsing YAML"):
        load_settings(config)


def test_load_settings_missing_required_variable(clean_env, monkeypatch):
    monkeypatch.delenv("DEVDB_REQUIRED_SECRET", raising=False)
    config = clean_env / "devdb.yaml"
    config.write_text('config:\n  app_password: "${DEVDB_REQUIRED_SECRET}"\n')

    with pytest.raises(ValueError, match="DEVDB_REQUIRED_SECRET"):
        load_settings(config)
