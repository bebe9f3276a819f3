"""Tests for configuration loading."""

from tracewire.config import load_config
from tracewire.persistence import (
    InMemoryOrchestratorRepository,
    SQLiteOrchestratorRepository,
    get_repository,
)


def _clear_env(monkeypatch):
    for name in (
        "TRACEWIRE_CONFIG",
        "TRACEWIRE_DATABASE_URL",
        "DATABASE_URL",
        "N8N_API_BASE_URL",
        "N8N_API_KEY",
        "TRACEWIRE_CALLBACK_URL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_load_config_from_env(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
database_url: sqlite:///tmp/traces.db
log_level: DEBUG
remote:
  timeout_seconds: 5
  api_base_url: https://n8n.example.com
  poll_max_attempts: 4
"""
    )
    monkeypatch.setenv("TRACEWIRE_CONFIG", str(config_path))

    config = load_config()
    assert config.database_url == "sqlite:///tmp/traces.db"
    assert config.log_level == "DEBUG"
    assert config.remote.timeout_seconds == 5
    assert config.remote.api_base_url == "https://n8n.example.com"
    assert config.remote.poll_max_attempts == 4
    assert config.remote.api_key is None


def test_load_config_defaults_when_file_missing(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    config = load_config(str(tmp_path / "absent.yaml"))
    assert config.database_url is None
    assert config.remote.timeout_seconds == 30.0
    assert config.remote.poll_interval_seconds == 3.0


def test_environment_overrides_file(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    config_path = tmp_path / "config.yaml"
    config_path.write_text("database_url: sqlite:///from-file.db\n")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///from-env.db")
    monkeypatch.setenv("N8N_API_KEY", "secret")
    monkeypatch.setenv("TRACEWIRE_CALLBACK_URL", "https://bilko.example.com/cb")

    config = load_config(str(config_path))
    assert config.database_url == "sqlite:///from-env.db"
    assert config.remote.api_key == "secret"
    assert config.remote.callback_url == "https://bilko.example.com/cb"


def test_get_repository_uses_config(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    config_path = tmp_path / "config.yaml"
    config_path.write_text(f"database_url: sqlite://{tmp_path / 'traces.db'}\n")
    monkeypatch.setenv("TRACEWIRE_CONFIG", str(config_path))

    repo = get_repository(config=load_config())
    assert isinstance(repo, SQLiteOrchestratorRepository)
    assert repo.db_path == str(tmp_path / "traces.db")


def test_get_repository_defaults_to_memory(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("TRACEWIRE_CONFIG", str(tmp_path / "absent.yaml"))
    repo = get_repository(config=load_config())
    assert isinstance(repo, InMemoryOrchestratorRepository)
