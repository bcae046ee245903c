"""Unit tests for config.py"""

import pytest
from pydantic import ValidationError

from pubsync.config import load_config


def test_load_config_uses_env_db_url(monkeypatch):
    """PUBSYNC_DB_URL env var is picked up by load_config."""
    monkeypatch.setenv("PUBSYNC_DB_URL", "sqlite:///env.db")
    settings = load_config()
    assert settings.db_url == "sqlite:///env.db"


def test_load_config_env_overrides_config_yaml(tmp_path, monkeypatch):
    """PUBSYNC_DB_URL takes precedence over config.yaml db_url."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.yaml").write_text("db_url: 'sqlite:///project.db'\n")
    monkeypatch.setenv("PUBSYNC_DB_URL", "sqlite:///override.db")
    settings = load_config()
    assert settings.db_url == "sqlite:///override.db"


def test_load_config_cli_overrides_env(monkeypatch):
    """A non-None CLI override beats the PUBSYNC_DB_URL env var."""
    monkeypatch.setenv("PUBSYNC_DB_URL", "sqlite:///env.db")
    settings = load_config(overrides={"db_url": "sqlite:///cli.db", "batch_size": None})
    assert settings.db_url == "sqlite:///cli.db"
    assert settings.batch_size == 25


def test_load_config_defaults(tmp_path, monkeypatch):
    """Settings defaults are used when no config.yaml, env var, or CLI override exists."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("PUBSYNC_DB_URL", raising=False)
    settings = load_config()
    assert settings.db_url == "sqlite:///pubsync.db"
    assert settings.retries == {"upload": 3}
    assert settings.protected_categories == []


def test_load_config_invalid_yaml(tmp_path, monkeypatch):
    """load_config raises ValueError when config.yaml contains invalid YAML."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.yaml").write_text("key: [unclosed\n")
    with pytest.raises(ValueError, match="Invalid config.yaml"):
        load_config()


def test_load_config_yaml_mappings(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.yaml").write_text(
        "retries:\n  create: 2\n  upload: 4\n"
        "delays:\n  create: 0.5\n"
        "protected_categories: [Featured, Editorial]\n"
    )
    settings = load_config()
    assert settings.retries == {"create": 2, "upload": 4}
    assert settings.delays == {"create": 0.5}
    assert settings.protected_categories == ["Featured", "Editorial"]


# --- generalized env var pattern ---

def test_load_config_env_batch_size(monkeypatch):
    """PUBSYNC_BATCH_SIZE env var is coerced to int and applied to settings."""
    monkeypatch.setenv("PUBSYNC_BATCH_SIZE", "7")
    assert load_config().batch_size == 7


def test_load_config_env_retries_pairs(monkeypatch):
    """PUBSYNC_RETRIES accepts kind=attempts pairs."""
    monkeypatch.setenv("PUBSYNC_RETRIES", "create=3, upload=5")
    assert load_config().retries == {"create": 3, "upload": 5}


def test_load_config_env_delays_json(monkeypatch):
    """PUBSYNC_DELAYS accepts a JSON object."""
    monkeypatch.setenv("PUBSYNC_DELAYS", '{"update": 1.5}')
    assert load_config().delays == {"update": 1.5}


def test_load_config_env_protected_categories(monkeypatch):
    monkeypatch.setenv("PUBSYNC_PROTECTED_CATEGORIES", "Featured, Editorial")
    assert load_config().protected_categories == ["Featured", "Editorial"]


def test_load_config_env_bool(monkeypatch):
    monkeypatch.setenv("PUBSYNC_UPLOAD_UNREFERENCED", "true")
    assert load_config().upload_unreferenced is True


def test_load_config_log_level_case_insensitive(monkeypatch):
    monkeypatch.setenv("PUBSYNC_LOG_LEVEL", "debug")
    assert load_config().log_level == "DEBUG"


def test_load_config_rejects_invalid_batch_size():
    with pytest.raises(ValidationError):
        load_config(overrides={"batch_size": 0})
