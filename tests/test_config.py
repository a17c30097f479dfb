"""Tests for configuration layering."""

from __future__ import annotations

from pathlib import Path

import orjson
import pytest

from sensay_cli.core.config import ConfigurationError, ProjectConfig, Settings


def test_defaults_without_any_source() -> None:
    settings = Settings.load()
    assert settings.api_key is None
    assert settings.base_url == "https://api.sensay.io"
    assert settings.poll_max_attempts == 360
    assert settings.upload_max_attempts == 3


def test_yaml_then_project_then_env_then_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "api:\n  key: yaml-key\n  base_url: https://yaml.test/\npolling:\n  interval_seconds: 2\n"
    )
    monkeypatch.setenv("SENSAY_CONFIG", str(config))
    (tmp_path / "sensay.config.json").write_bytes(orjson.dumps({"apiKey": "project-key", "userId": "user-1"}))
    monkeypatch.setenv("SENSAY_USER_ID", "env-user")

    settings = Settings.load(project_dir=tmp_path, overrides={"poll_max_attempts": 7, "api_key": None})

    assert settings.base_url == "https://yaml.test"
    assert settings.poll_interval_seconds == 2
    assert settings.api_key == "project-key"
    assert settings.user_id == "env-user"
    assert settings.poll_max_attempts == 7


def test_env_values_are_coerced(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SENSAY_API_KEY", "env-key")
    monkeypatch.setenv("SENSAY_POLL_MAX_ATTEMPTS", "10")

    settings = Settings.load()

    assert settings.require_api_key() == "env-key"
    assert settings.poll_max_attempts == 10


def test_missing_api_key_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="No API key"):
        Settings.load().require_api_key()


def test_invalid_values_raise_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        Settings.load(overrides={"list_page_size": 500})


def test_invalid_project_json(tmp_path: Path) -> None:
    (tmp_path / "sensay.config.json").write_text("{not json")
    with pytest.raises(ConfigurationError, match="Invalid JSON"):
        ProjectConfig.load(tmp_path)


def test_project_config_saves_camel_case_and_keeps_unknown_keys(tmp_path: Path) -> None:
    (tmp_path / "sensay.config.json").write_bytes(orjson.dumps({"replicaName": "Helper", "theme": "dark"}))

    project = ProjectConfig.load(tmp_path)
    project.replica_id = "replica-9"
    project.save(tmp_path)

    saved = orjson.loads((tmp_path / "sensay.config.json").read_bytes())
    assert saved == {"replicaName": "Helper", "replicaId": "replica-9", "theme": "dark"}
