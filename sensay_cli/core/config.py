"""Application configuration handling."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import orjson
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

ENV_PREFIX = "SENSAY_"
DEFAULT_CONFIG_PATH = Path("~/.config/sensay/config.yaml")
PROJECT_CONFIG_FILE = "sensay.config.json"
DEFAULT_BASE_URL = "https://api.sensay.io"
API_VERSION = "2025-03-25"

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("api", "key"): "api_key",
    ("api", "base_url"): "base_url",
    ("api", "version"): "api_version",
    ("api", "timeout"): "request_timeout",
    ("api", "vercel_protection_bypass"): "vercel_protection_bypass",
    ("user", "id"): "user_id",
    ("organization", "id"): "organization_id",
    ("polling", "interval_seconds"): "poll_interval_seconds",
    ("polling", "max_attempts"): "poll_max_attempts",
    ("upload", "max_attempts"): "upload_max_attempts",
    ("upload", "backoff_seconds"): "upload_backoff_seconds",
    ("listing", "page_size"): "list_page_size",
}

# camelCase keys of sensay.config.json that overlay Settings
_PROJECT_KEY_MAP: Mapping[str, str] = {
    "apiKey": "api_key",
    "userId": "user_id",
    "organizationId": "organization_id",
    "baseUrl": "base_url",
}


class ConfigurationError(ValueError):
    """Raised when required configuration is missing or invalid."""


class ProjectConfig(BaseModel):
    """Per-project settings stored next to the training data."""

    organization_name: str | None = Field(default=None, alias="organizationName")
    user_name: str | None = Field(default=None, alias="userName")
    user_email: str | None = Field(default=None, alias="userEmail")
    replica_name: str | None = Field(default=None, alias="replicaName")
    organization_id: str | None = Field(default=None, alias="organizationId")
    user_id: str | None = Field(default=None, alias="userId")
    replica_id: str | None = Field(default=None, alias="replicaId")
    api_key: str | None = Field(default=None, alias="apiKey")
    base_url: str | None = Field(default=None, alias="baseUrl")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @classmethod
    def load(cls, folder: Path) -> "ProjectConfig":
        path = folder.expanduser() / PROJECT_CONFIG_FILE
        if not path.exists():
            return cls()
        try:
            raw = orjson.loads(path.read_bytes())
        except orjson.JSONDecodeError as exc:
            raise ConfigurationError(f"Invalid JSON in {path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigurationError(f"{path} must contain a JSON object")
        return cls.model_validate(raw)

    def save(self, folder: Path) -> Path:
        path = folder.expanduser() / PROJECT_CONFIG_FILE
        payload = self.model_dump(by_alias=True, exclude_none=True)
        path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
        return path

    def settings_overrides(self) -> dict[str, Any]:
        data = self.model_dump(by_alias=True, exclude_none=True)
        return {field: data[key] for key, field in _PROJECT_KEY_MAP.items() if key in data}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML, project file and environment variables."""

    api_key: str | None = None
    user_id: str | None = None
    organization_id: str | None = None
    base_url: str = DEFAULT_BASE_URL
    api_version: str = API_VERSION
    vercel_protection_bypass: str | None = None
    request_timeout: float = 60.0
    poll_interval_seconds: float = 5.0
    poll_max_attempts: int = Field(default=360, ge=1)
    upload_max_attempts: int = Field(default=3, ge=1)
    upload_backoff_seconds: float = Field(default=1.0, ge=0)
    list_page_size: int = Field(default=100, ge=1, le=100)

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("base_url", mode="before")
    @classmethod
    def _strip_base_url(cls, value: Any) -> str:
        if isinstance(value, str):
            return value.rstrip("/")
        raise TypeError("base_url must be a string")

    @classmethod
    def load(
        cls,
        project_dir: Path | None = None,
        config_path: Path | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> "Settings":
        """Layer user YAML, project config, env vars and explicit overrides."""
        data: dict[str, Any] = {}
        resolved = cls._resolve_config_path(config_path)
        if resolved and resolved.exists():
            with resolved.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            if not isinstance(raw, Mapping):
                raise ConfigurationError(f"{resolved} must contain a YAML mapping")
            data.update(_flatten_yaml(raw))
        if project_dir is not None:
            data.update(ProjectConfig.load(project_dir).settings_overrides())
        data.update(_load_env_overrides())
        if overrides:
            data.update({key: value for key, value in overrides.items() if value is not None})
        try:
            return cls(**data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError('No API key found. Please run "sensay claim-key" or set SENSAY_API_KEY.')
        return self.api_key

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with SENSAY_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


__all__ = [
    "API_VERSION",
    "ConfigurationError",
    "PROJECT_CONFIG_FILE",
    "ProjectConfig",
    "Settings",
]
