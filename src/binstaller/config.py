"""Configuration management for binstaller."""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from binstaller.constants import (
    DEFAULT_BINARY_MODE,
    DEFAULT_RELEASE_HOST,
    DEFAULT_USER_AGENT,
    HTTP_TIMEOUT,
    MAX_REDIRECTS,
    PROBE_TIMEOUT,
)
from binstaller.errors import ConfigError


def _default_storage_dir() -> Path:
    return Path.home() / ".local" / "share" / "binstaller"


class Settings(BaseSettings):
    """Process-wide settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="BINSTALLER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    storage_dir: Path = Field(
        default_factory=_default_storage_dir,
        description="Root directory owning default binary installs",
    )

    # Release source
    release_host: str = Field(default=DEFAULT_RELEASE_HOST, description="Release hosting domain")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="Identifying client header")

    # Deadlines and limits
    http_timeout: float = Field(default=HTTP_TIMEOUT, gt=0, description="Per-request timeout")
    probe_timeout: float = Field(default=PROBE_TIMEOUT, gt=0, description="Version probe timeout")
    max_redirects: int = Field(default=MAX_REDIRECTS, ge=0, description="Redirect hop limit")
    binary_mode: int = Field(default=DEFAULT_BINARY_MODE, description="Mode of installed binaries")

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("binary_mode", mode="before")
    @classmethod
    def _parse_octal_mode(cls, value: Any) -> Any:
        if isinstance(value, str):
            return int(value, 8)
        return value

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    @property
    def api_host(self) -> str:
        """Host serving the release metadata API."""
        return f"api.{self.release_host}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_flat_config(path: str | Path) -> dict[str, Any]:
    """Read a flat ``{"component.key": value}`` JSON document.

    Nested objects are flattened with dots so that both
    ``{"languageServer.enableAutoUpdate": true}`` and
    ``{"languageServer": {"enableAutoUpdate": true}}`` are accepted.
    """
    config_path = Path(path)
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"Configuration file not found: {config_path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Failed to read configuration {config_path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration {config_path} must contain a JSON object")
    return _flatten(raw)


def _flatten(data: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    flat: dict[str, Any] = {}
    for key, value in data.items():
        full_key = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, prefix=f"{full_key}."))
        else:
            flat[full_key] = value
    return flat
