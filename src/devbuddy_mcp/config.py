"""Configuration management for DevBuddy MCP."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

StorageMode = Literal["workspace", "global", "both"]


class DevBuddySettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    workspace_path: Path = Field(default=Path("."), validation_alias="DEVBUDDY_WORKSPACE")
    storage_dir: Path = Field(default=Path("~/.devbuddy"), validation_alias="DEVBUDDY_STORAGE_DIR")
    settings_file: Path = Field(
        default=Path("~/.devbuddy/settings.yaml"), validation_alias="DEVBUDDY_SETTINGS_FILE"
    )
    storage_mode: StorageMode = Field(default="both", validation_alias="DEVBUDDY_STORAGE_MODE")
    git_path: str | None = Field(default=None, validation_alias="DEVBUDDY_GIT_PATH")
    git_timeout: float = Field(default=30.0, validation_alias="DEVBUDDY_GIT_TIMEOUT")
    log_level: str = Field(default="INFO", validation_alias="DEVBUDDY_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "DEVBUDDY_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("storage_mode", mode="before")
    @classmethod
    def _normalize_storage_mode(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("git_timeout")
    @classmethod
    def _validate_git_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("DEVBUDDY_GIT_TIMEOUT must be > 0")
        return value

    @property
    def global_store_path(self) -> Path:
        return self.storage_dir / "global.json"

    def workspace_store_path(self) -> Path:
        """Return the project-scoped store file for the configured workspace."""

        from .paths import workspace_key

        return self.storage_dir / "workspaces" / f"{workspace_key(self.workspace_path)}.json"


@lru_cache(maxsize=1)
def get_settings() -> DevBuddySettings:
    """Return cached settings instance."""

    settings = DevBuddySettings()
    settings.workspace_path = settings.workspace_path.expanduser().resolve()
    settings.storage_dir = settings.storage_dir.expanduser().resolve()
    settings.settings_file = settings.settings_file.expanduser().resolve()
    return settings


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class MultiRepoSettings(_CamelModel):
    enabled: bool = False
    auto_discover: bool = True
    parent_dir: str | None = None


class UserSettings(_CamelModel):
    """User-editable settings: multi-repo flags and manually entered repositories."""

    multi_repo: MultiRepoSettings = Field(default_factory=MultiRepoSettings)
    repositories: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @field_validator("repositories", mode="before")
    @classmethod
    def _ensure_mapping(cls, value: Any):  # type: ignore[override]
        if value is None:
            return {}
        return value


def load_user_settings(path: Path | None) -> UserSettings:
    """Read the YAML user settings file, falling back to defaults on any problem."""

    if path is None:
        return UserSettings()

    path = Path(path).expanduser()
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return UserSettings()
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Failed to read user settings", extra={"path": str(path), "error": str(exc)})
        return UserSettings()

    try:
        document = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        logger.error("Failed to parse user settings", extra={"path": str(path), "error": str(exc)})
        return UserSettings()

    if document is None:
        return UserSettings()

    try:
        return UserSettings.model_validate(document)
    except ValidationError as exc:
        logger.error("Invalid user settings", extra={"path": str(path), "error": str(exc)})
        return UserSettings()


__all__ = [
    "DevBuddySettings",
    "MultiRepoSettings",
    "StorageMode",
    "UserSettings",
    "get_settings",
    "load_user_settings",
]
