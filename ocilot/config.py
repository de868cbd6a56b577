"""Configuration settings for ocilot.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_DIR_NAME = "ocilot"


def _xdg_dir(env_var: str, fallback: str) -> Path:
    value = os.environ.get(env_var)
    if value:
        return Path(value)
    return Path.home() / fallback


def _default_cache_dir() -> Path:
    """Return the default image cache root."""
    return _xdg_dir("XDG_CACHE_HOME", ".cache") / APP_DIR_NAME


def _default_log_file() -> Path:
    """Return the default diagnostic log file."""
    return _xdg_dir("XDG_CONFIG_HOME", ".config") / APP_DIR_NAME / "last-log.jsonl"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the OCILOT_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="OCILOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    cache_dir: Path = Field(
        default_factory=_default_cache_dir,
        description="Root directory of the local image cache",
    )
    log_file: Path = Field(
        default_factory=_default_log_file,
        description="Diagnostic log of the last invocation (JSON lines)",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Registry access
    fetch_timeout: float = Field(
        default=300,
        ge=1,
        description="Timeout in seconds for each registry request",
    )
    insecure_registries: list[str] = Field(
        default_factory=list,
        description="Registry hosts reached over plain HTTP",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["APP_DIR_NAME", "Settings", "get_settings", "print_settings_json"]
