"""Configuration settings for buildpack_engine.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_layers_dir() -> Path:
    """Return the default layer storage root."""
    return Path("/layers")


def _default_app_dir() -> Path:
    """Return the default application root."""
    return Path("/workspace")


class Settings(BaseSettings):
    """Engine settings.

    Settings are loaded from environment variables with the BPENGINE_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="BPENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    layers_dir: Path = Field(
        default_factory=_default_layers_dir,
        description="Root directory for layer storage",
    )
    app_dir: Path = Field(
        default_factory=_default_app_dir,
        description="Application source root",
    )
    manifest_name: str = Field(
        default="manifest.json",
        description="Filename of the final build manifest inside layers_dir",
    )

    # Plan negotiation
    platform_roots: list[str] = Field(
        default_factory=lambda: ["web-process"],
        description="Provision names the platform always requires",
    )

    # Execution
    exec_timeout: int | None = Field(
        default=None,
        ge=1,
        description="Default timeout for external processes (None = no timeout)",
    )
    stderr_tail_lines: int = Field(
        default=20,
        ge=1,
        le=1000,
        description="Number of stderr lines surfaced in failure messages",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )


def get_settings() -> Settings:
    """Get the engine settings.

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


__all__ = ["Settings", "get_settings", "print_settings_json"]
