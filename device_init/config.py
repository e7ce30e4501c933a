"""Configuration settings for device_init.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the DEVICE_INIT_
    prefix. CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="DEVICE_INIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Device type catalog
    api_url: str = Field(
        default="https://api.balena-cloud.com",
        description="Base URL of the device type catalog API",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for catalog requests (seconds)",
    )

    # Operational
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    script_timeout: int = Field(
        default=600,
        ge=1,
        description="Timeout for run-script operations (seconds)",
    )

    # Burning
    verification_mode: Literal["full-hash", "prefix-16MiB", "prefix-64MiB", "skipped"] = (
        Field(
            default="full-hash",
            description="Verification mode applied after burning an image",
        )
    )
    burn_block_size: int = Field(
        default=1024 * 1024,
        ge=512,
        description="Block size used when burning images (bytes)",
    )
    check_mount: bool = Field(
        default=True,
        description="Refuse to burn drives with mounted partitions",
    )
    allow_regular_file_drives: bool = Field(
        default=False,
        description="Accept regular files as burn targets (image-backed drives)",
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


__all__ = ["Settings", "get_settings", "print_settings_json"]
