"""Pydantic Settings model for application configuration."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from gh_backup.utils.constants import DEFAULT_GITHUB_API_URL


class Settings(BaseSettings):
    """Environment variable settings for the application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Generic application-wide settings
    DEBUG: bool = False

    # GitHub API settings
    GITHUB_API_URL: str = DEFAULT_GITHUB_API_URL

    # GitHub token settings, checked in this order
    GH_TOKEN: str | None = None
    GITHUB_TOKEN: str | None = None

    # Backup settings
    BACKUP_ROOT: Path | None = None
    BACKUP_CONCURRENCY: int | None = None


settings = Settings()
