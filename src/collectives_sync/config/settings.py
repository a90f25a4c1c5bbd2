"""Application configuration settings."""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO")
    format: str = Field(default="console")
    file_path: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(env_prefix="LOG_")


class SchedulingSettings(BaseSettings):
    """Scheduling configuration."""

    misfire_grace_seconds: int = Field(default=300)

    model_config = SettingsConfigDict(env_prefix="SCHEDULE_")


class LoginFlowSettings(BaseSettings):
    """Nextcloud Login Flow v2 polling configuration."""

    poll_interval_seconds: float = Field(default=5.0)
    max_attempts: int = Field(default=60)

    model_config = SettingsConfigDict(env_prefix="LOGIN_")


class WebDAVSettings(BaseSettings):
    """WebDAV transport configuration."""

    request_timeout_seconds: float = Field(default=30.0)
    verify_ssl: bool = Field(default=True)

    model_config = SettingsConfigDict(env_prefix="WEBDAV_")


class StatusServerSettings(BaseSettings):
    """Status and trigger HTTP endpoint configuration."""

    enabled: bool = Field(default=False)
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8765)

    model_config = SettingsConfigDict(env_prefix="STATUS_")


class AppSettings(BaseSettings):
    """Main application settings."""

    name: str = Field(default="Collectives Sync")
    version: str = Field(default="1.0.0")
    environment: str = Field(default="development")

    # Sub-settings
    logging: LoggingSettings = LoggingSettings()
    scheduling: SchedulingSettings = SchedulingSettings()
    login_flow: LoginFlowSettings = LoginFlowSettings()
    webdav: WebDAVSettings = WebDAVSettings()
    status_server: StatusServerSettings = StatusServerSettings()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow"  # Allow extra fields in environment
    )


# Global settings instance
settings = AppSettings()


def get_settings() -> AppSettings:
    """Get application settings."""
    return settings
