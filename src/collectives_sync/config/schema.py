"""Configuration schema for a vault/collective sync pair."""

from typing import Optional
from pydantic import BaseModel, Field, field_validator

from ..core.paths import normalize_collective_path, normalize_local_path


class SyncConfig(BaseModel):
    """Connection and sync settings for one vault.

    Exactly one credential mode is active at a time: a password (or app
    password from the browser login flow) or an access token. Use
    ``set_password_credentials`` / ``set_token_credentials`` to switch modes
    so the other secret is cleared.
    """

    # Connection
    nextcloud_url: str = Field(default="https://your-nextcloud-instance.com", description="Base URL of the Nextcloud instance")
    username: str = Field(default="", description="Nextcloud login name")
    password: str = Field(default="", description="Password or app password")
    access_token: str = Field(default="", description="Token used instead of a password")
    use_token: bool = Field(default=False, description="Authenticate with access_token instead of password")

    # Paths
    collective_path: str = Field(default="/Collectives", description="Remote root of the synced tree")
    local_folder_path: str = Field(default="", description="Vault-relative folder to sync, empty for the vault root")

    # Triggers
    sync_interval: int = Field(default=5, description="Minutes between automatic syncs, 0 disables")
    sync_on_startup: bool = Field(default=True, description="Sync shortly after start")
    sync_on_save: bool = Field(default=True, description="Upload markdown files when they are modified")
    startup_delay_seconds: int = Field(default=5, description="Delay before the startup sync")

    @field_validator('nextcloud_url')
    @classmethod
    def validate_url(cls, v):
        return v.strip().rstrip('/')

    @field_validator('collective_path')
    @classmethod
    def validate_collective_path(cls, v):
        return normalize_collective_path(v)

    @field_validator('local_folder_path')
    @classmethod
    def validate_local_folder_path(cls, v):
        return normalize_local_path(v or "")

    @field_validator('sync_interval', 'startup_delay_seconds')
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("Value must be zero or a positive number")
        return v

    @property
    def secret(self) -> str:
        """The secret for the active credential mode."""
        return self.access_token if self.use_token else self.password

    @property
    def is_connectable(self) -> bool:
        """True when URL, username and the active secret are all set."""
        return bool(self.nextcloud_url and self.username and self.secret)

    def set_password_credentials(self, username: str, password: str) -> None:
        """Switch to password authentication, clearing any stored token."""
        self.username = username
        self.password = password
        self.access_token = ""
        self.use_token = False

    def set_token_credentials(self, username: str, token: str) -> None:
        """Switch to token authentication, clearing any stored password."""
        self.username = username
        self.access_token = token
        self.password = ""
        self.use_token = True

    def redacted(self) -> dict:
        """Dump for logging with secrets masked."""
        data = self.model_dump()
        for key in ("password", "access_token"):
            if data[key]:
                data[key] = "***"
        return data


def default_config(nextcloud_url: Optional[str] = None) -> SyncConfig:
    """Create a config with defaults, optionally pointing at a server."""
    if nextcloud_url:
        return SyncConfig(nextcloud_url=nextcloud_url)
    return SyncConfig()
