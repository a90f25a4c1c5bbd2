"""Credential providers supplying connection parameters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from urllib.parse import quote

from ..config.schema import SyncConfig


class CredentialError(Exception):
    """Raised when no usable credentials are available."""
    pass


@dataclass(frozen=True)
class Credentials:
    """Resolved connection parameters for one Nextcloud account."""

    url: str
    username: str
    secret: str
    is_token: bool = False

    @property
    def dav_root_url(self) -> str:
        return f"{self.url.rstrip('/')}/remote.php/dav/files/{quote(self.username)}"

    def __repr__(self) -> str:
        return f"Credentials(url={self.url!r}, username={self.username!r}, is_token={self.is_token})"


class CredentialProvider(ABC):
    """Source of credentials for the remote connection."""

    @abstractmethod
    async def get_credentials(self) -> Credentials:
        """Resolve credentials.

        Raises:
            CredentialError: if credentials cannot be obtained
        """


class StaticCredentialProvider(CredentialProvider):
    """Credentials taken from stored configuration."""

    def __init__(self, config: SyncConfig):
        self.config = config

    async def get_credentials(self) -> Credentials:
        if not self.config.is_connectable:
            raise CredentialError("Nextcloud URL, username and password or token are required")

        return Credentials(
            url=self.config.nextcloud_url,
            username=self.config.username,
            secret=self.config.secret,
            is_token=self.config.use_token
        )
