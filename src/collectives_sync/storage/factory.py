"""Factory for building remote storage connections."""

from ..auth.credentials import Credentials
from ..config.settings import get_settings
from .base import RemoteStorage
from .webdav import WebDAVClient


class RemoteStorageFactory:
    """Builds a fresh remote connection for a set of credentials."""

    @classmethod
    def create_client(cls, credentials: Credentials, **kwargs) -> RemoteStorage:
        """Create a WebDAV connection.

        Args:
            credentials: Resolved URL, username and secret
            **kwargs: Extra arguments for the client

        Returns:
            A new, unshared client instance
        """
        settings = get_settings()
        kwargs.setdefault("timeout", settings.webdav.request_timeout_seconds)
        kwargs.setdefault("verify_ssl", settings.webdav.verify_ssl)

        return WebDAVClient(
            base_url=credentials.dav_root_url,
            username=credentials.username,
            password=credentials.secret,
            **kwargs
        )

    def __call__(self, credentials: Credentials) -> RemoteStorage:
        return self.create_client(credentials)
