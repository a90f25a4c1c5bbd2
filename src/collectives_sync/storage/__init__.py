"""Remote and local storage backends."""

from .base import (
    RemoteStorage,
    RemoteEntry,
    RemoteStorageError,
    RemoteNotFoundError,
    RemoteAlreadyExistsError,
    RemoteDirectoryError,
    AuthenticationError,
    APIConnectionError,
    CONNECTION_ERRORS,
    MARKDOWN_EXTENSION
)

from .local import LocalStorage, LocalStorageError, FileSystemVault
from .webdav import WebDAVClient

__all__ = [
    # Base classes and exceptions
    "RemoteStorage",
    "RemoteEntry",
    "RemoteStorageError",
    "RemoteNotFoundError",
    "RemoteAlreadyExistsError",
    "RemoteDirectoryError",
    "AuthenticationError",
    "APIConnectionError",
    "CONNECTION_ERRORS",
    "MARKDOWN_EXTENSION",

    # Implementations
    "LocalStorage",
    "LocalStorageError",
    "FileSystemVault",
    "WebDAVClient"
]
