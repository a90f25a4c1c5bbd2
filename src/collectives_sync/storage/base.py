"""Remote storage interface and common functionality."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from ..utils.logging import get_logger


MARKDOWN_EXTENSION = ".md"


@dataclass(frozen=True)
class RemoteEntry:
    """One item of a remote directory listing."""

    filename: str
    basename: str
    type: str
    lastmod: Optional[str] = None
    size: int = 0
    etag: Optional[str] = None

    @property
    def is_file(self) -> bool:
        return self.type == "file"

    @property
    def is_directory(self) -> bool:
        return self.type == "directory"

    @property
    def is_markdown(self) -> bool:
        return self.is_file and self.basename.endswith(MARKDOWN_EXTENSION)


class RemoteStorage(ABC):
    """Abstract remote file store the sync engine writes to and reads from.

    Paths are absolute below the user's storage root, e.g.
    ``/Collectives/notes/a.md``.
    """

    def __init__(self, **kwargs):
        self.logger = get_logger(self.__class__.__name__)

    @abstractmethod
    async def stat(self, path: str) -> RemoteEntry:
        """Describe a single remote path.

        Raises:
            RemoteNotFoundError: if nothing exists at ``path``
        """

    @abstractmethod
    async def create_directory(self, path: str) -> None:
        """Create one directory level.

        Raises:
            RemoteAlreadyExistsError: if the directory already exists
            RemoteNotFoundError: if the parent directory is missing
        """

    @abstractmethod
    async def list_directory_recursive(self, path: str) -> List[RemoteEntry]:
        """List every file and directory below ``path``."""

    @abstractmethod
    async def get_file_contents(self, path: str) -> str:
        """Fetch a file as text."""

    @abstractmethod
    async def put_file_contents(self, path: str, content: str, overwrite: bool = True) -> None:
        """Create or replace a file with ``content``."""

    async def close(self) -> None:
        """Release any held connections."""

    async def health_check(self) -> bool:
        """Check that the storage root is reachable with the current credentials."""
        try:
            await self.stat("/")
            self.logger.info("Remote health check passed", client=self.__class__.__name__)
            return True
        except Exception as e:
            self.logger.error(
                "Remote health check failed",
                client=self.__class__.__name__,
                error=str(e)
            )
            return False


class RemoteStorageError(Exception):
    """Raised when a remote storage operation fails."""

    def __init__(self, message: str, path: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.path = path
        self.status = status


class RemoteNotFoundError(RemoteStorageError):
    """Raised when a remote path does not exist."""
    pass


class RemoteAlreadyExistsError(RemoteStorageError):
    """Raised when creating something that already exists."""
    pass


class RemoteDirectoryError(RemoteStorageError):
    """Raised when the remote directory chain cannot be ensured."""
    pass


class AuthenticationError(Exception):
    """Raised when the remote rejects the credentials."""
    pass


class APIConnectionError(Exception):
    """Raised when the remote cannot be reached."""
    pass


# Errors that end the whole pass rather than a single file
CONNECTION_ERRORS = (AuthenticationError, APIConnectionError)
