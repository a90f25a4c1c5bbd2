"""Creation of missing remote directory chains."""

from typing import List, Set

from ..storage.base import (
    RemoteStorage,
    RemoteStorageError,
    RemoteNotFoundError,
    RemoteAlreadyExistsError,
    RemoteDirectoryError,
    CONNECTION_ERRORS,
)
from ..utils.logging import get_logger


class RemoteDirectoryEnsurer:
    """Makes sure every ancestor of a remote directory exists.

    Directories confirmed once are remembered for the lifetime of the
    instance, so build a new ensurer per sync pass.
    """

    def __init__(self, storage: RemoteStorage):
        self.storage = storage
        self.logger = get_logger(self.__class__.__name__)
        self._known: Set[str] = set()

    async def ensure(self, directory: str) -> List[str]:
        """Create each missing level of ``directory``, root to leaf.

        Returns:
            The directories that were created by this call.

        Raises:
            RemoteDirectoryError: if a level can be neither confirmed nor created
            AuthenticationError, APIConnectionError: connection-level failures
        """
        created = []
        current = ""

        for component in [c for c in directory.split('/') if c]:
            current += '/' + component
            if current in self._known:
                continue

            try:
                await self.storage.stat(current)
            except RemoteNotFoundError:
                if await self._create(current):
                    created.append(current)
            except CONNECTION_ERRORS:
                raise
            except RemoteStorageError as e:
                raise RemoteDirectoryError(
                    f"Error ensuring directory exists {directory}: {e}",
                    path=current,
                    status=e.status
                ) from e

            self._known.add(current)

        if created:
            self.logger.info("Created remote directories", directory=directory, created=created)

        return created

    async def _create(self, path: str) -> bool:
        """Create one level; False if someone else got there first."""
        try:
            await self.storage.create_directory(path)
            return True
        except RemoteAlreadyExistsError:
            self.logger.debug("Directory appeared before create, continuing", path=path)
            return False
        except CONNECTION_ERRORS:
            raise
        except RemoteStorageError as e:
            raise RemoteDirectoryError(
                f"Failed to create remote directory {path}: {e}",
                path=path,
                status=e.status
            ) from e
