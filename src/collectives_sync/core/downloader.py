"""Pulling remote markdown files into the vault."""

import asyncio
from typing import List, Optional

from .models import FileAction, FileResult, PhaseReport
from .paths import PathMappingError, local_parent, remote_to_local
from ..storage.base import RemoteEntry, RemoteStorage, RemoteStorageError, CONNECTION_ERRORS
from ..storage.local import LocalStorage, LocalStorageError
from ..utils.logging import get_logger


class ChangeDownloader:
    """Reconciles every remote markdown file against the vault.

    Local files are only touched when their content differs from the remote
    copy, so an unchanged pass produces no filesystem events.
    """

    def __init__(
        self,
        remote: RemoteStorage,
        local: LocalStorage,
        local_base: str,
        remote_root: str
    ):
        self.remote = remote
        self.local = local
        self.local_base = local_base
        self.remote_root = remote_root
        self.logger = get_logger(self.__class__.__name__)

    async def list_remote_markdown(self) -> List[RemoteEntry]:
        """Markdown files below the collective root.

        A listing failure (e.g. the root was never created) counts as an empty
        remote side.
        """
        try:
            entries = await self.remote.list_directory_recursive(self.remote_root)
        except CONNECTION_ERRORS:
            raise
        except RemoteStorageError as e:
            self.logger.warning(
                "Remote directory not found or inaccessible",
                remote_root=self.remote_root,
                error=str(e)
            )
            return []

        return sorted((entry for entry in entries if entry.is_markdown), key=lambda e: e.filename)

    async def download_entry(self, entry: RemoteEntry) -> FileResult:
        """Create, update or leave alone the local copy of one remote file."""
        try:
            local_path = remote_to_local(entry.filename, self.remote_root, self.local_base)
        except PathMappingError as e:
            self.logger.error("Cannot map remote path into the vault", remote_path=entry.filename, error=str(e))
            return FileResult(entry.filename, FileAction.FAILED, remote_path=entry.filename, error=str(e))

        try:
            content = await self.remote.get_file_contents(entry.filename)

            if await self.local.exists(local_path):
                local_content = await self.local.read(local_path)
                if local_content == content:
                    return FileResult(local_path, FileAction.UNCHANGED, remote_path=entry.filename)
                await self.local.write(local_path, content)
                action = FileAction.UPDATED
            else:
                parent = local_parent(local_path)
                if parent:
                    await self.local.create_directory(parent)
                await self.local.create_file(local_path, content)
                action = FileAction.CREATED

        except CONNECTION_ERRORS:
            raise
        except (LocalStorageError, RemoteStorageError) as e:
            self.logger.error(
                "Error downloading file",
                path=local_path,
                remote_path=entry.filename,
                error=str(e)
            )
            return FileResult(local_path, FileAction.FAILED, remote_path=entry.filename, error=str(e))

        self.logger.debug("Downloaded file", path=local_path, action=action.value)
        return FileResult(local_path, action, remote_path=entry.filename)

    async def download_all(
        self,
        cancel_event: Optional[asyncio.Event] = None,
        report: Optional[PhaseReport] = None
    ) -> PhaseReport:
        """Reconcile every remote markdown file, one at a time."""
        if report is None:
            report = PhaseReport(name="download")
        entries = await self.list_remote_markdown()

        self.logger.info("Downloading remote changes", files=len(entries), remote_root=self.remote_root)

        for entry in entries:
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                self.logger.warning("Download phase cancelled", remaining=len(entries) - report.files_processed)
                break
            report.add(await self.download_entry(entry))

        return report
