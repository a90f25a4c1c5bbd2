"""Pushing local markdown files to the collective."""

import asyncio
from typing import Optional

from .directories import RemoteDirectoryEnsurer
from .models import FileAction, FileResult, PhaseReport
from .paths import is_under_local_base, local_to_remote, remote_parent
from ..storage.base import RemoteStorage, RemoteStorageError, CONNECTION_ERRORS
from ..storage.local import LocalStorage, LocalStorageError
from ..utils.logging import get_logger


class ChangeUploader:
    """Uploads vault files with an unconditional-overwrite policy."""

    def __init__(
        self,
        remote: RemoteStorage,
        local: LocalStorage,
        ensurer: RemoteDirectoryEnsurer,
        local_base: str,
        remote_root: str
    ):
        self.remote = remote
        self.local = local
        self.ensurer = ensurer
        self.local_base = local_base
        self.remote_root = remote_root
        self.logger = get_logger(self.__class__.__name__)

    async def upload_file(self, local_path: str) -> FileResult:
        """Upload one file, creating remote parent folders as needed.

        Per-file failures are returned as a failed result. Connection-level
        errors propagate.
        """
        remote_path = local_to_remote(local_path, self.local_base, self.remote_root)

        try:
            content = await self.local.read(local_path)
            await self.ensurer.ensure(remote_parent(remote_path))
            await self.remote.put_file_contents(remote_path, content, overwrite=True)
        except CONNECTION_ERRORS:
            raise
        except (LocalStorageError, RemoteStorageError) as e:
            self.logger.error(
                "Error uploading file",
                path=local_path,
                remote_path=remote_path,
                error=str(e)
            )
            return FileResult(local_path, FileAction.FAILED, remote_path=remote_path, error=str(e))

        self.logger.debug("Uploaded file", path=local_path, remote_path=remote_path)
        return FileResult(local_path, FileAction.UPLOADED, remote_path=remote_path)

    async def upload_all(
        self,
        cancel_event: Optional[asyncio.Event] = None,
        report: Optional[PhaseReport] = None
    ) -> PhaseReport:
        """Upload every markdown file under the local base, one at a time.

        Results are added to ``report`` as each file finishes, so a caller
        holding it still sees completed uploads when a connection error aborts
        the phase.
        """
        if report is None:
            report = PhaseReport(name="upload")
        files = await self.local.list_markdown_files(self.local_base)

        self.logger.info("Uploading local changes", files=len(files), local_base=self.local_base or "/")

        for local_path in files:
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                self.logger.warning("Upload phase cancelled", remaining=len(files) - report.files_processed)
                break
            if not is_under_local_base(local_path, self.local_base):
                continue
            report.add(await self.upload_file(local_path))

        return report
