"""Core sync engine running one upload-then-download pass."""

import asyncio
from datetime import datetime
from typing import Optional

from .directories import RemoteDirectoryEnsurer
from .downloader import ChangeDownloader
from .models import PhaseReport, SyncReport, SyncSession
from .paths import normalize_collective_path, normalize_local_path
from .uploader import ChangeUploader
from ..storage.base import RemoteStorage, CONNECTION_ERRORS
from ..storage.local import LocalStorage
from ..utils.logging import get_logger, log_async_execution_time


class SyncEngine:
    """Runs a single, stateless reconciliation pass.

    Local edits are pushed before remote state is pulled back, so a fresh
    local edit reaches the remote instead of being overwritten by an older
    remote copy.
    """

    def __init__(self, remote: RemoteStorage, local: LocalStorage):
        """Initialize sync engine.

        Args:
            remote: Remote connection used for the whole pass
            local: Vault storage
        """
        self.remote = remote
        self.local = local
        self.logger = get_logger(self.__class__.__name__)

    def _uploader(self, session: SyncSession) -> ChangeUploader:
        return ChangeUploader(
            remote=self.remote,
            local=self.local,
            ensurer=RemoteDirectoryEnsurer(self.remote),
            local_base=session.local_folder,
            remote_root=session.remote_root
        )

    def _downloader(self, session: SyncSession) -> ChangeDownloader:
        return ChangeDownloader(
            remote=self.remote,
            local=self.local,
            local_base=session.local_folder,
            remote_root=session.remote_root
        )

    async def upload_single(self, local_path: str, local_folder: str, remote_root: str):
        """Upload one file outside of a full pass (sync-on-save)."""
        session = SyncSession(
            local_folder=normalize_local_path(local_folder),
            remote_root=normalize_collective_path(remote_root)
        )
        try:
            return await self._uploader(session).upload_file(local_path)
        except CONNECTION_ERRORS as e:
            raise SyncEngineError(f"Upload of {local_path} failed: {e}") from e

    @log_async_execution_time
    async def run_pass(
        self,
        local_folder: str,
        remote_root: str,
        trigger: str = "manual",
        cancel_event: Optional[asyncio.Event] = None
    ) -> SyncReport:
        """Upload all local files, then download all remote files.

        Returns:
            SyncReport with per-phase results

        Raises:
            SyncEngineError: on a connection-level failure in either phase
        """
        session = SyncSession(
            local_folder=normalize_local_path(local_folder),
            remote_root=normalize_collective_path(remote_root)
        )
        report = SyncReport(
            trigger=trigger,
            upload=PhaseReport(name="upload"),
            download=PhaseReport(name="download")
        )

        self.logger.info(
            "Starting sync pass",
            trigger=trigger,
            local_folder=session.local_folder or "/",
            remote_root=session.remote_root
        )

        try:
            await self._uploader(session).upload_all(cancel_event, report=report.upload)

            if report.upload.cancelled or (cancel_event is not None and cancel_event.is_set()):
                report.cancelled = True
            else:
                await self._downloader(session).download_all(cancel_event, report=report.download)
                report.cancelled = report.download.cancelled

        except CONNECTION_ERRORS as e:
            session.error_message = str(e)
            report.error_message = str(e)
            report.duration = (datetime.now() - session.started_at).total_seconds()
            self.logger.error("Sync pass failed", trigger=trigger, error=str(e))
            raise SyncEngineError(f"Sync pass failed: {e}", report=report) from e

        session.success = True
        report.success = True
        report.duration = (datetime.now() - session.started_at).total_seconds()

        self.logger.info("Sync pass completed", **report.summary())

        return report


class SyncEngineError(Exception):
    """Raised when a pass is aborted by a connection-level failure."""

    def __init__(self, message: str, report: Optional[SyncReport] = None):
        super().__init__(message)
        self.report = report
