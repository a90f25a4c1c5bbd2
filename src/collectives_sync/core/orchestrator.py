"""Sync orchestrator: triggers, status and the remote connection."""

import asyncio
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .models import FileResult, SyncReport
from .paths import is_under_local_base, normalize_local_path
from .sync_engine import SyncEngine, SyncEngineError
from ..auth.credentials import CredentialError, CredentialProvider, Credentials, StaticCredentialProvider
from ..config.schema import SyncConfig
from ..config.settings import AppSettings, get_settings
from ..scheduler.job_scheduler import SyncScheduler, INTERVAL_JOB_ID
from ..storage.base import MARKDOWN_EXTENSION, RemoteStorage
from ..storage.local import LocalStorage
from ..utils.logging import get_logger


NOT_CONNECTED_NOTICE = "Not connected to Nextcloud. Please check your settings."
SYNC_COMPLETED_NOTICE = "Sync with Nextcloud Collectives completed"


class SyncState(str, Enum):
    """Orchestrator status."""
    IDLE = "idle"
    SYNCING = "syncing"
    CONNECTED = "connected"
    ERROR = "error"


STATUS_TEXT = {
    SyncState.IDLE: "Nextcloud: Not Connected",
    SyncState.SYNCING: "Nextcloud: Syncing...",
    SyncState.CONNECTED: "Nextcloud: Connected",
    SyncState.ERROR: "Nextcloud: Error",
}

StatusListener = Callable[[SyncState, str], None]
NoticeListener = Callable[[str], None]
RemoteFactory = Callable[[Credentials], RemoteStorage]
ProviderFactory = Callable[[SyncConfig], CredentialProvider]


class SyncOrchestrator:
    """Drives sync passes for one vault and one collective.

    Manual runs, timer ticks and save notifications all funnel through a
    single lock, so at most one pass or upload touches the remote at a time.
    A pass requested while another is running is coalesced into one
    follow-up pass shared by every caller that asked in the meantime.
    """

    def __init__(
        self,
        config: SyncConfig,
        local_storage: LocalStorage,
        remote_factory: RemoteFactory,
        credential_provider_factory: Optional[ProviderFactory] = None,
        settings: Optional[AppSettings] = None
    ):
        """Initialize the orchestrator.

        Args:
            config: Connection and sync settings
            local_storage: Vault the pass reads from and writes to
            remote_factory: Builds a remote connection from credentials
            credential_provider_factory: Builds a credential provider for a config
            settings: Application settings
        """
        self.settings = settings or get_settings()
        self.local = local_storage
        self.remote_factory = remote_factory
        self.credential_provider_factory = credential_provider_factory or StaticCredentialProvider
        self.logger = get_logger(self.__class__.__name__)

        self._config = config
        self._connection: Optional[RemoteStorage] = None
        self._retired: List[RemoteStorage] = []

        self._lock = asyncio.Lock()
        self._follow_up: Optional[asyncio.Task] = None
        self._cancel_event = asyncio.Event()
        self._started = False

        self.scheduler = SyncScheduler(
            callback=self._on_timer,
            misfire_grace_seconds=self.settings.scheduling.misfire_grace_seconds
        )

        self.state = SyncState.IDLE
        self.status_text = STATUS_TEXT[SyncState.IDLE]
        self.last_report: Optional[SyncReport] = None
        self.last_error: Optional[str] = None
        self.passes_run = 0

        self.status_listeners: List[StatusListener] = []
        self.notice_listeners: List[NoticeListener] = []

    @property
    def config(self) -> SyncConfig:
        return self._config

    @property
    def connection(self) -> Optional[RemoteStorage]:
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    def _set_state(self, state: SyncState, text: Optional[str] = None) -> None:
        self.state = state
        self.status_text = text or STATUS_TEXT[state]
        for listener in list(self.status_listeners):
            listener(state, self.status_text)

    def _notify(self, message: str) -> None:
        self.logger.info("Notice", message=message)
        for listener in list(self.notice_listeners):
            listener(message)

    async def connect(self) -> bool:
        """Build a new connection from the current config and swap it in.

        The previous connection is closed once no pass is using it.

        Returns:
            True if a connection is now available
        """
        try:
            credentials = await self.credential_provider_factory(self._config).get_credentials()
            new_connection = self.remote_factory(credentials)
        except CredentialError as e:
            self.logger.warning("No usable credentials, staying disconnected", error=str(e))
            credentials = None
            new_connection = None

        old_connection, self._connection = self._connection, new_connection
        if old_connection is not None:
            await self._retire(old_connection)

        if new_connection is None:
            self._set_state(SyncState.IDLE)
            return False

        text = "Nextcloud: Connected via OAuth" if credentials.is_token else None
        self._set_state(SyncState.CONNECTED, text)
        self.logger.info("Remote connection ready", url=credentials.url, username=credentials.username)
        return True

    async def _retire(self, connection: RemoteStorage) -> None:
        if self._lock.locked():
            self._retired.append(connection)
        else:
            await connection.close()

    async def _close_retired(self) -> None:
        while self._retired:
            await self._retired.pop().close()

    async def update_config(self, config: SyncConfig) -> None:
        """Replace the config, rebuild the connection and reschedule timers."""
        self._config = config
        self.logger.info("Configuration updated", config=config.redacted())
        await self.connect()
        if self._started:
            self._apply_schedule(include_startup=False)

    def _apply_schedule(self, include_startup: bool) -> None:
        self.scheduler.schedule_interval(self._config.sync_interval)
        if include_startup and self._config.sync_on_startup:
            self.scheduler.schedule_startup(self._config.startup_delay_seconds)

    async def start(self) -> None:
        """Connect and arm the interval and startup timers."""
        if self._started:
            self.logger.warning("Orchestrator is already running")
            return

        await self.connect()
        self._apply_schedule(include_startup=True)
        self.scheduler.start()
        self._started = True

        self.logger.info(
            "Orchestrator started",
            sync_interval=self._config.sync_interval,
            sync_on_startup=self._config.sync_on_startup,
            sync_on_save=self._config.sync_on_save
        )

    async def stop(self) -> None:
        """Stop the timers, wait for an in-flight pass and drop the connection."""
        self.scheduler.stop()
        self._started = False

        async with self._lock:
            connection, self._connection = self._connection, None
            if connection is not None:
                await connection.close()
            await self._close_retired()

        self.logger.info("Orchestrator stopped")

    def cancel(self) -> None:
        """Ask the running pass to stop at the next file boundary."""
        self._cancel_event.set()

    async def _on_timer(self, trigger: str) -> Optional[SyncReport]:
        return await self.run_once(trigger)

    async def run_once(self, trigger: str = "manual") -> Optional[SyncReport]:
        """Run one full pass, or join the queued follow-up if one is running.

        Returns:
            The pass report, or None when not connected
        """
        if self._follow_up is None and not self._lock.locked():
            async with self._lock:
                return await self._run_pass(trigger)

        if self._follow_up is None:
            self.logger.info("Sync in progress, queueing follow-up pass", trigger=trigger)
            self._follow_up = asyncio.ensure_future(self._run_follow_up(trigger))
        else:
            self.logger.info("Sync already queued, joining it", trigger=trigger)

        # Shared by every queued caller
        return await asyncio.shield(self._follow_up)

    async def _run_follow_up(self, trigger: str) -> Optional[SyncReport]:
        async with self._lock:
            self._follow_up = None
            return await self._run_pass(trigger)

    async def _run_pass(self, trigger: str) -> Optional[SyncReport]:
        """Run a pass while holding the lock."""
        connection = self._connection
        if connection is None:
            self._notify(NOT_CONNECTED_NOTICE)
            self._set_state(SyncState.IDLE)
            return None

        config = self._config
        self._cancel_event.clear()
        self._set_state(SyncState.SYNCING)
        self.passes_run += 1

        engine = SyncEngine(connection, self.local)
        try:
            report = await engine.run_pass(
                local_folder=config.local_folder_path,
                remote_root=config.collective_path,
                trigger=trigger,
                cancel_event=self._cancel_event
            )
        except SyncEngineError as e:
            cause = e.__cause__ or e
            self.last_report = e.report
            self.last_error = str(cause)
            self._set_state(SyncState.ERROR)
            self._notify(f"Error syncing with Nextcloud: {cause}")
            return e.report
        except Exception as e:
            self.logger.exception("Unexpected error during sync", trigger=trigger)
            self.last_report = None
            self.last_error = str(e)
            self._set_state(SyncState.ERROR)
            self._notify(f"Error syncing with Nextcloud: {e}")
            return None
        finally:
            await self._close_retired()

        self.last_report = report
        self.last_error = None
        self._set_state(SyncState.CONNECTED)
        if report.files_failed:
            self._notify(f"{SYNC_COMPLETED_NOTICE} ({report.files_failed} file(s) failed)")
        else:
            self._notify(SYNC_COMPLETED_NOTICE)
        return report

    async def on_file_changed(self, path: str) -> Optional[FileResult]:
        """Upload a modified vault file when sync-on-save is enabled.

        Non-markdown files, files outside the local folder and calls while
        disconnected are ignored.
        """
        config = self._config
        if not config.sync_on_save:
            return None

        local_path = normalize_local_path(path)
        if not local_path.endswith(MARKDOWN_EXTENSION):
            return None
        if not is_under_local_base(local_path, config.local_folder_path):
            return None

        async with self._lock:
            connection = self._connection
            if connection is None:
                return None

            engine = SyncEngine(connection, self.local)
            try:
                return await engine.upload_single(
                    local_path,
                    local_folder=config.local_folder_path,
                    remote_root=config.collective_path
                )
            except SyncEngineError as e:
                cause = e.__cause__ or e
                self.last_error = str(cause)
                self._set_state(SyncState.ERROR)
                self._notify(f"Error uploading {local_path}: {cause}")
                return None
            finally:
                await self._close_retired()

    async def test_connection(self) -> bool:
        """Check that the current connection can reach the storage root."""
        connection = self._connection
        if connection is None:
            self._notify("Please configure your Nextcloud connection first")
            return False

        healthy = await connection.health_check()
        self._notify("Connection to Nextcloud successful!" if healthy else "Connection failed")
        return healthy

    def get_status(self) -> Dict[str, Any]:
        """Snapshot for status displays."""
        return {
            "state": self.state.value,
            "status_text": self.status_text,
            "connected": self.is_connected,
            "syncing": self.is_syncing,
            "passes_run": self.passes_run,
            "last_error": self.last_error,
            "last_report": self.last_report.summary() if self.last_report else None,
            "interval_job": self.scheduler.get_job_status(INTERVAL_JOB_ID),
        }
