"""Vault file watcher feeding save events into the orchestrator."""

import asyncio
import concurrent.futures
import functools
from pathlib import Path
from typing import Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .core.orchestrator import SyncOrchestrator
from .storage.base import MARKDOWN_EXTENSION
from .storage.local import FileSystemVault
from .utils.logging import get_logger


class VaultChangeHandler(FileSystemEventHandler):
    """Forwards markdown saves from the observer thread to the event loop."""

    def __init__(self, vault: FileSystemVault, orchestrator: SyncOrchestrator, loop: asyncio.AbstractEventLoop):
        self.vault = vault
        self.orchestrator = orchestrator
        self.loop = loop
        self.logger = get_logger(self.__class__.__name__)

    def _forward(self, src_path: str) -> None:
        if not src_path.endswith(MARKDOWN_EXTENSION):
            return

        try:
            vault_path = self.vault.to_vault_path(src_path)
        except ValueError:
            return

        if any(part.startswith('.') for part in Path(vault_path).parts):
            return

        self.logger.debug("Vault file changed", path=vault_path)
        future = asyncio.run_coroutine_threadsafe(self.orchestrator.on_file_changed(vault_path), self.loop)
        future.add_done_callback(functools.partial(self._log_failure, vault_path))

    def _log_failure(self, vault_path: str, future: concurrent.futures.Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self.logger.error(
                "Failed to handle vault change",
                path=vault_path,
                error=str(error),
                exc_info=error
            )

    def on_created(self, event):
        if not event.is_directory:
            self._forward(str(event.src_path))

    def on_modified(self, event):
        if not event.is_directory:
            self._forward(str(event.src_path))

    def on_moved(self, event):
        # Editors that save through a temp file and rename show up as moves
        if not event.is_directory:
            self._forward(str(event.dest_path))


class VaultWatcher:
    """Owns the watchdog observer for one vault."""

    def __init__(self, vault: FileSystemVault, orchestrator: SyncOrchestrator):
        self.vault = vault
        self.orchestrator = orchestrator
        self.logger = get_logger(self.__class__.__name__)
        self._observer: Optional[Observer] = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        if self._observer is not None:
            return

        handler = VaultChangeHandler(self.vault, self.orchestrator, loop or asyncio.get_running_loop())
        observer = Observer()
        observer.schedule(handler, str(self.vault.vault_root), recursive=True)
        observer.start()
        self._observer = observer

        self.logger.info("Watching vault for changes", vault_root=str(self.vault.vault_root))

    def stop(self) -> None:
        if self._observer is None:
            return

        observer, self._observer = self._observer, None
        observer.stop()
        observer.join(timeout=10)
        self.logger.info("Vault watcher stopped")
