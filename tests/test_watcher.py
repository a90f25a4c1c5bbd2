"""Tests for forwarding vault file events to the orchestrator."""

import asyncio

import pytest
from watchdog.events import DirModifiedEvent, FileCreatedEvent, FileModifiedEvent, FileMovedEvent

from collectives_sync.watcher import VaultChangeHandler


class FakeOrchestrator:

    def __init__(self):
        self.changed = []

    async def on_file_changed(self, path):
        self.changed.append(path)


async def settle():
    for _ in range(5):
        await asyncio.sleep(0.01)


class TestVaultChangeHandler:
    """Event filtering and path translation."""

    @pytest.fixture
    def orchestrator(self):
        return FakeOrchestrator()

    @pytest.fixture
    async def handler(self, vault, orchestrator):
        return VaultChangeHandler(vault, orchestrator, asyncio.get_running_loop())

    @pytest.mark.asyncio
    async def test_markdown_changes_are_forwarded_as_vault_paths(self, handler, orchestrator, vault_dir):
        handler.on_modified(FileModifiedEvent(str(vault_dir / "notes" / "a.md")))
        handler.on_created(FileCreatedEvent(str(vault_dir / "b.md")))
        await settle()

        assert orchestrator.changed == ["notes/a.md", "b.md"]

    @pytest.mark.asyncio
    async def test_moves_use_destination(self, handler, orchestrator, vault_dir):
        handler.on_moved(FileMovedEvent(str(vault_dir / ".a.md.tmp"), str(vault_dir / "a.md")))
        await settle()

        assert orchestrator.changed == ["a.md"]

    @pytest.mark.asyncio
    async def test_irrelevant_events_are_dropped(self, handler, orchestrator, vault_dir, tmp_path):
        handler.on_modified(DirModifiedEvent(str(vault_dir / "notes")))
        handler.on_modified(FileModifiedEvent(str(vault_dir / "image.png")))
        handler.on_modified(FileModifiedEvent(str(vault_dir / ".obsidian" / "workspace.md")))
        handler.on_modified(FileModifiedEvent(str(tmp_path / "outside.md")))
        await settle()

        assert orchestrator.changed == []

    @pytest.mark.asyncio
    async def test_handler_failures_are_logged(self, vault, vault_dir):
        class FailingOrchestrator:
            async def on_file_changed(self, path):
                raise RuntimeError("disk full")

        class RecordingLogger:
            def __init__(self):
                self.errors = []

            def debug(self, event, **kw):
                pass

            def error(self, event, **kw):
                self.errors.append((event, kw))

        handler = VaultChangeHandler(vault, FailingOrchestrator(), asyncio.get_running_loop())
        handler.logger = RecordingLogger()

        handler.on_modified(FileModifiedEvent(str(vault_dir / "a.md")))
        await settle()

        assert len(handler.logger.errors) == 1
        event, fields = handler.logger.errors[0]
        assert fields["path"] == "a.md"
        assert fields["error"] == "disk full"
