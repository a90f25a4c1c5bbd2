"""Tests for full upload-then-download passes."""

import asyncio
import os

import pytest

from collectives_sync.core.models import FileAction
from collectives_sync.core.sync_engine import SyncEngine, SyncEngineError
from collectives_sync.storage.base import APIConnectionError, AuthenticationError, RemoteStorageError

from conftest import InMemoryRemoteStorage


class TestSyncEngine:
    """End-to-end pass behaviour against the in-memory remote."""

    @pytest.mark.asyncio
    async def test_local_file_is_uploaded(self, remote, vault, write_file):
        write_file("notes/a.md", "X")

        report = await SyncEngine(remote, vault).run_pass("", "/Collectives")

        assert report.success
        assert remote.files["/Collectives/notes/a.md"] == "X"

    @pytest.mark.asyncio
    async def test_remote_file_is_downloaded(self, vault, vault_dir):
        remote = InMemoryRemoteStorage(files={"/Collectives/notes/b.md": "Y"})

        report = await SyncEngine(remote, vault).run_pass("", "/Collectives")

        assert report.download.count(FileAction.CREATED) == 1
        assert (vault_dir / "notes" / "b.md").read_text(encoding='utf-8') == "Y"

    @pytest.mark.asyncio
    async def test_missing_collective_root_is_not_an_error(self, vault):
        remote = InMemoryRemoteStorage()

        report = await SyncEngine(remote, vault).run_pass("", "/Collectives")

        assert report.success
        assert report.upload.files_processed == 0
        assert report.download.files_processed == 0

    @pytest.mark.asyncio
    async def test_local_edit_wins_over_stale_remote(self, vault, vault_dir, write_file):
        remote = InMemoryRemoteStorage(files={"/Collectives/a.md": "stale"})
        write_file("a.md", "fresh")

        await SyncEngine(remote, vault).run_pass("", "/Collectives")

        assert remote.files["/Collectives/a.md"] == "fresh"
        assert (vault_dir / "a.md").read_text(encoding='utf-8') == "fresh"

    @pytest.mark.asyncio
    async def test_second_pass_writes_nothing_locally(self, vault, vault_dir, write_file):
        remote = InMemoryRemoteStorage(files={"/Collectives/remote.md": "R"})
        write_file("local.md", "L")
        engine = SyncEngine(remote, vault)

        await engine.run_pass("", "/Collectives")
        mtimes = {}
        for name in ("local.md", "remote.md"):
            os.utime(vault_dir / name, (1_000_000, 1_000_000))
            mtimes[name] = (vault_dir / name).stat().st_mtime

        second = await engine.run_pass("", "/Collectives")

        assert second.local_writes == 0
        assert second.download.count(FileAction.UNCHANGED) == 2
        for name, mtime in mtimes.items():
            assert (vault_dir / name).stat().st_mtime == mtime

    @pytest.mark.asyncio
    async def test_uploads_happen_before_downloads(self, vault, write_file):
        remote = InMemoryRemoteStorage(files={"/Collectives/b.md": "B"})
        write_file("a.md", "A")
        order = []

        original_put = remote.put_file_contents
        original_get = remote.get_file_contents

        async def put(path, content, overwrite=True):
            order.append(("put", path))
            await original_put(path, content, overwrite)

        async def get(path):
            order.append(("get", path))
            return await original_get(path)

        remote.put_file_contents = put
        remote.get_file_contents = get

        await SyncEngine(remote, vault).run_pass("", "/Collectives")

        assert order[0] == ("put", "/Collectives/a.md")
        assert all(kind == "get" for kind, _ in order[1:])

    @pytest.mark.asyncio
    async def test_per_file_failures_do_not_fail_the_pass(self, vault, write_file):
        remote = InMemoryRemoteStorage(directories=["/Collectives"])
        write_file("a.md", "A")
        write_file("b.md", "B")
        remote.fail("put_file_contents", "/Collectives/a.md", RemoteStorageError("locked", status=423))

        report = await SyncEngine(remote, vault).run_pass("", "/Collectives")

        assert report.success
        assert report.files_failed == 1
        assert report.failed_paths == ["a.md"]

    @pytest.mark.asyncio
    async def test_authentication_failure_aborts_the_pass(self, vault, write_file):
        remote = InMemoryRemoteStorage(directories=["/Collectives"])
        write_file("a.md", "A")
        remote.fail("stat", "/Collectives", AuthenticationError("401 Unauthorized"))

        with pytest.raises(SyncEngineError) as exc_info:
            await SyncEngine(remote, vault).run_pass("", "/Collectives")

        assert isinstance(exc_info.value.__cause__, AuthenticationError)
        assert exc_info.value.report is not None
        assert not exc_info.value.report.success

    @pytest.mark.asyncio
    async def test_aborted_pass_keeps_completed_uploads(self, vault, write_file):
        remote = InMemoryRemoteStorage(directories=["/Collectives"])
        write_file("a.md", "A")
        write_file("b.md", "B")
        remote.fail("put_file_contents", "/Collectives/b.md", APIConnectionError("connection reset"))

        with pytest.raises(SyncEngineError) as exc_info:
            await SyncEngine(remote, vault).run_pass("", "/Collectives")

        report = exc_info.value.report
        assert remote.put_log == ["/Collectives/a.md"]
        assert report.upload.count(FileAction.UPLOADED) == 1
        assert report.summary()["uploaded"] == 1
        assert report.download.files_processed == 0

    @pytest.mark.asyncio
    async def test_cancelled_pass_skips_download(self, vault):
        remote = InMemoryRemoteStorage(files={"/Collectives/b.md": "B"})
        cancel = asyncio.Event()
        cancel.set()

        report = await SyncEngine(remote, vault).run_pass("", "/Collectives", cancel_event=cancel)

        assert report.cancelled
        assert remote.calls.get("list_directory_recursive", 0) == 0

    @pytest.mark.asyncio
    async def test_upload_single(self, remote, vault, write_file):
        write_file("Work/a.md", "A")

        result = await SyncEngine(remote, vault).upload_single("Work/a.md", "Work", "/Collectives")

        assert result.action == FileAction.UPLOADED
        assert remote.files["/Collectives/a.md"] == "A"
