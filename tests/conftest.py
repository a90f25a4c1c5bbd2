"""Shared fixtures: an in-memory remote and a temporary vault."""

from typing import Dict, List, Optional

import pytest

from collectives_sync.storage.base import (
    RemoteEntry,
    RemoteStorage,
    RemoteNotFoundError,
    RemoteAlreadyExistsError,
)
from collectives_sync.storage.local import FileSystemVault


class InMemoryRemoteStorage(RemoteStorage):
    """Remote store kept in dictionaries, with hooks for injecting failures."""

    def __init__(self, files: Optional[Dict[str, str]] = None, directories: Optional[List[str]] = None):
        super().__init__()
        self.files: Dict[str, str] = {}
        self.directories = {"/"}
        self.calls: Dict[str, int] = {}
        self.put_log: List[str] = []
        self.mkdir_log: List[str] = []
        self.closed = False

        # path -> exception raised by the named operation
        self.errors: Dict[str, Dict[str, Exception]] = {}
        # directories that "appear" between stat and create
        self.race_directories: set = set()

        for directory in directories or []:
            self._add_directory_chain(directory)
        for path, content in (files or {}).items():
            self._add_directory_chain(path.rsplit('/', 1)[0])
            self.files[path] = content

    def _add_directory_chain(self, directory: str) -> None:
        current = ""
        for part in [p for p in directory.split('/') if p]:
            current += '/' + part
            self.directories.add(current)

    def fail(self, operation: str, path: str, error: Exception) -> None:
        self.errors.setdefault(operation, {})[path] = error

    def _record(self, operation: str, path: str) -> None:
        self.calls[operation] = self.calls.get(operation, 0) + 1
        error = self.errors.get(operation, {}).get(path)
        if error is not None:
            raise error

    @staticmethod
    def _entry(path: str, is_dir: bool, content: str = "") -> RemoteEntry:
        return RemoteEntry(
            filename=path,
            basename=path.rsplit('/', 1)[-1],
            type="directory" if is_dir else "file",
            size=len(content.encode('utf-8'))
        )

    async def stat(self, path: str) -> RemoteEntry:
        self._record("stat", path)
        if path in self.directories:
            return self._entry(path, True)
        if path in self.files:
            return self._entry(path, False, self.files[path])
        raise RemoteNotFoundError(f"Not found: {path}", path=path, status=404)

    async def create_directory(self, path: str) -> None:
        self._record("create_directory", path)
        if path in self.race_directories:
            self.race_directories.discard(path)
            self.directories.add(path)
            raise RemoteAlreadyExistsError(f"Already exists: {path}", path=path, status=405)
        if path in self.directories:
            raise RemoteAlreadyExistsError(f"Already exists: {path}", path=path, status=405)
        parent = path.rsplit('/', 1)[0] or "/"
        if parent not in self.directories:
            raise RemoteNotFoundError(f"Parent missing: {path}", path=path, status=409)
        self.directories.add(path)
        self.mkdir_log.append(path)

    async def list_directory_recursive(self, path: str) -> List[RemoteEntry]:
        self._record("list_directory_recursive", path)
        if path not in self.directories:
            raise RemoteNotFoundError(f"Not found: {path}", path=path, status=404)
        prefix = path.rstrip('/') + '/'
        entries = [self._entry(d, True) for d in sorted(self.directories) if d.startswith(prefix)]
        entries += [self._entry(f, False, c) for f, c in sorted(self.files.items()) if f.startswith(prefix)]
        return entries

    async def get_file_contents(self, path: str) -> str:
        self._record("get_file_contents", path)
        if path not in self.files:
            raise RemoteNotFoundError(f"Not found: {path}", path=path, status=404)
        return self.files[path]

    async def put_file_contents(self, path: str, content: str, overwrite: bool = True) -> None:
        self._record("put_file_contents", path)
        parent = path.rsplit('/', 1)[0] or "/"
        if parent not in self.directories:
            raise RemoteNotFoundError(f"Parent missing: {path}", path=path, status=409)
        if not overwrite and path in self.files:
            raise RemoteAlreadyExistsError(f"Already exists: {path}", path=path, status=412)
        self.files[path] = content
        self.put_log.append(path)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def remote():
    """Empty remote with the default collective root present."""
    return InMemoryRemoteStorage(directories=["/Collectives"])


@pytest.fixture
def vault_dir(tmp_path):
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def vault(vault_dir):
    return FileSystemVault(vault_dir)


def write_vault_file(vault_dir, relative: str, content: str) -> None:
    """Create a file inside the temporary vault, including parent folders."""
    target = vault_dir / relative
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding='utf-8', newline='')


@pytest.fixture
def write_file(vault_dir):
    def _write(relative: str, content: str) -> None:
        write_vault_file(vault_dir, relative, content)
    return _write
