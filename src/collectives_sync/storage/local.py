"""Local vault storage interface and filesystem implementation."""

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, TypeVar, Union

from .base import MARKDOWN_EXTENSION
from ..core.paths import is_under_local_base, normalize_local_path
from ..utils.logging import get_logger

T = TypeVar("T")


class LocalStorageError(Exception):
    """Raised when a vault file cannot be read or written."""

    def __init__(self, message: str, path: str):
        super().__init__(message)
        self.path = path


class LocalStorage(ABC):
    """Whole-file text access to a vault, addressed by vault-relative paths."""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        pass

    @abstractmethod
    async def read(self, path: str) -> str:
        pass

    @abstractmethod
    async def write(self, path: str, content: str) -> None:
        """Replace an existing file's content."""

    @abstractmethod
    async def create_file(self, path: str, content: str) -> None:
        """Create a new file; fails if it already exists."""

    @abstractmethod
    async def create_directory(self, path: str) -> None:
        """Create a folder and its parents; an existing folder is fine."""

    @abstractmethod
    async def list_markdown_files(self, root: str = "") -> List[str]:
        """Vault-relative paths of all markdown files under ``root``."""


class FileSystemVault(LocalStorage):
    """Vault backed by a directory on disk.

    Disk access runs in the default executor so a large vault does not stall
    the event loop.
    """

    def __init__(self, vault_root: Union[str, Path]):
        self.vault_root = Path(vault_root).expanduser().resolve()
        self.logger = get_logger(self.__class__.__name__)

    def _resolve(self, path: str) -> Path:
        relative = normalize_local_path(path)
        target = (self.vault_root / relative).resolve()
        if target != self.vault_root and self.vault_root not in target.parents:
            raise LocalStorageError(f"Path escapes the vault: {path}", path)
        return target

    async def _run(self, func: Callable[..., T], *args) -> T:
        return await asyncio.get_running_loop().run_in_executor(None, func, *args)

    def to_vault_path(self, absolute: Union[str, Path]) -> str:
        """Convert an absolute filesystem path into a vault-relative one."""
        return Path(absolute).resolve().relative_to(self.vault_root).as_posix()

    async def exists(self, path: str) -> bool:
        return await self._run(self._resolve(path).exists)

    async def read(self, path: str) -> str:
        return await self._run(self._read, path)

    async def write(self, path: str, content: str) -> None:
        await self._run(self._write, path, content, 'w')

    async def create_file(self, path: str, content: str) -> None:
        await self._run(self._write, path, content, 'x')

    async def create_directory(self, path: str) -> None:
        await self._run(self._mkdir, path)

    async def list_markdown_files(self, root: str = "") -> List[str]:
        return await self._run(self._list_markdown, root)

    def _read(self, path: str) -> str:
        target = self._resolve(path)
        try:
            with open(target, 'r', encoding='utf-8', newline='') as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise LocalStorageError(f"Failed to read {path}: {e}", path) from e

    def _write(self, path: str, content: str, mode: str) -> None:
        target = self._resolve(path)
        try:
            with open(target, mode, encoding='utf-8', newline='') as f:
                f.write(content)
        except FileExistsError as e:
            raise LocalStorageError(f"File already exists: {path}", path) from e
        except OSError as e:
            raise LocalStorageError(f"Failed to write {path}: {e}", path) from e

    def _mkdir(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LocalStorageError(f"Failed to create folder {path}: {e}", path) from e

    def _list_markdown(self, root: str) -> List[str]:
        base = self._resolve(root)
        if not base.is_dir():
            return []

        files = []
        for candidate in base.rglob(f"*{MARKDOWN_EXTENSION}"):
            if not candidate.is_file():
                continue
            relative = candidate.relative_to(self.vault_root).as_posix()
            # Skip hidden folders such as .obsidian and .trash
            if any(part.startswith('.') for part in relative.split('/')):
                continue
            if is_under_local_base(relative, root):
                files.append(relative)

        return sorted(files)
