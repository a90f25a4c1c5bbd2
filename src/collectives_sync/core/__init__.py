"""Core sync logic package."""

from .paths import (
    PathMappingError,
    local_to_remote,
    remote_to_local,
    normalize_collective_path,
    normalize_local_path
)
from .models import FileAction, FileResult, PhaseReport, SyncReport, SyncSession
from .directories import RemoteDirectoryEnsurer
from .uploader import ChangeUploader
from .downloader import ChangeDownloader
from .sync_engine import SyncEngine, SyncEngineError

__all__ = [
    "PathMappingError",
    "local_to_remote",
    "remote_to_local",
    "normalize_collective_path",
    "normalize_local_path",
    "FileAction",
    "FileResult",
    "PhaseReport",
    "SyncReport",
    "SyncSession",
    "RemoteDirectoryEnsurer",
    "ChangeUploader",
    "ChangeDownloader",
    "SyncEngine",
    "SyncEngineError"
]
