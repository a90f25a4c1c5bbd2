"""Result and session types for sync passes."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class FileAction(str, Enum):
    """What happened to a single file."""
    UPLOADED = "uploaded"
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass
class FileResult:
    """Outcome of one per-file operation."""

    path: str
    action: FileAction
    remote_path: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.action != FileAction.FAILED

    @property
    def wrote(self) -> bool:
        """Whether a file was written on either side."""
        return self.action in (FileAction.UPLOADED, FileAction.CREATED, FileAction.UPDATED)


@dataclass
class PhaseReport:
    """Accumulated per-file results of one phase."""

    name: str
    results: List[FileResult] = field(default_factory=list)
    cancelled: bool = False

    def add(self, result: FileResult) -> None:
        self.results.append(result)

    @property
    def files_processed(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def failed_paths(self) -> List[str]:
        return [r.path for r in self.results if not r.success]

    @property
    def files_written(self) -> int:
        return sum(1 for r in self.results if r.wrote)

    def count(self, action: FileAction) -> int:
        return sum(1 for r in self.results if r.action == action)


@dataclass
class SyncSession:
    """State of a single pass. Never persisted."""

    local_folder: str
    remote_root: str
    started_at: datetime = field(default_factory=datetime.now)
    success: bool = False
    error_message: Optional[str] = None


@dataclass
class SyncReport:
    """Result of a full upload-then-download pass."""

    trigger: str
    upload: PhaseReport
    download: PhaseReport
    success: bool = False
    cancelled: bool = False
    error_message: Optional[str] = None
    duration: Optional[float] = None

    @property
    def files_written(self) -> int:
        return self.upload.files_written + self.download.files_written

    @property
    def local_writes(self) -> int:
        """Files created or overwritten in the vault."""
        return self.download.files_written

    @property
    def files_failed(self) -> int:
        return self.upload.failed + self.download.failed

    @property
    def failed_paths(self) -> List[str]:
        return self.upload.failed_paths + self.download.failed_paths

    def summary(self) -> dict:
        return {
            "trigger": self.trigger,
            "success": self.success,
            "cancelled": self.cancelled,
            "uploaded": self.upload.count(FileAction.UPLOADED),
            "upload_failed": self.upload.failed,
            "downloaded_created": self.download.count(FileAction.CREATED),
            "downloaded_updated": self.download.count(FileAction.UPDATED),
            "unchanged": self.download.count(FileAction.UNCHANGED),
            "download_failed": self.download.failed,
            "failed_paths": self.failed_paths,
            "error_message": self.error_message,
            "duration": f"{self.duration:.2f}s" if self.duration is not None else None,
        }
