"""Collectives Sync: keep a markdown vault in sync with Nextcloud Collectives."""

__version__ = "1.0.0"

# config must be loaded before core and storage
from . import config
from .core.orchestrator import SyncOrchestrator, SyncState

__all__ = [
    "__version__",
    "config",
    "SyncOrchestrator",
    "SyncState"
]
