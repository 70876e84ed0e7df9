"""Task synchronization package."""

from .config import SyncConfig, SyncConfigError, load_sync_config  # noqa: F401
from .service import RemoteEvent, SyncReport, TaskSyncError, TaskSyncService  # noqa: F401

__all__ = [
    "RemoteEvent",
    "SyncConfig",
    "SyncConfigError",
    "SyncReport",
    "TaskSyncError",
    "TaskSyncService",
    "load_sync_config",
]
