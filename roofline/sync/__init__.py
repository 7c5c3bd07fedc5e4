"""Camera synchronization between map surfaces."""

from .view_sync import SyncStats, ViewSyncBridge

__all__ = ["SyncStats", "ViewSyncBridge"]
