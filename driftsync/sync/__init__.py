"""Sync between the local cache and the remote file store.

Provides the three-way sync classification plus the transport and the
push/pull/resolve flows built on it.
"""

from .client import RemoteClient
from .meta import (
    ConflictInfo,
    RemoteFileMeta,
    RemoteSnapshot,
    SyncDiff,
    classify,
    is_sync_excluded_path,
)
from .orchestrator import SyncOrchestrator, SyncResult, SyncStatus

__all__ = [
    "ConflictInfo",
    "RemoteClient",
    "RemoteFileMeta",
    "RemoteSnapshot",
    "SyncDiff",
    "SyncOrchestrator",
    "SyncResult",
    "SyncStatus",
    "classify",
    "is_sync_excluded_path",
]
