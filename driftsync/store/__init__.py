"""Local persistence for driftsync.

Provides keyed collections for:
- Cached file content (what the editor currently has)
- The sync baseline (what both replicas last agreed on)
- Per-file edit history
"""

from .baseline import BaselineFile, SyncBaseline, SyncBaselineStore
from .cache import CachedFile, ContentCache, compute_checksum
from .local_store import LocalStore

__all__ = [
    "BaselineFile",
    "CachedFile",
    "ContentCache",
    "LocalStore",
    "SyncBaseline",
    "SyncBaselineStore",
    "compute_checksum",
]
