"""Local edit history for cached files.

Tracks local edits as cumulative, reversible patches grouped into
sessions, and reconstructs earlier versions from them.
"""

from .edit_history import (
    ORIGIN_LOCAL,
    ORIGIN_REMOTE,
    REVERTED,
    DiffRecord,
    DiffStats,
    DiffWithOrigin,
    EditHistoryEntry,
    EditHistoryStore,
    HistoryItem,
    reconstruct,
)

__all__ = [
    "ORIGIN_LOCAL",
    "ORIGIN_REMOTE",
    "REVERTED",
    "DiffRecord",
    "DiffStats",
    "DiffWithOrigin",
    "EditHistoryEntry",
    "EditHistoryStore",
    "HistoryItem",
    "reconstruct",
]
