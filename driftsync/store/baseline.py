"""Sync baseline: the file state both replicas last agreed on."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .local_store import REMOTE_META, SYNC_META, LocalStore

logger = logging.getLogger(__name__)

CURRENT_KEY = "current"


@dataclass
class BaselineFile:
    checksum: str
    modified_time: str
    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {"checksum": self.checksum, "modified_time": self.modified_time}
        if self.name is not None:
            data["name"] = self.name
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BaselineFile":
        return cls(
            checksum=data.get("checksum", ""),
            modified_time=data.get("modified_time", ""),
            name=data.get("name"),
        )


@dataclass
class SyncBaseline:
    """Per-file checksums recorded at the last successful sync."""

    last_updated_at: str = field(default_factory=lambda: datetime.now().isoformat())
    files: dict[str, BaselineFile] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_updated_at": self.last_updated_at,
            "files": {fid: f.to_dict() for fid, f in self.files.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncBaseline":
        return cls(
            last_updated_at=data.get("last_updated_at", ""),
            files={
                fid: BaselineFile.from_dict(f)
                for fid, f in (data.get("files") or {}).items()
            },
        )

    @classmethod
    def from_snapshot(cls, snapshot: Any) -> "SyncBaseline":
        """Build a baseline from a remote snapshot after a confirmed sync."""
        return cls(
            last_updated_at=snapshot.last_updated_at,
            files={
                fid: BaselineFile(
                    checksum=meta.checksum,
                    modified_time=meta.modified_time,
                    name=meta.name,
                )
                for fid, meta in snapshot.files.items()
            },
        )


class SyncBaselineStore:
    """Single-record store for the sync baseline.

    Only the sync orchestrator writes here, after a push or pull has been
    confirmed by the remote.
    """

    def __init__(self, store: LocalStore):
        self.store = store

    def get(self) -> SyncBaseline | None:
        data = self.store.get(SYNC_META, CURRENT_KEY)
        if data is None:
            return None
        try:
            return SyncBaseline.from_dict(data)
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring malformed sync baseline: {e}")
            return None

    def put(self, baseline: SyncBaseline) -> bool:
        return self.store.put(SYNC_META, CURRENT_KEY, baseline.to_dict())

    def update_files(self, files: dict[str, BaselineFile]) -> SyncBaseline:
        """Merge per-file entries into the baseline and persist it."""
        baseline = self.get() or SyncBaseline()
        baseline.files.update(files)
        baseline.last_updated_at = datetime.now().isoformat()
        self.put(baseline)
        return baseline

    def remove_files(self, file_ids: list[str]) -> SyncBaseline:
        """Forget files that no longer exist on either side."""
        baseline = self.get() or SyncBaseline()
        for file_id in file_ids:
            baseline.files.pop(file_id, None)
        baseline.last_updated_at = datetime.now().isoformat()
        self.put(baseline)
        return baseline

    # The last fetched remote snapshot, kept so a pull can run offline
    # against what the remote looked like at the last check.

    def get_remote(self) -> dict[str, Any] | None:
        return self.store.get(REMOTE_META, CURRENT_KEY)

    def put_remote(self, data: dict[str, Any]) -> bool:
        return self.store.put(REMOTE_META, CURRENT_KEY, data)
