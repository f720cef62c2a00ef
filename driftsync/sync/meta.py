"""Remote metadata snapshots and the three-way sync classification.

classify() compares three views of every file:

- the sync baseline: checksums recorded at the last successful sync
- the remote snapshot: checksums the remote reports right now
- locally modified ids: files with an edit history since their last push

Checksum equality is the only change oracle. A file changed on both sides
is always reported as a conflict, even if both sides ended up with the
same content.
"""

from dataclasses import dataclass, field
from typing import Any

from ..store.baseline import SyncBaseline

SYNC_META_FILE_NAME = "_sync-meta.json"

SYSTEM_FILE_NAMES = frozenset({SYNC_META_FILE_NAME, "settings.json"})

SYNC_EXCLUDED_PREFIXES = (
    "history/",
    "trash/",
    "sync_conflicts/",
    "__TEMP__/",
    "plugins/",
)


def is_sync_excluded_path(file_name: str) -> bool:
    """Whether a file path is internal and never pushed or pulled."""
    normalized = file_name.lstrip("/")
    if normalized in SYSTEM_FILE_NAMES:
        return True
    return normalized.startswith(SYNC_EXCLUDED_PREFIXES)


@dataclass
class RemoteFileMeta:
    name: str
    mime_type: str
    checksum: str
    modified_time: str
    created_time: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "name": self.name,
            "mimeType": self.mime_type,
            "md5Checksum": self.checksum,
            "modifiedTime": self.modified_time,
        }
        if self.created_time is not None:
            data["createdTime"] = self.created_time
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RemoteFileMeta":
        return cls(
            name=data.get("name", ""),
            mime_type=data.get("mimeType", ""),
            checksum=data.get("md5Checksum", ""),
            modified_time=data.get("modifiedTime", ""),
            created_time=data.get("createdTime"),
        )


@dataclass
class RemoteSnapshot:
    """Remote file metadata as reported by the file store, keyed by file id."""

    last_updated_at: str
    files: dict[str, RemoteFileMeta] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastUpdatedAt": self.last_updated_at,
            "files": {fid: meta.to_dict() for fid, meta in self.files.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RemoteSnapshot":
        return cls(
            last_updated_at=data.get("lastUpdatedAt", ""),
            files={
                fid: RemoteFileMeta.from_dict(meta)
                for fid, meta in (data.get("files") or {}).items()
            },
        )


@dataclass
class ConflictInfo:
    """A file changed both locally and remotely since the last sync."""

    file_id: str
    file_name: str
    local_checksum: str
    remote_checksum: str
    local_modified_time: str
    remote_modified_time: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_id": self.file_id,
            "file_name": self.file_name,
            "local_checksum": self.local_checksum,
            "remote_checksum": self.remote_checksum,
            "local_modified_time": self.local_modified_time,
            "remote_modified_time": self.remote_modified_time,
        }


@dataclass
class SyncDiff:
    """Sync action for every unsettled file. Each id appears at most once."""

    to_push: list[str] = field(default_factory=list)
    to_pull: list[str] = field(default_factory=list)
    conflicts: list[ConflictInfo] = field(default_factory=list)
    edit_delete_conflicts: list[str] = field(default_factory=list)
    local_only: list[str] = field(default_factory=list)
    remote_only: list[str] = field(default_factory=list)

    @property
    def conflict_ids(self) -> list[str]:
        return [c.file_id for c in self.conflicts]

    @property
    def is_settled(self) -> bool:
        return not (
            self.to_push
            or self.to_pull
            or self.conflicts
            or self.edit_delete_conflicts
            or self.local_only
            or self.remote_only
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "to_push": self.to_push,
            "to_pull": self.to_pull,
            "conflicts": [c.to_dict() for c in self.conflicts],
            "edit_delete_conflicts": self.edit_delete_conflicts,
            "local_only": self.local_only,
            "remote_only": self.remote_only,
        }


def classify(
    local_baseline: SyncBaseline | None,
    remote_snapshot: RemoteSnapshot | None,
    locally_modified_ids: set[str] | None = None,
) -> SyncDiff:
    """Decide the sync action for every known file.

    Args:
        local_baseline: Snapshot recorded at the last sync, if any.
        remote_snapshot: Freshly fetched remote metadata, if any.
        locally_modified_ids: Files with open local edit history.

    Returns:
        SyncDiff with file ids in sorted order within each list.
    """
    local_files = local_baseline.files if local_baseline else {}
    remote_files = remote_snapshot.files if remote_snapshot else {}
    modified = locally_modified_ids or set()

    all_ids = set(local_files) | set(modified)
    all_ids.update(
        fid for fid, meta in remote_files.items() if meta.name not in SYSTEM_FILE_NAMES
    )

    diff = SyncDiff()
    for file_id in sorted(all_ids):
        local = local_files.get(file_id)
        remote = remote_files.get(file_id)
        locally_modified = file_id in modified

        has_local = local is not None or locally_modified
        has_remote = remote is not None

        remote_changed = (
            local is not None
            and remote is not None
            and (
                local.checksum != remote.checksum
                or (local.name is not None and local.name != remote.name)
            )
        )

        if has_local and not has_remote:
            # Edited here after a sync, deleted there
            if locally_modified and local is not None:
                diff.edit_delete_conflicts.append(file_id)
            else:
                diff.local_only.append(file_id)
        elif not has_local and has_remote:
            diff.remote_only.append(file_id)
        elif locally_modified and remote_changed:
            diff.conflicts.append(
                ConflictInfo(
                    file_id=file_id,
                    file_name=remote.name or file_id,
                    local_checksum=local.checksum,
                    remote_checksum=remote.checksum,
                    local_modified_time=local.modified_time,
                    remote_modified_time=remote.modified_time,
                )
            )
        elif locally_modified:
            diff.to_push.append(file_id)
        elif remote_changed:
            diff.to_pull.append(file_id)

    return diff
