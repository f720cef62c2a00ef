"""Per-file edit history as a trail of reversible, cumulative patches.

Each file has one EditHistoryEntry whose ``diffs`` list is a sequence of
edit sessions separated by boundary markers (records with an empty diff).
The open session is the single non-empty record after the last boundary;
it always holds the cumulative change from the session's base to the
cached content, so reverse-applying it to the cached content gives the
base back. The base itself is never stored.

record_edit is called before the content cache is updated, on every
autosave. add_boundary closes the session (file open/reload, pull,
restore, conflict resolved in favour of the remote copy).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Literal

from ..diff import (
    Patch,
    PatchApplyError,
    PatchParseError,
    apply_diff,
    compute_diff,
    reverse_apply,
)
from ..store.cache import ContentCache
from ..store.local_store import EDIT_HISTORY, LocalStore

logger = logging.getLogger(__name__)

REVERTED = "reverted"

ORIGIN_LOCAL = "local"
ORIGIN_REMOTE = "remote"


@dataclass
class DiffStats:
    additions: int = 0
    deletions: int = 0


@dataclass
class DiffRecord:
    """One history record. An empty ``diff`` marks a session boundary."""

    timestamp: str
    diff: str
    stats: DiffStats = field(default_factory=DiffStats)

    @property
    def is_boundary(self) -> bool:
        return self.diff == ""

    @classmethod
    def boundary(cls) -> "DiffRecord":
        return cls(timestamp=datetime.now().isoformat(), diff="")

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "diff": self.diff,
            "stats": {
                "additions": self.stats.additions,
                "deletions": self.stats.deletions,
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DiffRecord":
        """Create from dictionary.

        Raises:
            TypeError: If the stored diff is not text.
        """
        diff = data.get("diff") or ""
        if not isinstance(diff, str):
            raise TypeError(f"diff must be a string, got {type(diff).__name__}")
        stats = data.get("stats") or {}
        return cls(
            timestamp=str(data.get("timestamp", "")),
            diff=diff,
            stats=DiffStats(
                additions=stats.get("additions", 0),
                deletions=stats.get("deletions", 0),
            ),
        )


@dataclass
class EditHistoryEntry:
    """Edit history of one file since its last push."""

    file_id: str
    file_path: str
    diffs: list[DiffRecord] = field(default_factory=list)

    @property
    def open_session(self) -> DiffRecord | None:
        """The open session's record, if the last record is not a boundary."""
        if self.diffs and not self.diffs[-1].is_boundary:
            return self.diffs[-1]
        return None

    @property
    def has_changes(self) -> bool:
        return any(not d.is_boundary for d in self.diffs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_id": self.file_id,
            "file_path": self.file_path,
            "diffs": [d.to_dict() for d in self.diffs],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EditHistoryEntry":
        return cls(
            file_id=data["file_id"],
            file_path=data.get("file_path", ""),
            diffs=[DiffRecord.from_dict(d) for d in data.get("diffs", [])],
        )


@dataclass
class DiffWithOrigin:
    """A diff to walk back through, tagged with where it was recorded."""

    diff: str
    origin: Literal["local", "remote"] = ORIGIN_LOCAL


@dataclass
class HistoryItem:
    """One entry of a file's browsable history, local or remote."""

    item_id: str
    timestamp: str
    diff: str
    stats: DiffStats = field(default_factory=DiffStats)
    origin: Literal["local", "remote"] = ORIGIN_LOCAL
    source: str | None = None  # Remote only: what saved the edit

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.item_id,
            "timestamp": self.timestamp,
            "diff": self.diff,
            "stats": {
                "additions": self.stats.additions,
                "deletions": self.stats.deletions,
            },
            "origin": self.origin,
            "source": self.source,
        }


def reconstruct(current_content: str, diffs: list[DiffWithOrigin]) -> str | None:
    """Walk back from ``current_content`` through diffs ordered newest first.

    Local diffs must reverse-apply, since the cached content is always on
    their new side; a mismatch returns None. Remote diffs whose new side is
    not present locally (never pulled) are skipped. Malformed diffs are
    skipped as well.
    """
    content = current_content
    for item in diffs:
        if not isinstance(item.diff, str) or not item.diff:
            continue
        try:
            patch = Patch.parse(item.diff)
        except PatchParseError as e:
            logger.warning(f"Skipping malformed {item.origin} diff: {e}")
            continue

        try:
            content = patch.invert().apply(content)
        except PatchApplyError:
            if item.origin == ORIGIN_REMOTE:
                # Content is still on the old side of this diff
                continue
            return None
    return content


class EditHistoryStore:
    """Edit history collection built on the local store and content cache."""

    def __init__(self, store: LocalStore, cache: ContentCache, context_lines: int = 3):
        """Initialize the edit history store.

        Args:
            store: Local store holding the edit_history collection.
            cache: Content cache holding each file's current content.
            context_lines: Unchanged lines kept around each hunk.
        """
        self.store = store
        self.cache = cache
        self.context_lines = context_lines

    # ==================== Entry Access ====================

    def get(self, file_id: str) -> EditHistoryEntry | None:
        data = self.store.get(EDIT_HISTORY, file_id)
        if data is None:
            return None
        try:
            return EditHistoryEntry.from_dict(data)
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring malformed history for {file_id}: {e}")
            return None

    def _put(self, entry: EditHistoryEntry) -> None:
        self.store.put(EDIT_HISTORY, entry.file_id, entry.to_dict())

    def delete(self, file_id: str) -> None:
        """Drop a file's history, e.g. after its changes were pushed."""
        self.store.delete(EDIT_HISTORY, file_id)

    def get_all(self) -> list[EditHistoryEntry]:
        entries = []
        for data in self.store.get_all(EDIT_HISTORY):
            try:
                entries.append(EditHistoryEntry.from_dict(data))
            except (KeyError, TypeError, AttributeError):
                continue
        return entries

    def locally_modified_ids(self) -> set[str]:
        """Ids of files with local edits since their last push."""
        return self.store.keys(EDIT_HISTORY)

    def clear_all(self) -> None:
        self.store.clear(EDIT_HISTORY)

    # ==================== Recording ====================

    def record_edit(
        self, file_id: str, file_path: str, new_content: str
    ) -> EditHistoryEntry | str | None:
        """Record an autosave of ``new_content``.

        Must be called before the content cache is updated.

        Returns:
            The updated entry; REVERTED if the edit undid the whole history
            and the entry was removed; None if nothing was recorded.
        """
        old_content = self.cache.get_content(file_id)
        if old_content == new_content:
            return None

        entry = self.get(file_id) or EditHistoryEntry(file_id=file_id, file_path=file_path)

        open_session = entry.open_session
        if open_session is None:
            base = old_content
        else:
            base = reverse_apply(old_content, open_session.diff)
            if base is None:
                logger.info(
                    f"Cannot reconstruct session base for {file_id}, starting a new session"
                )
                entry.diffs.append(DiffRecord.boundary())
                open_session = None
                base = old_content

        result = compute_diff(base, new_content, self.context_lines)

        if result.is_empty:
            # Back at the session base: the session has been undone
            if entry.open_session is not None:
                entry.diffs.pop()
            if not entry.has_changes:
                self.delete(file_id)
                logger.debug(f"Edit history for {file_id} reverted")
                return REVERTED
            self._put(entry)
            return None

        record = DiffRecord(
            timestamp=datetime.now().isoformat(),
            diff=result.text,
            stats=DiffStats(additions=result.additions, deletions=result.deletions),
        )
        if open_session is None:
            entry.diffs.append(record)
        else:
            entry.diffs[-1] = record

        entry.file_path = file_path
        self._put(entry)
        return entry

    def add_boundary(self, file_id: str) -> None:
        """Close the open session, if any. Repeated calls are no-ops."""
        entry = self.get(file_id)
        if entry is None or entry.open_session is None:
            return
        entry.diffs.append(DiffRecord.boundary())
        self._put(entry)

    # ==================== Reconstruction ====================

    def has_net_change(self, file_id: str) -> bool:
        """Whether the cached content differs from the oldest recorded base.

        Files edited and then reverted by hand report False. When the
        history can no longer be walked back the file counts as changed.
        """
        cached = self.cache.get(file_id)
        if cached is None:
            return False

        entry = self.get(file_id)
        if entry is None or not entry.has_changes:
            return False

        diffs = [
            DiffWithOrigin(diff=d.diff, origin=ORIGIN_LOCAL)
            for d in reversed(entry.diffs)
            if not d.is_boundary
        ]
        original = reconstruct(cached.content, diffs)
        if original is None:
            return True
        return original != cached.content

    def list_local_entries(self, file_id: str) -> list[DiffRecord]:
        """Non-boundary records, newest first."""
        entry = self.get(file_id)
        if entry is None:
            return []
        return [d for d in reversed(entry.diffs) if not d.is_boundary]

    def merge_history(
        self,
        file_id: str,
        remote_entries: list[dict[str, Any]] | None = None,
    ) -> list[HistoryItem]:
        """Local records plus remote history entries, newest first.

        Args:
            file_id: File whose history to list.
            remote_entries: Entries from the remote edit history
                (``{id, timestamp, source, diff, stats}``). Malformed
                entries are skipped.
        """
        items = [
            HistoryItem(
                item_id=f"local-{index}",
                timestamp=record.timestamp,
                diff=record.diff,
                stats=record.stats,
                origin=ORIGIN_LOCAL,
            )
            for index, record in enumerate(self.list_local_entries(file_id))
        ]

        for data in remote_entries or []:
            try:
                record = DiffRecord.from_dict(data)
            except (TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed remote history entry for {file_id}: {e}")
                continue
            if record.is_boundary:
                continue
            items.append(
                HistoryItem(
                    item_id=f"remote-{data.get('id', len(items))}",
                    timestamp=record.timestamp,
                    diff=record.diff,
                    stats=record.stats,
                    origin=ORIGIN_REMOTE,
                    source=data.get("source"),
                )
            )

        # Stable sort keeps local records ahead of remote ones on equal timestamps
        return sorted(items, key=lambda item: item.timestamp, reverse=True)

    # ==================== Restore ====================

    def record_restore(
        self,
        file_id: str,
        current_content: str,
        restored_content: str,
        file_path: str | None = None,
    ) -> EditHistoryEntry | None:
        """Record a restore as a forward diff wrapped in boundaries."""
        entry = self.get(file_id)
        if entry is None:
            entry = EditHistoryEntry(file_id=file_id, file_path=file_path or "")

        changed = False
        if entry.open_session is not None:
            entry.diffs.append(DiffRecord.boundary())
            changed = True

        result = compute_diff(current_content, restored_content, self.context_lines)
        if not result.is_empty:
            now = datetime.now().isoformat()
            entry.diffs.append(
                DiffRecord(
                    timestamp=now,
                    diff=result.text,
                    stats=DiffStats(additions=result.additions, deletions=result.deletions),
                )
            )
            entry.diffs.append(DiffRecord(timestamp=now, diff=""))
            changed = True

        if not changed:
            return entry if entry.diffs else None
        self._put(entry)
        return entry

    def restore_to_entry(
        self,
        file_id: str,
        current_content: str,
        diffs_to_target: list[DiffWithOrigin],
    ) -> str | None:
        """Reconstruct an earlier version and make it the current content.

        Returns:
            The restored content, or None if it could not be reconstructed.
        """
        restored = reconstruct(current_content, diffs_to_target)
        if restored is None:
            logger.warning(f"Cannot restore {file_id}: history does not apply")
            return None

        self.record_restore(file_id, current_content, restored)
        self.cache.save_content(file_id, restored)
        return restored

    def restore_history_item(
        self, file_id: str, items: list[HistoryItem], index: int
    ) -> str | None:
        """Restore the version right after ``items[index]``.

        ``items`` is a newest-first list from merge_history. Remote entries
        whose change never reached this replica are skipped on the way back.
        """
        if not 0 <= index < len(items):
            return None
        diffs = [DiffWithOrigin(diff=item.diff, origin=item.origin) for item in items[:index]]
        return self.restore_to_entry(file_id, self.cache.get_content(file_id), diffs)

    def restore_local_entry(self, file_id: str, index: int) -> str | None:
        """Restore the version right after local record ``index`` (0 = newest)."""
        return self.restore_history_item(file_id, self.merge_history(file_id), index)

    def preview_history_item(
        self, file_id: str, items: list[HistoryItem], index: int
    ) -> tuple[str | None, str | None]:
        """Content just before and just after ``items[index]``.

        Either side is None when the history does not apply to the cached
        content (e.g. a remote change that was never pulled).
        """
        if not 0 <= index < len(items):
            return None, None
        diffs = [DiffWithOrigin(diff=item.diff, origin=item.origin) for item in items[: index + 1]]
        before = reconstruct(self.cache.get_content(file_id), diffs)
        if before is None:
            return None, None
        return before, apply_diff(before, items[index].diff)

    # ==================== Maintenance ====================

    def prune(self, max_entries_per_file: int = 0, max_age_days: int = 0) -> int:
        """Drop the oldest records beyond the retention limits.

        The newest change record of each file and everything after it are
        always kept, so pruning never reopens or loses a pending session.
        A limit of 0 disables that limit.

        Returns:
            Number of change records removed.
        """
        cutoff = datetime.now() - timedelta(days=max_age_days) if max_age_days > 0 else None
        deleted = 0

        for entry in self.get_all():
            changes = [i for i, d in enumerate(entry.diffs) if not d.is_boundary]
            if not changes:
                continue
            protected_from = changes[-1]
            remaining = len(changes)

            drop = 0
            while drop < protected_from:
                record = entry.diffs[drop]
                too_many = max_entries_per_file > 0 and remaining > max_entries_per_file
                if not (record.is_boundary or too_many or _older_than(record, cutoff)):
                    break
                if not record.is_boundary:
                    remaining -= 1
                    deleted += 1
                drop += 1

            if drop:
                entry.diffs = entry.diffs[drop:]
                self._put(entry)

        if deleted:
            logger.info(f"Pruned {deleted} edit history records")
        return deleted

    def get_stats(self) -> dict[str, int]:
        entries = self.get_all()
        return {
            "total_files": len(entries),
            "total_entries": sum(
                1 for e in entries for d in e.diffs if not d.is_boundary
            ),
            "open_sessions": sum(1 for e in entries if e.open_session is not None),
        }


def _older_than(record: DiffRecord, cutoff: datetime | None) -> bool:
    if cutoff is None:
        return False
    try:
        return datetime.fromisoformat(record.timestamp) < cutoff
    except ValueError:
        return False
