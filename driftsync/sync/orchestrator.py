"""Push, pull and conflict resolution on top of the edit history engine.

The orchestrator is the only writer of the sync baseline. It classifies
files with classify(), moves content through the RemoteClient and, once the
remote confirms, updates the baseline, the content cache and the edit
history (boundary on pull, history dropped after push).
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..history import EditHistoryStore, HistoryItem
from ..store.baseline import BaselineFile, SyncBaseline, SyncBaselineStore
from ..store.cache import CachedFile, ContentCache
from .client import RemoteClient
from .meta import ConflictInfo, RemoteSnapshot, SyncDiff, classify, is_sync_excluded_path

logger = logging.getLogger(__name__)


class SyncStatus(Enum):
    """Status of a sync operation."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Some files skipped by the remote
    FAILED = "failed"
    OFFLINE = "offline"  # Remote unavailable
    REJECTED = "rejected"  # Push refused, remote has changes to pull first
    CONFLICT = "conflict"
    BUSY = "busy"  # Another sync operation is running


@dataclass
class SyncResult:
    """Result of a sync operation."""

    status: SyncStatus
    pushed: list[str] = field(default_factory=list)
    pulled: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    conflicts: list[ConflictInfo] = field(default_factory=list)
    edit_delete_conflicts: list[str] = field(default_factory=list)
    error: str | None = None
    timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "pushed": self.pushed,
            "pulled": self.pulled,
            "deleted": self.deleted,
            "conflicts": [c.to_dict() for c in self.conflicts],
            "edit_delete_conflicts": self.edit_delete_conflicts,
            "error": self.error,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


def _error_result(error: str) -> SyncResult:
    return SyncResult(
        status=SyncStatus.OFFLINE if "Connection" in error else SyncStatus.FAILED,
        error=error,
    )


class SyncOrchestrator:
    """Runs one sync operation at a time against a single remote."""

    def __init__(
        self,
        history: EditHistoryStore,
        cache: ContentCache,
        baseline: SyncBaselineStore,
        client: RemoteClient,
    ):
        self.history = history
        self.cache = cache
        self.baseline = baseline
        self.client = client
        self._lock = asyncio.Lock()
        self._last_sync: datetime | None = None

    @property
    def last_sync(self) -> datetime | None:
        """Get timestamp of last successful sync."""
        return self._last_sync

    def cached_snapshot(self) -> RemoteSnapshot | None:
        data = self.baseline.get_remote()
        if not data:
            return None
        try:
            return RemoteSnapshot.from_dict(data)
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring malformed cached remote snapshot: {e}")
            return None

    def compute_diff(self, snapshot: RemoteSnapshot | None) -> SyncDiff:
        return classify(
            self.baseline.get(),
            snapshot,
            self.history.locally_modified_ids(),
        )

    async def _fetch_snapshot(self) -> tuple[RemoteSnapshot | None, str | None]:
        snapshot, error = await self.client.fetch_snapshot()
        if error is None and snapshot is not None:
            self.baseline.put_remote(snapshot.to_dict())
        return snapshot, error

    # ==================== Status ====================

    def _push_candidates(self, diff: SyncDiff, snapshot: RemoteSnapshot | None) -> list[str]:
        modified = self.history.locally_modified_ids()
        new_files = [fid for fid in diff.local_only if fid in modified]
        remote_files = snapshot.files if snapshot else {}

        candidates = []
        for fid in diff.to_push + new_files:
            cached = self.cache.get(fid)
            name = (cached.name if cached else None) or (
                remote_files[fid].name if fid in remote_files else None
            )
            if name and is_sync_excluded_path(name):
                continue
            candidates.append(fid)
        return candidates

    def pending_counts(self, snapshot: RemoteSnapshot | None = None) -> dict[str, int]:
        """Badge counts of files waiting to be pushed or pulled.

        Args:
            snapshot: Fresh remote snapshot; defaults to the cached one.
        """
        if snapshot is None:
            snapshot = self.cached_snapshot()
        if snapshot is None:
            # Remote never seen: only net local changes are known to be pending
            push = sum(
                1
                for fid in self.history.locally_modified_ids()
                if self.history.has_net_change(fid)
            )
            return {"push": push, "pull": 0, "conflicts": 0}

        diff = self.compute_diff(snapshot)
        baseline = self.baseline.get()
        baseline_files = baseline.files if baseline else {}

        push = sum(
            1
            for fid in self._push_candidates(diff, snapshot)
            if fid in diff.local_only or self.history.has_net_change(fid)
        )

        # Files dropped remotely still need a pull to be removed here
        removed = [fid for fid in diff.local_only if fid in baseline_files]
        pull = len(diff.to_pull) + len(diff.remote_only) + len(removed)

        return {
            "push": push,
            "pull": pull,
            "conflicts": len(diff.conflicts) + len(diff.edit_delete_conflicts),
        }

    async def check_remote(self) -> dict[str, int] | None:
        """Refresh the cached remote snapshot and recompute pending counts."""
        if self._lock.locked():
            return None
        snapshot, error = await self._fetch_snapshot()
        if error:
            logger.debug(f"Remote check failed: {error}")
            return None
        return self.pending_counts(snapshot)

    # ==================== Push ====================

    async def push(self) -> SyncResult:
        """Upload locally modified files.

        Refused while the remote has changes this replica has not pulled.
        """
        if self._lock.locked():
            logger.warning("Push skipped: sync already in progress")
            return SyncResult(status=SyncStatus.BUSY)

        async with self._lock:
            snapshot, error = await self._fetch_snapshot()
            if error:
                return _error_result(error)

            diff = self.compute_diff(snapshot)
            if diff.conflicts or diff.to_pull or diff.remote_only:
                logger.info(
                    f"Push rejected: {len(diff.conflicts)} conflicts, "
                    f"{len(diff.to_pull) + len(diff.remote_only)} files to pull"
                )
                return SyncResult(
                    status=SyncStatus.REJECTED,
                    conflicts=diff.conflicts,
                    edit_delete_conflicts=diff.edit_delete_conflicts,
                    error="Remote has changes, pull first",
                )

            files_to_push = []
            reverted = []
            for fid in self._push_candidates(diff, snapshot):
                cached = self.cache.get(fid)
                if cached is None:
                    continue
                if not self.history.has_net_change(fid):
                    reverted.append(fid)
                    continue
                files_to_push.append({"fileId": fid, "content": cached.content})

            pushed: list[str] = []
            skipped: list[str] = []
            if files_to_push:
                data, error = await self.client.push_files(files_to_push, snapshot)
                if error:
                    return _error_result(error)
                data = data or {}

                for result in data.get("results", []):
                    fid = result["fileId"]
                    pushed.append(fid)
                    cached = self.cache.get(fid)
                    if cached:
                        cached.checksum = result.get("md5Checksum", "")
                        cached.modified_time = result.get("modifiedTime", "")
                        cached.cached_at = datetime.now().timestamp()
                        self.cache.put(cached)
                skipped = data.get("skippedFileIds", [])

                if data.get("remoteMeta"):
                    remote = RemoteSnapshot.from_dict(data["remoteMeta"])
                    self.baseline.put(SyncBaseline.from_snapshot(remote))
                    self.baseline.put_remote(remote.to_dict())

            for fid in pushed + reverted:
                self.history.delete(fid)

            self._last_sync = datetime.now()
            logger.info(
                f"Pushed {len(pushed)} files, {len(reverted)} reverted, {len(skipped)} skipped"
            )
            return SyncResult(
                status=SyncStatus.PARTIAL if skipped else SyncStatus.SUCCESS,
                pushed=pushed,
                edit_delete_conflicts=diff.edit_delete_conflicts,
                error=f"Push completed with warning: skipped {len(skipped)} file(s)."
                if skipped
                else None,
                timestamp=self._last_sync,
            )

    # ==================== Pull ====================

    async def pull(self) -> SyncResult:
        """Download remote changes and drop files deleted remotely."""
        if self._lock.locked():
            logger.warning("Pull skipped: sync already in progress")
            return SyncResult(status=SyncStatus.BUSY)

        async with self._lock:
            snapshot, error = await self._fetch_snapshot()
            if error:
                return _error_result(error)

            diff = self.compute_diff(snapshot)
            if diff.conflicts:
                return SyncResult(
                    status=SyncStatus.CONFLICT,
                    conflicts=diff.conflicts,
                    edit_delete_conflicts=diff.edit_delete_conflicts,
                )

            baseline = self.baseline.get() or SyncBaseline()
            deleted = [fid for fid in diff.local_only if fid in baseline.files]

            to_download = diff.to_pull + diff.remote_only
            pulled: list[str] = []
            if to_download:
                files, error = await self.client.pull_files(to_download)
                if error:
                    return _error_result(error)

                remote_files = snapshot.files if snapshot else {}
                updates = {}
                for item in files:
                    fid = item["fileId"]
                    meta = remote_files.get(fid)
                    self.history.add_boundary(fid)
                    self.cache.put(
                        CachedFile(
                            file_id=fid,
                            content=item.get("content", ""),
                            checksum=meta.checksum if meta else "",
                            modified_time=meta.modified_time if meta else "",
                            name=meta.name if meta else None,
                        )
                    )
                    updates[fid] = BaselineFile(
                        checksum=meta.checksum if meta else "",
                        modified_time=meta.modified_time if meta else "",
                        name=meta.name if meta else None,
                    )
                    pulled.append(fid)
                if updates:
                    self.baseline.update_files(updates)

            # Deletions commit only once the download has succeeded
            for fid in deleted:
                self.cache.delete(fid)
                self.history.delete(fid)
            if deleted:
                self.baseline.remove_files(deleted)

            self._last_sync = datetime.now()
            logger.info(f"Pulled {len(pulled)} files, removed {len(deleted)}")
            return SyncResult(
                status=SyncStatus.SUCCESS,
                pulled=pulled,
                deleted=deleted,
                edit_delete_conflicts=diff.edit_delete_conflicts,
                timestamp=self._last_sync,
            )

    # ==================== Conflicts ====================

    async def resolve_conflict(self, file_id: str, choice: str) -> SyncResult:
        """Settle a conflict by keeping the local or the remote copy.

        Args:
            file_id: Conflicting file.
            choice: "local" or "remote".
        """
        if choice not in ("local", "remote"):
            raise ValueError(f"Invalid conflict choice: {choice}")
        if self._lock.locked():
            logger.warning("Resolve skipped: sync already in progress")
            return SyncResult(status=SyncStatus.BUSY)

        async with self._lock:
            cached = self.cache.get(file_id)
            data, error = await self.client.resolve_conflict(
                file_id, choice, cached.content if cached else None
            )
            if error:
                return _error_result(error)

            remote_file = (data or {}).get("file")
            if choice == "remote" and remote_file:
                self.history.add_boundary(file_id)
                self.cache.put(
                    CachedFile(
                        file_id=file_id,
                        content=remote_file.get("content", ""),
                        checksum=remote_file.get("md5Checksum", ""),
                        modified_time=remote_file.get("modifiedTime", ""),
                        name=remote_file.get("fileName"),
                    )
                )
            elif choice == "local" and remote_file and cached:
                cached.checksum = remote_file.get("md5Checksum", "")
                cached.modified_time = remote_file.get("modifiedTime", "")
                cached.cached_at = datetime.now().timestamp()
                self.cache.put(cached)

            self.history.delete(file_id)

            if data and data.get("remoteMeta"):
                remote = RemoteSnapshot.from_dict(data["remoteMeta"])
                meta = remote.files.get(file_id)
                if meta is not None:
                    # Only the resolved file moves; other files keep their baseline
                    self.baseline.update_files(
                        {
                            file_id: BaselineFile(
                                checksum=meta.checksum,
                                modified_time=meta.modified_time,
                                name=meta.name,
                            )
                        }
                    )
                self.baseline.put_remote(remote.to_dict())

            self._last_sync = datetime.now()
            logger.info(f"Resolved conflict on {file_id} keeping {choice} copy")
            return SyncResult(
                status=SyncStatus.SUCCESS,
                pushed=[file_id] if choice == "local" else [],
                pulled=[file_id] if choice == "remote" else [],
                timestamp=self._last_sync,
            )

    # ==================== Remote History ====================

    def _file_path(self, file_id: str) -> str:
        entry = self.history.get(file_id)
        if entry is not None and entry.file_path:
            return entry.file_path
        cached = self.cache.get(file_id)
        if cached is not None and cached.name:
            return cached.name
        return file_id

    async def remote_history(self, file_id: str) -> tuple[list[HistoryItem], str | None]:
        """Local and remote history of a file merged newest first.

        When the remote history cannot be fetched the local records are
        still returned, along with the error.
        """
        entries, error = await self.client.fetch_history(self._file_path(file_id))
        if error:
            logger.warning(f"Remote history for {file_id} unavailable: {error}")
            return self.history.merge_history(file_id), error
        return self.history.merge_history(file_id, entries), None

    async def clear_remote_history(self, file_id: str) -> tuple[bool, str | None]:
        cleared, error = await self.client.clear_history(self._file_path(file_id))
        if cleared:
            logger.info(f"Cleared remote history for {file_id}")
        return cleared, error

    # ==================== Polling ====================

    async def poll_loop(
        self,
        interval_seconds: int = 300,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        """Periodically refresh the remote snapshot and log pending counts.

        Args:
            interval_seconds: Seconds between checks.
            stop_event: Event to signal loop should stop.
        """
        logger.info(f"Starting remote poll loop with {interval_seconds}s interval")

        while True:
            if stop_event and stop_event.is_set():
                break

            counts = await self.check_remote()
            if counts is not None:
                logger.info(
                    f"Pending: push={counts['push']}, pull={counts['pull']}, "
                    f"conflicts={counts['conflicts']}"
                )

            wait_time = interval_seconds
            if self.client.consecutive_failures > 0:
                wait_time = min(
                    interval_seconds * (2 ** self.client.consecutive_failures),
                    3600,  # Max 1 hour
                )
                logger.debug(f"Backing off remote checks for {wait_time}s")

            if stop_event:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=wait_time)
                    break
                except asyncio.TimeoutError:
                    pass
            else:
                await asyncio.sleep(wait_time)

        logger.info("Remote poll loop stopped")
