"""Wires the local store, cache, baseline and edit history together."""

import logging

from .config import Config
from .history import REVERTED, EditHistoryEntry, EditHistoryStore
from .store import ContentCache, LocalStore, SyncBaselineStore
from .sync import RemoteClient, SyncOrchestrator

logger = logging.getLogger(__name__)


class Workspace:
    """The local replica: one store and the components built on it.

    The caller owns the lifecycle; call close() when done.
    """

    def __init__(self, store: LocalStore, context_lines: int = 3):
        self.store = store
        self.cache = ContentCache(store)
        self.baseline = SyncBaselineStore(store)
        self.history = EditHistoryStore(store, self.cache, context_lines=context_lines)

    @classmethod
    def from_config(cls, config: Config) -> "Workspace":
        store = LocalStore(config.store.db_path)
        store.connect()
        return cls(store, context_lines=config.history.context_lines)

    def close(self) -> None:
        self.store.close()

    def save(
        self, file_id: str, content: str, file_path: str | None = None
    ) -> EditHistoryEntry | str | None:
        """Autosave: record the edit, then update the cache.

        Returns:
            The record_edit result.
        """
        cached = self.cache.get(file_id)
        path = file_path or (cached.name if cached and cached.name else file_id)
        result = self.history.record_edit(file_id, path, content)
        self.cache.save_content(file_id, content, name=file_path)
        if result == REVERTED:
            logger.info(f"{file_id} is back to its last synced content")
        return result

    def open_file(self, file_id: str) -> str | None:
        """Content to show when a file is opened; starts a new edit session."""
        cached = self.cache.get(file_id)
        self.history.add_boundary(file_id)
        return cached.content if cached else None

    def orchestrator(self, config: Config) -> SyncOrchestrator:
        headers = {}
        if config.sync.auth_token:
            headers["Authorization"] = f"Bearer {config.sync.auth_token}"
        client = RemoteClient(
            remote_url=config.sync.remote_url or None,
            max_retries=config.sync.retry_max_attempts,
            timeout=config.sync.timeout_seconds,
            headers=headers,
        )
        return SyncOrchestrator(self.history, self.cache, self.baseline, client)
