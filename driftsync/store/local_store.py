"""Local SQLite key/value storage for cached files, sync metadata and history."""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

FILES = "files"
SYNC_META = "sync_meta"
EDIT_HISTORY = "edit_history"
FILE_TREE = "file_tree"
REMOTE_META = "remote_meta"

COLLECTIONS = (FILES, SYNC_META, EDIT_HISTORY, FILE_TREE, REMOTE_META)

# One table per collection; records are whole JSON documents keyed by id
SCHEMA = "\n".join(
    f"""
CREATE TABLE IF NOT EXISTS {name} (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""
    for name in COLLECTIONS
)

StoreErrors = (sqlite3.Error, OSError)


class LocalStore:
    """SQLite-backed record store with last-writer-wins semantics.

    Every public method degrades to a benign result when the database
    cannot be opened or written, so callers keep working without
    persistence.
    """

    def __init__(self, db_path: str | Path):
        """Initialize the local store.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Initialize database connection and schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA)
        self._conn.commit()

        logger.info(f"LocalStore connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.info("LocalStore connection closed")

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure we have a database connection."""
        if self._conn is None:
            self.connect()
        return self._conn

    @staticmethod
    def _check_collection(collection: str) -> None:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")

    # ==================== Record Operations ====================

    def get(self, collection: str, key: str) -> dict[str, Any] | None:
        """Get a single record, or None if missing or unreadable."""
        self._check_collection(collection)
        try:
            conn = self._ensure_connected()
            row = conn.execute(
                f"SELECT value FROM {collection} WHERE key = ?", (key,)
            ).fetchone()
        except StoreErrors as e:
            logger.warning(f"Failed to read {collection}/{key}: {e}")
            return None

        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except ValueError as e:
            logger.warning(f"Corrupted record {collection}/{key}: {e}")
            return None

    def put(self, collection: str, key: str, value: dict[str, Any]) -> bool:
        """Replace a single record atomically.

        Returns:
            True if the record was written.
        """
        self._check_collection(collection)
        try:
            conn = self._ensure_connected()
            conn.execute(
                f"""
                INSERT OR REPLACE INTO {collection} (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                (key, json.dumps(value), datetime.now().isoformat()),
            )
            conn.commit()
        except StoreErrors as e:
            logger.warning(f"Failed to write {collection}/{key}: {e}")
            return False
        return True

    def delete(self, collection: str, key: str) -> bool:
        """Delete a single record. Returns True if a record was removed."""
        self._check_collection(collection)
        try:
            conn = self._ensure_connected()
            cursor = conn.execute(f"DELETE FROM {collection} WHERE key = ?", (key,))
            conn.commit()
        except StoreErrors as e:
            logger.warning(f"Failed to delete {collection}/{key}: {e}")
            return False
        return cursor.rowcount > 0

    def get_all(self, collection: str) -> list[dict[str, Any]]:
        """Get every readable record in a collection, ordered by key."""
        self._check_collection(collection)
        try:
            conn = self._ensure_connected()
            rows = conn.execute(
                f"SELECT key, value FROM {collection} ORDER BY key"
            ).fetchall()
        except StoreErrors as e:
            logger.warning(f"Failed to list {collection}: {e}")
            return []

        records = []
        for row in rows:
            try:
                records.append(json.loads(row["value"]))
            except ValueError:
                logger.warning(f"Skipping corrupted record {collection}/{row['key']}")
        return records

    def keys(self, collection: str) -> set[str]:
        """Get all keys in a collection."""
        self._check_collection(collection)
        try:
            conn = self._ensure_connected()
            rows = conn.execute(f"SELECT key FROM {collection}").fetchall()
        except StoreErrors as e:
            logger.warning(f"Failed to list keys of {collection}: {e}")
            return set()
        return {row["key"] for row in rows}

    def clear(self, *collections: str) -> None:
        """Delete every record in the given collections (all if none given)."""
        names = collections or COLLECTIONS
        for name in names:
            self._check_collection(name)
        try:
            conn = self._ensure_connected()
            for name in names:
                conn.execute(f"DELETE FROM {name}")
            conn.commit()
        except StoreErrors as e:
            logger.warning(f"Failed to clear {', '.join(names)}: {e}")

    def get_stats(self) -> dict[str, Any]:
        """Get record counts per collection."""
        stats: dict[str, Any] = {}
        try:
            conn = self._ensure_connected()
            for name in COLLECTIONS:
                stats[name] = conn.execute(f"SELECT COUNT(*) FROM {name}").fetchone()[0]
        except StoreErrors as e:
            logger.warning(f"Failed to read store stats: {e}")
            return {}

        if self.db_path.exists():
            stats["db_size_mb"] = round(self.db_path.stat().st_size / (1024 * 1024), 2)
        return stats
