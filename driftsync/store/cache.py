"""Content cache: the latest known content of every file."""

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from .local_store import FILES, LocalStore

logger = logging.getLogger(__name__)


def compute_checksum(content: str) -> str:
    """MD5 hex digest of the content, as reported by the remote store."""
    return hashlib.md5(content.encode("utf-8")).hexdigest()


@dataclass
class CachedFile:
    """Latest content of a file as the editor sees it."""

    file_id: str
    content: str
    checksum: str = ""
    modified_time: str = ""
    cached_at: float = field(default_factory=time.time)
    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "file_id": self.file_id,
            "content": self.content,
            "checksum": self.checksum,
            "modified_time": self.modified_time,
            "cached_at": self.cached_at,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CachedFile":
        """Create from dictionary."""
        return cls(
            file_id=data["file_id"],
            content=data.get("content", ""),
            checksum=data.get("checksum", ""),
            modified_time=data.get("modified_time", ""),
            cached_at=data.get("cached_at", 0.0),
            name=data.get("name"),
        )


class ContentCache:
    """Keyed store of :class:`CachedFile` records, whole-record replace."""

    def __init__(self, store: LocalStore):
        self.store = store

    def get(self, file_id: str) -> CachedFile | None:
        data = self.store.get(FILES, file_id)
        if data is None:
            return None
        try:
            return CachedFile.from_dict(data)
        except (KeyError, TypeError) as e:
            logger.warning(f"Ignoring malformed cache record {file_id}: {e}")
            return None

    def get_content(self, file_id: str) -> str:
        """Current content, or an empty string for unknown files."""
        cached = self.get(file_id)
        return cached.content if cached else ""

    def put(self, cached: CachedFile) -> bool:
        return self.store.put(FILES, cached.file_id, cached.to_dict())

    def save_content(self, file_id: str, content: str, name: str | None = None) -> CachedFile:
        """Store new local content, keeping the last known remote metadata."""
        existing = self.get(file_id)
        cached = CachedFile(
            file_id=file_id,
            content=content,
            checksum=existing.checksum if existing else "",
            modified_time=existing.modified_time if existing else "",
            name=name if name is not None else (existing.name if existing else None),
        )
        self.put(cached)
        return cached

    def delete(self, file_id: str) -> bool:
        return self.store.delete(FILES, file_id)

    def all_ids(self) -> set[str]:
        return self.store.keys(FILES)

    def get_all(self) -> list[CachedFile]:
        files = []
        for data in self.store.get_all(FILES):
            try:
                files.append(CachedFile.from_dict(data))
            except (KeyError, TypeError):
                continue
        return files
