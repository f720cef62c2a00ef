"""Tests for the local store, content cache and sync baseline."""

import sqlite3

import pytest

from driftsync.store import (
    BaselineFile,
    CachedFile,
    ContentCache,
    LocalStore,
    SyncBaseline,
    SyncBaselineStore,
    compute_checksum,
)
from driftsync.store.local_store import COLLECTIONS, EDIT_HISTORY, FILES, SYNC_META


@pytest.fixture
def store():
    """Create an in-memory LocalStore for testing."""
    store = LocalStore(":memory:")
    store.connect()
    yield store
    store.close()


class TestLocalStoreSchema:
    """Tests for database schema initialization."""

    def test_connect_creates_tables(self, store):
        tables = store._conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()
        table_names = {t[0] for t in tables}

        assert set(COLLECTIONS) <= table_names

    def test_lazy_connect(self):
        store = LocalStore(":memory:")

        assert store.put(FILES, "a", {"x": 1})
        assert store.get(FILES, "a") == {"x": 1}
        store.close()

    def test_unknown_collection(self, store):
        with pytest.raises(ValueError):
            store.get("nope", "a")


class TestLocalStoreRecords:
    """Tests for get/put/delete semantics."""

    def test_put_replaces_whole_record(self, store):
        store.put(FILES, "a", {"x": 1, "y": 2})
        store.put(FILES, "a", {"x": 3})

        assert store.get(FILES, "a") == {"x": 3}

    def test_missing_record(self, store):
        assert store.get(FILES, "missing") is None

    def test_delete(self, store):
        store.put(FILES, "a", {})

        assert store.delete(FILES, "a") is True
        assert store.delete(FILES, "a") is False
        assert store.get(FILES, "a") is None

    def test_keys_and_get_all(self, store):
        store.put(EDIT_HISTORY, "b", {"n": 2})
        store.put(EDIT_HISTORY, "a", {"n": 1})

        assert store.keys(EDIT_HISTORY) == {"a", "b"}
        assert store.get_all(EDIT_HISTORY) == [{"n": 1}, {"n": 2}]

    def test_collections_are_independent(self, store):
        store.put(FILES, "a", {"n": 1})

        assert store.get(EDIT_HISTORY, "a") is None

    def test_clear(self, store):
        store.put(FILES, "a", {})
        store.put(EDIT_HISTORY, "a", {})

        store.clear(EDIT_HISTORY)

        assert store.keys(EDIT_HISTORY) == set()
        assert store.keys(FILES) == {"a"}

    def test_corrupted_record_reads_as_missing(self, store):
        store._conn.execute(
            "INSERT INTO files (key, value, updated_at) VALUES ('bad', '{not json', '')"
        )
        store._conn.commit()
        store.put(FILES, "good", {"ok": True})

        assert store.get(FILES, "bad") is None
        assert store.get_all(FILES) == [{"ok": True}]

    def test_get_stats(self, store):
        store.put(FILES, "a", {})

        stats = store.get_stats()

        assert stats[FILES] == 1
        assert stats[EDIT_HISTORY] == 0


class TestStorageUnavailable:
    """Every operation degrades to a benign result."""

    @pytest.fixture
    def broken_store(self, store):
        store._conn.close()  # Operations on a closed connection raise
        return store

    def test_reads_degrade(self, broken_store):
        assert broken_store.get(FILES, "a") is None
        assert broken_store.get_all(FILES) == []
        assert broken_store.keys(FILES) == set()
        assert broken_store.get_stats() == {}

    def test_writes_degrade(self, broken_store):
        assert broken_store.put(FILES, "a", {}) is False
        assert broken_store.delete(FILES, "a") is False
        broken_store.clear()

    def test_unopenable_path(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = LocalStore(blocker / "db.sqlite")

        assert store.get(FILES, "a") is None
        assert store.put(FILES, "a", {}) is False

    def test_sqlite_error_is_caught(self, store, monkeypatch):
        def fail(*args, **kwargs):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(store, "_ensure_connected", fail)

        assert store.get(FILES, "a") is None


class TestContentCache:
    """Tests for the content cache."""

    @pytest.fixture
    def cache(self, store):
        return ContentCache(store)

    def test_put_get(self, cache):
        cache.put(CachedFile(file_id="f1", content="hello", checksum="abc", name="a.txt"))

        cached = cache.get("f1")

        assert cached.content == "hello"
        assert cached.checksum == "abc"
        assert cached.name == "a.txt"

    def test_get_content_unknown_file(self, cache):
        assert cache.get_content("nope") == ""

    def test_save_content_keeps_remote_metadata(self, cache):
        cache.put(
            CachedFile(
                file_id="f1",
                content="old",
                checksum="abc",
                modified_time="2026-01-01T00:00:00Z",
                name="a.txt",
            )
        )

        cache.save_content("f1", "new")
        cached = cache.get("f1")

        assert cached.content == "new"
        assert cached.checksum == "abc"
        assert cached.modified_time == "2026-01-01T00:00:00Z"
        assert cached.name == "a.txt"

    def test_all_ids_and_delete(self, cache):
        cache.save_content("f1", "a")
        cache.save_content("f2", "b")
        cache.delete("f1")

        assert cache.all_ids() == {"f2"}
        assert [f.file_id for f in cache.get_all()] == ["f2"]

    def test_checksum(self):
        assert compute_checksum("") == "d41d8cd98f00b204e9800998ecf8427e"
        assert compute_checksum("a") != compute_checksum("b")


class TestSyncBaselineStore:
    """Tests for the sync baseline."""

    @pytest.fixture
    def baseline(self, store):
        return SyncBaselineStore(store)

    def test_empty(self, baseline):
        assert baseline.get() is None

    def test_put_get_roundtrip(self, baseline):
        baseline.put(
            SyncBaseline(
                last_updated_at="2026-01-01T00:00:00",
                files={"f1": BaselineFile("x", "t1", "a.txt")},
            )
        )

        loaded = baseline.get()

        assert loaded.files["f1"].checksum == "x"
        assert loaded.files["f1"].name == "a.txt"

    def test_update_and_remove_files(self, baseline):
        baseline.update_files({"f1": BaselineFile("x", "t1"), "f2": BaselineFile("y", "t2")})
        baseline.update_files({"f1": BaselineFile("z", "t3")})
        baseline.remove_files(["f2"])

        loaded = baseline.get()

        assert set(loaded.files) == {"f1"}
        assert loaded.files["f1"].checksum == "z"

    def test_remote_snapshot_cache(self, baseline):
        assert baseline.get_remote() is None

        baseline.put_remote({"lastUpdatedAt": "t", "files": {}})

        assert baseline.get_remote() == {"lastUpdatedAt": "t", "files": {}}

    def test_malformed_baseline_reads_as_missing(self, store, baseline):
        store.put(SYNC_META, "current", {"files": {"a": "oops"}})

        assert baseline.get() is None

        baseline.update_files({"f1": BaselineFile("x", "t1")})
        assert set(baseline.get().files) == {"f1"}
