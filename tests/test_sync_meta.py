"""Tests for the three-way sync classification."""

import pytest

from driftsync.store import BaselineFile, SyncBaseline
from driftsync.sync import RemoteFileMeta, RemoteSnapshot, classify, is_sync_excluded_path


def baseline(**files):
    return SyncBaseline(
        last_updated_at="2026-01-01T00:00:00",
        files={
            fid: BaselineFile(checksum=checksum, modified_time="t0", name=fid)
            for fid, checksum in files.items()
        },
    )


def remote(**files):
    return RemoteSnapshot(
        last_updated_at="2026-01-02T00:00:00",
        files={
            fid: RemoteFileMeta(
                name=fid, mime_type="text/plain", checksum=checksum, modified_time="t1"
            )
            for fid, checksum in files.items()
        },
    )


class TestClassify:
    """Tests for classify."""

    def test_local_edit_is_pushed(self):
        diff = classify(baseline(**{"a.txt": "X"}), remote(**{"a.txt": "X"}), {"a.txt"})

        assert diff.to_push == ["a.txt"]
        assert diff.conflicts == []

    def test_edit_on_both_sides_conflicts(self):
        diff = classify(baseline(**{"a.txt": "X"}), remote(**{"a.txt": "Y"}), {"a.txt"})

        assert diff.conflict_ids == ["a.txt"]
        conflict = diff.conflicts[0]
        assert conflict.local_checksum == "X"
        assert conflict.remote_checksum == "Y"
        assert conflict.remote_modified_time == "t1"
        assert diff.to_push == []

    def test_edit_delete_conflict(self):
        diff = classify(baseline(**{"b.txt": "X"}), remote(), {"b.txt"})

        assert diff.edit_delete_conflicts == ["b.txt"]
        assert diff.local_only == []

    def test_remote_change_is_pulled(self):
        diff = classify(baseline(**{"a.txt": "X"}), remote(**{"a.txt": "Y"}), set())

        assert diff.to_pull == ["a.txt"]

    def test_remote_rename_is_pulled(self):
        local = baseline(**{"a.txt": "X"})
        snapshot = remote(**{"a.txt": "X"})
        snapshot.files["a.txt"].name = "renamed.txt"

        diff = classify(local, snapshot, set())

        assert diff.to_pull == ["a.txt"]

    def test_unnamed_baseline_ignores_name(self):
        local = SyncBaseline(last_updated_at="", files={"a": BaselineFile("X", "t0")})

        diff = classify(local, remote(a="X"), set())

        assert diff.is_settled

    def test_new_local_file_is_local_only(self):
        diff = classify(baseline(), remote(), {"new.txt"})

        assert diff.local_only == ["new.txt"]

    def test_remote_deletion_without_edit_is_local_only(self):
        diff = classify(baseline(**{"gone.txt": "X"}), remote(), set())

        assert diff.local_only == ["gone.txt"]

    def test_new_remote_file_is_remote_only(self):
        diff = classify(baseline(), remote(**{"c.txt": "Z"}), set())

        assert diff.remote_only == ["c.txt"]

    def test_unchanged_file_is_settled(self):
        diff = classify(baseline(**{"a.txt": "X"}), remote(**{"a.txt": "X"}), set())

        assert diff.is_settled

    def test_system_files_excluded_from_remote_side(self):
        snapshot = remote(**{"_sync-meta.json": "M", "settings.json": "S", "a.txt": "X"})

        diff = classify(baseline(), snapshot, set())

        assert diff.remote_only == ["a.txt"]

    def test_missing_inputs(self):
        assert classify(None, None, None).is_settled
        assert classify(None, remote(a="X")).remote_only == ["a"]
        assert classify(baseline(a="X"), None).local_only == ["a"]

    def test_every_file_in_at_most_one_list(self):
        local = baseline(a="1", b="1", c="1", d="1", e="1")
        snapshot = remote(a="1", b="2", c="2", e="1", f="1")

        diff = classify(local, snapshot, {"a", "c", "d", "g"})

        assert diff.to_push == ["a"]
        assert diff.to_pull == ["b"]
        assert diff.conflict_ids == ["c"]
        assert diff.edit_delete_conflicts == ["d"]
        assert diff.local_only == ["g"]
        assert diff.remote_only == ["f"]

        ids = (
            diff.to_push
            + diff.to_pull
            + diff.conflict_ids
            + diff.edit_delete_conflicts
            + diff.local_only
            + diff.remote_only
        )
        assert len(ids) == len(set(ids))

    def test_to_dict(self):
        diff = classify(baseline(a="X"), remote(a="Y"), {"a"})

        data = diff.to_dict()

        assert data["conflicts"][0]["file_id"] == "a"
        assert data["to_push"] == []


class TestRemoteSnapshot:
    """Tests for the wire format."""

    def test_from_dict(self):
        snapshot = RemoteSnapshot.from_dict(
            {
                "lastUpdatedAt": "2026-01-01T00:00:00Z",
                "files": {
                    "id1": {
                        "name": "notes.md",
                        "mimeType": "text/markdown",
                        "md5Checksum": "abc",
                        "modifiedTime": "2026-01-01T00:00:00Z",
                    }
                },
            }
        )

        assert snapshot.files["id1"].checksum == "abc"
        assert snapshot.files["id1"].created_time is None
        assert snapshot.to_dict()["files"]["id1"]["md5Checksum"] == "abc"

    def test_baseline_from_snapshot(self):
        snapshot = remote(a="X")

        local = SyncBaseline.from_snapshot(snapshot)

        assert local.files["a"].checksum == "X"
        assert local.files["a"].name == "a"
        assert local.last_updated_at == snapshot.last_updated_at


class TestExcludedPaths:
    """Tests for is_sync_excluded_path."""

    @pytest.mark.parametrize(
        "path",
        ["_sync-meta.json", "settings.json", "/settings.json", "history/a.md", "trash/x", "plugins/p/main.js"],
    )
    def test_excluded(self, path):
        assert is_sync_excluded_path(path)

    @pytest.mark.parametrize("path", ["notes/a.md", "my-history/a.md", "settings.json.bak"])
    def test_included(self, path):
        assert not is_sync_excluded_path(path)
