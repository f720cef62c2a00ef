"""Tests for the command line interface."""

import json
import logging
import sys

import pytest

from driftsync.__main__ import JSONFormatter, main


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(f"store:\n  db_path: {tmp_path / 'cache.db'}\n")
    return path


@pytest.fixture
def run(config_path, monkeypatch):
    """Run the CLI with the test config."""

    def _run(*args):
        monkeypatch.setattr(sys, "argv", ["driftsync", "-c", str(config_path), *args])
        return main()

    return _run


class TestHistoryCommands:
    """Tests for record/commit/history/restore."""

    def test_record_and_history(self, run, tmp_path, capsys):
        source = tmp_path / "draft.md"
        source.write_text("hello\n")

        assert run("record", "f1", str(source)) == 0
        assert "f1: +1 -0" in capsys.readouterr().out

        assert run("history", "f1", "--json") == 0
        records = json.loads(capsys.readouterr().out)
        assert len(records) == 1
        assert records[0]["diff"] == "@@ -0,0 +1,1 @@\n+hello"

    def test_record_unchanged(self, run, tmp_path, capsys):
        source = tmp_path / "draft.md"
        source.write_text("hello\n")
        run("record", "f1", str(source))
        capsys.readouterr()

        run("record", "f1", str(source))

        assert "No change recorded" in capsys.readouterr().out

    def test_restore(self, run, tmp_path):
        source = tmp_path / "draft.md"
        source.write_text("v1\n")
        run("record", "f1", str(source))
        run("commit", "f1")
        source.write_text("v2\n")
        run("record", "f1", str(source))

        output = tmp_path / "restored.md"
        assert run("restore", "f1", "1", "-o", str(output)) == 0

        assert output.read_text() == "v1\n"

    def test_history_remote_unavailable(self, run, tmp_path, capsys):
        source = tmp_path / "draft.md"
        source.write_text("hello\n")
        run("record", "f1", str(source))
        capsys.readouterr()

        assert run("history", "f1", "--remote") == 0

        captured = capsys.readouterr()
        assert "Remote history unavailable" in captured.err
        assert "[0]" in captured.out
        assert "local" in captured.out

    def test_restore_remote_falls_back_to_local(self, run, tmp_path):
        source = tmp_path / "draft.md"
        source.write_text("v1\n")
        run("record", "f1", str(source))
        run("commit", "f1")
        source.write_text("v2\n")
        run("record", "f1", str(source))

        output = tmp_path / "restored.md"
        assert run("restore", "f1", "1", "--remote", "-o", str(output)) == 0

        assert output.read_text() == "v1\n"

    def test_restore_unknown_entry(self, run):
        assert run("restore", "f1", "3") == 1

    def test_stats(self, run, tmp_path, capsys):
        source = tmp_path / "draft.md"
        source.write_text("x")
        run("record", "f1", str(source))
        capsys.readouterr()

        run("stats")

        stats = json.loads(capsys.readouterr().out)
        assert stats["history"]["total_files"] == 1

    def test_no_command(self, run):
        assert run() == 1


class TestJSONFormatter:
    """Tests for structured log output."""

    def test_format(self):
        record = logging.LogRecord(
            name="driftsync.sync",
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg="Push skipped: %s",
            args=("busy",),
            exc_info=None,
        )

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "WARNING"
        assert data["component"] == "driftsync.sync"
        assert data["message"] == "Push skipped: busy"
