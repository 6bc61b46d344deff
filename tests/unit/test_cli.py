"""
Unit tests for cli module.
"""

import io
import json
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from bookmark.cli import build_parser, main
from bookmark.config import BookmarkConfig
from transcript_helpers import assistant_record, user_record, write_jsonl


@pytest.fixture
def stdin(monkeypatch):
    """Replace stdin with hook JSON."""
    def feed(data=None):
        monkeypatch.setattr(sys, "stdin", io.StringIO(json.dumps(data) if data is not None else ""))
    feed()
    return feed


@pytest.fixture
def transcript(tmp_path):
    return write_jsonl(tmp_path / "session.jsonl", [
        user_record("port the scheduler to asyncio"),
        assistant_record("We decided to use asyncio.TaskGroup because it cancels siblings cleanly."),
    ])


class TestParser:
    """Tests for argument parsing."""

    def test_snapshot_defaults(self):
        args = build_parser().parse_args(["snapshot"])
        assert args.trigger == "manual"
        assert not args.smart

    def test_rejects_unknown_trigger(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["snapshot", "--trigger", "sometimes"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestHookCommands:
    """Hook commands always exit 0."""

    def test_snapshot(self, project, transcript, stdin, capsys):
        stdin({"session_id": "s1", "transcript_path": str(transcript)})

        assert main(["snapshot", "--trigger", "pre_compact", "--cwd", str(project)]) == 0

        out = capsys.readouterr().out
        assert "Snapshot captured: SNAP_" in out
        assert "Trigger: pre_compact" in out
        assert "Decisions: 1" in out

    def test_snapshot_without_transcript(self, project, stdin, capsys):
        assert main(["snapshot", "--cwd", str(project)]) == 0
        assert capsys.readouterr().out == ""

    def test_restore_prints_message(self, project, stdin, capsys):
        stdin({"source": "startup", "cwd": str(project)})

        assert main(["restore"]) == 0

        assert "[Bookmark: Active - no snapshots yet" in capsys.readouterr().out

    def test_check(self, project, transcript, stdin):
        assert main(["check", "--cwd", str(project), "--transcript", str(transcript)]) == 0

    def test_garbage_stdin(self, project, monkeypatch):
        monkeypatch.setattr(sys, "stdin", io.StringIO("{{{"))
        assert main(["restore", "--cwd", str(project)]) == 0


class TestInteractiveCommands:
    """Tests for status, list, show, config and archive."""

    def test_status_empty(self, project, capsys):
        assert main(["status", "--cwd", str(project)]) == 0

        out = capsys.readouterr().out
        assert "Bookmark Status" in out
        assert "Last snapshot:      never" in out

    def test_list_and_show(self, project, transcript, stdin, capsys):
        stdin({"transcript_path": str(transcript)})
        main(["snapshot", "--cwd", str(project)])
        snapshot_id = capsys.readouterr().out.split("Snapshot captured: ")[1].split()[0]

        assert main(["list", "--cwd", str(project)]) == 0
        assert snapshot_id in capsys.readouterr().out

        assert main(["show", snapshot_id, "--cwd", str(project)]) == 0
        assert "# Session Context" in capsys.readouterr().out

        assert main(["show", "--cwd", str(project)]) == 0
        assert "*bookmark - context snapshot*" in capsys.readouterr().out

    def test_list_empty(self, project, capsys):
        assert main(["list", "--cwd", str(project)]) == 0
        assert "No snapshots found" in capsys.readouterr().out

    def test_show_missing(self, project, capsys):
        assert main(["show", "SNAP_20260101_120000", "--cwd", str(project)]) == 1
        assert main(["show", "--cwd", str(project)]) == 1

    def test_config_interval(self, project, capsys):
        assert main(["config", "--interval", "35", "--cwd", str(project)]) == 0
        assert BookmarkConfig.load(project).interval_minutes == 35

        assert main(["config", "--interval", "0", "--cwd", str(project)]) == 1

    def test_config_show(self, project, capsys):
        assert main(["config", "--cwd", str(project)]) == 0
        assert "Interval:           20 minutes" in capsys.readouterr().out

    def test_archive_nothing(self, project, capsys):
        assert main(["archive", "--cwd", str(project)]) == 0
        assert "Nothing to archive." in capsys.readouterr().out
