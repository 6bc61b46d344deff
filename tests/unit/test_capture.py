"""
Unit tests for snapshot.capture and snapshot.compress modules.
"""

import sys
from dataclasses import replace
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from bookmark.config import BookmarkConfig, get_storage_path
from bookmark.schema import (
    Decision,
    ErrorEntry,
    FileActivity,
    OpenItem,
    Priority,
    Snapshot,
    SnapshotTrigger,
)
from bookmark.snapshot.capture import capture_snapshot
from bookmark.snapshot.compress import compress_to_markdown, truncate
from bookmark.restore import merge_snapshot_chain
from bookmark.snapshot.enhance import Enhancer, LLMEnhancer
from bookmark.snapshot.storage import SnapshotStore
from bookmark.threshold.state import load_state
from bookmark.trails.reader import load_decision_trail, read_trailhead
from transcript_helpers import (
    append_jsonl,
    assistant_record,
    tool_result_record,
    tool_use,
    user_record,
    write_jsonl,
)

NOW = 1_800_000_000.0


@pytest.fixture
def transcript(tmp_path, project):
    return write_jsonl(tmp_path / "session.jsonl", [
        user_record("add caching to the report endpoint", sessionId="s1"),
        assistant_record(
            "We decided to use Redis for the cache because it is already deployed.",
            tool_use("toolu_1", "Edit", {
                "file_path": str(project / "app" / "reports.py"),
                "old_string": "a",
                "new_string": "a\nb",
            }),
        ),
        tool_result_record("toolu_1", "The file has been updated."),
        assistant_record("TODO: add cache invalidation on report updates"),
    ])


@pytest.fixture
def config():
    return BookmarkConfig()


class TestCaptureSnapshot:
    """Tests for capture_snapshot."""

    def test_captures_and_stores(self, project, transcript, config):
        result = capture_snapshot(
            SnapshotTrigger.PRE_COMPACT, project, transcript, session_id="s1", config=config, now=NOW,
        )
        snapshot = result.snapshot

        assert snapshot.trigger == "pre_compact"
        assert snapshot.session_id == "s1"
        assert snapshot.intent == "add caching to the report endpoint"
        assert len(snapshot.decisions) == 1
        assert snapshot.files_changed[0].lines_changed == 2
        assert snapshot.open_items[0].description == "add cache invalidation on report updates"
        assert snapshot.tools_summary == {"Edit": 1}
        assert snapshot.token_estimate > 0
        assert snapshot.prior_snapshot_id is None
        assert result.path.exists()

        store = SnapshotStore(get_storage_path(project, config))
        assert store.load(snapshot.snapshot_id) == snapshot
        assert store.list_snapshots()[0].id == snapshot.snapshot_id

    def test_writes_restoration_artifacts(self, project, transcript, config):
        result = capture_snapshot(SnapshotTrigger.MANUAL, project, transcript, config=config, now=NOW)
        root = get_storage_path(project, config)

        assert result.restoration_updated
        assert "*bookmark - context snapshot*" in (root / "LATEST.md").read_text()
        assert "**Intent:** add caching" in read_trailhead(root)
        assert len(load_decision_trail(root).decisions) == 1

    def test_updates_state(self, project, transcript, config):
        result = capture_snapshot(SnapshotTrigger.MANUAL, project, transcript, config=config, now=NOW)

        assert result.state.last_snapshot_time == NOW
        assert result.state.snapshots_this_session == 1

        saved = load_state(get_storage_path(project, config), config)
        assert saved.last_snapshot_time == NOW

    def test_same_second_captures_chain(self, project, transcript, config):
        first = capture_snapshot(SnapshotTrigger.MANUAL, project, transcript, config=config, now=NOW)
        second = capture_snapshot(SnapshotTrigger.MANUAL, project, transcript, config=config, now=NOW)

        assert first.snapshot.snapshot_id != second.snapshot.snapshot_id
        assert second.snapshot.prior_snapshot_id == first.snapshot.snapshot_id

    def test_empty_capture_keeps_latest(self, project, tmp_path, config):
        """An automatic capture with nothing extracted leaves LATEST.md alone."""
        root = get_storage_path(project, config)
        SnapshotStore(root).write_latest("previous digest")
        empty = write_jsonl(tmp_path / "empty.jsonl", [])

        result = capture_snapshot(SnapshotTrigger.PRE_COMPACT, project, empty, config=config, now=NOW)

        assert not result.restoration_updated
        assert (root / "LATEST.md").read_text() == "previous digest"
        assert result.path.exists()

    def test_manual_empty_capture_writes_latest(self, project, config):
        result = capture_snapshot(SnapshotTrigger.MANUAL, project, None, config=config, now=NOW)

        assert result.restoration_updated
        assert (get_storage_path(project, config) / "LATEST.md").exists()
        assert result.snapshot.context_remaining_pct == 1.0

    def test_outside_files_ignored(self, project, tmp_path, config):
        transcript = write_jsonl(tmp_path / "t.jsonl", [
            assistant_record(tool_use("t1", "Write", {"file_path": "/etc/motd", "content": "hi"})),
        ])

        result = capture_snapshot(SnapshotTrigger.MANUAL, project, transcript, config=config, now=NOW)

        assert result.snapshot.files_changed == []

    def test_custom_enhancer(self, project, transcript, config):
        class FixedIntent(Enhancer):
            def enhance(self, extraction, events):
                return replace(extraction, intent="ship the caching layer")

        result = capture_snapshot(
            SnapshotTrigger.MANUAL, project, transcript, config=config, enhancer=FixedIntent(), now=NOW,
        )

        assert result.snapshot.intent == "ship the caching layer"


class TestIncrementalCapture:
    """Consecutive captures cover disjoint parts of a growing transcript."""

    def test_second_capture_sees_only_new_records(self, project, tmp_path, config):
        transcript = write_jsonl(tmp_path / "grow.jsonl", [
            user_record("write the release notes generator"),
            assistant_record(tool_use("t1", "Write", {
                "file_path": str(project / "notes.py"),
                "content": "1\n2\n3\n4\n5",
            })),
        ])
        first = capture_snapshot(SnapshotTrigger.PRE_COMPACT, project, transcript, config=config, now=NOW)

        append_jsonl(transcript, [user_record("now add a changelog section")])
        second = capture_snapshot(SnapshotTrigger.PRE_COMPACT, project, transcript, config=config, now=NOW + 60)

        assert first.snapshot.files_changed[0].lines_changed == 5
        assert second.snapshot.files_changed == []
        assert second.snapshot.intent == "now add a changelog section"
        assert second.state.transcript_offset == transcript.stat().st_size

        chain = SnapshotStore(get_storage_path(project, config)).load_chain()
        merged = merge_snapshot_chain(chain)
        assert len(chain) == 2
        assert [(f.path, f.lines_changed) for f in merged.files] == [(str(project / "notes.py"), 5)]

    def test_other_transcript_starts_from_beginning(self, project, transcript, tmp_path, config):
        capture_snapshot(SnapshotTrigger.MANUAL, project, transcript, config=config, now=NOW)
        other = write_jsonl(tmp_path / "other.jsonl", [user_record("unrelated task in another session")])

        result = capture_snapshot(SnapshotTrigger.MANUAL, project, other, config=config, now=NOW + 1)

        assert result.snapshot.intent == "unrelated task in another session"

    def test_truncated_transcript_rereads(self, project, transcript, config):
        capture_snapshot(SnapshotTrigger.MANUAL, project, transcript, config=config, now=NOW)
        write_jsonl(transcript, [user_record("start over with a fresh plan")])

        result = capture_snapshot(SnapshotTrigger.MANUAL, project, transcript, config=config, now=NOW + 1)

        assert result.snapshot.intent == "start over with a fresh plan"

    def test_token_estimate_covers_whole_transcript(self, project, transcript, config):
        first = capture_snapshot(SnapshotTrigger.MANUAL, project, transcript, config=config, now=NOW)
        second = capture_snapshot(SnapshotTrigger.MANUAL, project, transcript, config=config, now=NOW + 1)

        assert second.snapshot.token_estimate == first.snapshot.token_estimate


class MalformedClient:
    def call(self, query, model=None, max_tokens=1024, system=None):
        return '{"open_items": 5, "decisions": "x", "unknowns": 7}'


def test_malformed_enhancement_still_captures(project, transcript, config):
    result = capture_snapshot(
        SnapshotTrigger.MANUAL, project, transcript, config=config,
        enhancer=LLMEnhancer(client=MalformedClient()), now=NOW,
    )

    assert result.path.exists()
    assert result.snapshot.open_items[0].description == "add cache invalidation on report updates"
    assert len(result.snapshot.decisions) == 1

class TestCompressToMarkdown:
    """Tests for the LATEST.md digest."""

    @pytest.fixture
    def snapshot(self):
        return Snapshot(
            snapshot_id="SNAP_20260101_120000",
            timestamp=NOW,
            session_id="s1",
            project_path="/proj",
            trigger=SnapshotTrigger.PRE_COMPACT,
            compaction_cycle=2,
            context_remaining_pct=0.18,
            token_estimate=164000,
            current_status="Working on: caching",
            decisions=[Decision(description=f"Decision number {i} because reasons", rationale="r") for i in range(10)],
            open_items=[
                OpenItem(description="ship it", priority=Priority.HIGH),
                OpenItem(description="write docs", priority=Priority.MEDIUM),
                OpenItem(description="tidy up", priority=Priority.LOW),
            ],
            files_changed=[FileActivity(path="a.py", operations=["edit"], lines_changed=3)],
            errors_encountered=[
                ErrorEntry(message="Error: boom", tool="Bash"),
                ErrorEntry(message="Error: fixed", resolved=True),
            ],
            tools_summary={"Edit": 5, "Bash": 2},
        )

    def test_sections(self, snapshot):
        md = compress_to_markdown(snapshot)

        assert md.startswith("# Session Context - Last Updated")
        assert "Snapshot: SNAP_20260101_120000 | Compaction cycle: 2 | Trigger: pre_compact" in md
        assert "Context remaining: 18% (~164,000 tokens used)" in md
        assert "## Current Status\nWorking on: caching" in md
        assert "- `a.py` (edit)" in md
        assert "> Tool usage: Edit: 5, Bash: 2" in md
        assert md.endswith("*bookmark - context snapshot*")

    def test_caps_and_tags(self, snapshot):
        md = compress_to_markdown(snapshot)

        assert "- ...and 2 more" in md
        assert "- [ ] ship it [HIGH]" in md
        assert "- [ ] write docs [MED]" in md
        assert "- [ ] tidy up\n" in md

    def test_only_unresolved_errors(self, snapshot):
        md = compress_to_markdown(snapshot)

        assert "- Error: boom (Bash)" in md
        assert "Error: fixed" not in md

    def test_minimal_snapshot(self):
        snapshot = Snapshot(
            snapshot_id="SNAP_20260101_120000",
            timestamp=NOW,
            session_id="s1",
            project_path="/proj",
            trigger=SnapshotTrigger.MANUAL,
        )

        md = compress_to_markdown(snapshot)

        assert "## Current Status" not in md
        assert "## Decisions Made" not in md

    def test_truncate(self):
        assert truncate("short", 10) == "short"
        assert truncate("x" * 20, 10) == "xxxxxxx..."
