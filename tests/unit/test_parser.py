"""
Unit tests for transcript.parser module.

Covers record shape detection, content flattening, tool name
resolution and offset-based resumption.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from bookmark.transcript.parser import (
    Event,
    EventKind,
    find_transcript_path,
    flatten_content,
    infer_kind,
    normalize_record,
    parse_lines,
    parse_transcript,
)
from transcript_helpers import (
    assistant_record,
    tool_result_record,
    tool_use,
    user_record,
    write_jsonl,
)


class TestInferKind:
    """Tests for the ordered kind rules."""

    def test_explicit_type(self):
        """type field wins."""
        assert infer_kind({"type": "assistant"}) is EventKind.ASSISTANT
        assert infer_kind({"type": "human"}) is EventKind.USER

    def test_flat_role(self):
        """role field is used when type is absent."""
        assert infer_kind({"role": "user", "content": "hi"}) is EventKind.USER

    def test_nested_role(self):
        """message.role is used when neither type nor role is known."""
        assert infer_kind({"message": {"role": "assistant"}}) is EventKind.ASSISTANT

    def test_tool_name_means_invocation(self):
        """A tool name without a type is a tool invocation."""
        assert infer_kind({"tool_name": "Bash"}) is EventKind.TOOL_INVOCATION

    def test_tool_use_id_means_result(self):
        """A bare tool_use_id is a tool result."""
        assert infer_kind({"tool_use_id": "toolu_1", "content": "ok"}) is EventKind.TOOL_RESULT

    def test_unrecognized(self):
        """Unknown shapes are not classified."""
        assert infer_kind({"type": "summary", "summary": "x"}) is None
        assert infer_kind({}) is None


class TestFlattenContent:
    """Tests for flatten_content."""

    def test_string_passthrough(self):
        """Plain string content is returned as-is."""
        assert flatten_content("hello") == "hello"

    def test_text_and_thinking_blocks(self):
        """Text and thinking blocks are joined with newlines in order."""
        content = [
            {"type": "thinking", "thinking": "plan"},
            {"type": "text", "text": "answer"},
        ]
        assert flatten_content(content) == "plan\nanswer"

    def test_other_blocks_ignored(self):
        """Images and tool blocks contribute no text."""
        content = [
            {"type": "image", "source": {}},
            {"type": "tool_use", "id": "t", "name": "Bash", "input": {}},
            {"type": "text", "text": "only this"},
        ]
        assert flatten_content(content) == "only this"

    def test_non_content(self):
        """Numbers and None flatten to empty text."""
        assert flatten_content(None) == ""
        assert flatten_content(42) == ""


class TestNormalizeRecord:
    """Tests for normalize_record."""

    def test_user_message(self):
        """A user record yields one user event."""
        events = normalize_record(user_record("fix the bug", sessionId="s1"))

        assert len(events) == 1
        assert events[0].kind is EventKind.USER
        assert events[0].text == "fix the bug"
        assert events[0].session_id == "s1"

    def test_assistant_with_tool_use(self):
        """Embedded tool_use blocks become invocation events after the parent."""
        record = assistant_record(
            "Editing now",
            tool_use("toolu_1", "Edit", {"file_path": "a.py", "old_string": "x", "new_string": "y"}),
        )

        events = normalize_record(record)

        assert [e.kind for e in events] == [EventKind.ASSISTANT, EventKind.TOOL_INVOCATION]
        assert events[1].tool_name == "Edit"
        assert events[1].tool_input["file_path"] == "a.py"
        assert events[1].tool_use_id == "toolu_1"

    def test_tool_result_resolves_name_in_same_record(self):
        """A tool_result block takes the name of an invocation in its own record."""
        record = assistant_record(
            tool_use("toolu_1", "Bash", {"command": "ls"}),
            {"type": "tool_result", "tool_use_id": "toolu_1", "content": "done"},
        )

        events = normalize_record(record)

        assert [e.kind for e in events] == [EventKind.TOOL_INVOCATION, EventKind.TOOL_RESULT]
        assert events[1].tool_name == "Bash"
        assert events[1].text == "done"

    def test_standalone_tool_result(self):
        events = normalize_record(tool_result_record("toolu_1", "done"))

        assert len(events) == 1
        assert events[0].kind is EventKind.TOOL_RESULT
        assert events[0].tool_name is None
        assert events[0].tool_use_id == "toolu_1"

    def test_flat_result_keeps_explicit_name(self):
        raw = {"type": "tool_result", "tool_use_id": "t1", "tool_name": "Grep", "content": "ok"}
        assert normalize_record(raw)[0].tool_name == "Grep"

    def test_tool_result_unknown_id(self):
        """An unmatched result keeps no tool name."""
        events = normalize_record(tool_result_record("toolu_9", "done"))
        assert events[0].tool_name is None

    def test_flat_tool_record(self):
        """Flat tool_use records are recognized."""
        raw = {"type": "tool_use", "name": "Write", "id": "t1", "input": {"file_path": "b.py"}}
        events = normalize_record(raw)

        assert events[0].kind is EventKind.TOOL_INVOCATION
        assert events[0].tool_input == {"file_path": "b.py"}
        assert events[0].tool_name == "Write"

    def test_timestamps(self):
        """ISO strings and millisecond epochs become epoch seconds."""
        iso = normalize_record(user_record("hi there", timestamp="2026-01-01T00:00:00Z"))
        millis = normalize_record(user_record("hi there", timestamp=1767225600000))

        assert iso[0].timestamp == pytest.approx(1767225600.0)
        assert millis[0].timestamp == pytest.approx(1767225600.0)

    def test_unknown_record_dropped(self):
        """Records no rule recognizes produce no events."""
        assert normalize_record({"type": "summary", "summary": "x"}) == []


class TestParseLines:
    """Tests for parse_lines."""

    def test_malformed_lines_skipped(self):
        """Bad JSON and non-object lines are skipped."""
        lines = [
            '{"role": "user", "content": "first message"}',
            "{not json",
            "[1, 2, 3]",
            "",
            '{"role": "assistant", "content": "second message"}',
        ]

        events = parse_lines(lines)

        assert [e.text for e in events] == ["first message", "second message"]

    def test_tool_names_do_not_cross_records(self):
        """A result in a later record does not take an earlier record's tool name."""
        import json

        lines = [
            json.dumps(assistant_record(tool_use("toolu_1", "Grep", {"pattern": "x"}))),
            json.dumps(tool_result_record("toolu_1", "no matches")),
        ]

        events = parse_lines(lines)

        invocations = [e for e in events if e.kind is EventKind.TOOL_INVOCATION]
        results = [e for e in events if e.kind is EventKind.TOOL_RESULT]
        assert invocations[0].tool_name == "Grep"
        assert results[0].tool_name is None
        assert results[0].tool_use_id == "toolu_1"


class TestParseTranscript:
    """Tests for parse_transcript."""

    @pytest.fixture
    def transcript(self, tmp_path):
        return write_jsonl(tmp_path / "session.jsonl", [
            user_record("first message here"),
            assistant_record("second message here"),
            user_record("third message here"),
        ])

    def test_missing_file(self, tmp_path):
        """A missing transcript yields an empty result."""
        result = parse_transcript(tmp_path / "nope.jsonl")
        assert result.events == []
        assert result.bytes_read == 0

    def test_full_parse(self, transcript):
        """All lines are parsed and the size is reported."""
        result = parse_transcript(transcript)

        assert [e.text for e in result.events] == [
            "first message here",
            "second message here",
            "third message here",
        ]
        assert result.bytes_read == transcript.stat().st_size

    def test_idempotent(self, transcript):
        """Parsing twice gives the same events."""
        assert parse_transcript(transcript).events == parse_transcript(transcript).events

    def test_offset_at_end(self, transcript):
        """An offset at the file size yields nothing."""
        size = transcript.stat().st_size
        result = parse_transcript(transcript, start_offset=size)

        assert result.events == []
        assert result.bytes_read == size

    def test_offset_at_line_boundary(self, transcript):
        """A line starting exactly at the offset is emitted."""
        first_line = transcript.read_bytes().split(b"\n")[0]
        result = parse_transcript(transcript, start_offset=len(first_line) + 1)

        assert [e.text for e in result.events] == ["second message here", "third message here"]

    def test_offset_mid_line(self, transcript):
        """A line straddling the offset counts as already processed."""
        result = parse_transcript(transcript, start_offset=5)
        assert [e.text for e in result.events] == ["second message here", "third message here"]

    def test_resume_sees_only_new_lines(self, transcript):
        """Parsing from the previous size returns only appended lines."""
        from transcript_helpers import append_jsonl

        first = parse_transcript(transcript)
        append_jsonl(transcript, [user_record("fourth message here")])

        second = parse_transcript(transcript, start_offset=first.bytes_read)

        assert [e.text for e in second.events] == ["fourth message here"]


class TestFindTranscriptPath:
    """Tests for find_transcript_path."""

    def test_env_override(self, tmp_path, monkeypatch):
        """CLAUDE_TRANSCRIPT_PATH wins when it exists."""
        path = write_jsonl(tmp_path / "t.jsonl", [])
        monkeypatch.setenv("CLAUDE_TRANSCRIPT_PATH", str(path))

        assert find_transcript_path("/some/project") == path

    def test_session_file(self, isolated_env):
        """The session's own file is found under ~/.claude/projects."""
        project_dir = isolated_env / ".claude" / "projects" / "-work-app"
        project_dir.mkdir(parents=True)
        write_jsonl(project_dir / "other.jsonl", [])
        target = write_jsonl(project_dir / "abc.jsonl", [])

        assert find_transcript_path("/work/app", "abc") == target

    def test_no_project_dir(self):
        """Nothing is found for an unknown project."""
        assert find_transcript_path("/not/a/project", "abc") is None


def test_event_is_immutable():
    """Events are frozen values."""
    event = Event(kind=EventKind.USER, text="x")
    with pytest.raises(Exception):
        event.text = "y"
