"""
Transcript parser: raw JSONL records -> normalized Event stream.

Reads the JSONL transcript files that Claude Code maintains at:
~/.claude/projects/{encoded_cwd}/{session_id}.jsonl

Records come in several shapes:
- Claude Code entries: {"type": "assistant", "message": {"content": [...]}}
- Flat chat messages: {"role": "user", "content": "..."}
- Flat tool records: {"type": "tool_use", "name": ..., "input": {...}}

Shape detection is an ordered table of rules; a record no rule
recognizes is dropped.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_INVOCATION = "tool_invocation"
    TOOL_RESULT = "tool_result"
    SYSTEM = "system"


@dataclass(frozen=True)
class Event:
    """One normalized unit of the transcript."""

    kind: EventKind
    text: str = ""
    timestamp: float | None = None
    tool_name: str | None = None
    tool_input: dict[str, Any] = field(default_factory=dict)
    tool_use_id: str | None = None
    session_id: str | None = None


@dataclass
class ParseResult:
    """Events parsed from a transcript plus byte bookkeeping for resuming."""

    events: list[Event] = field(default_factory=list)
    bytes_read: int = 0
    total_bytes: int = 0


# -----------------------------------------------------------------------------
# Kind detection
# -----------------------------------------------------------------------------

KIND_ALIASES: dict[str, EventKind] = {
    "user": EventKind.USER,
    "human": EventKind.USER,
    "assistant": EventKind.ASSISTANT,
    "ai": EventKind.ASSISTANT,
    "tool_use": EventKind.TOOL_INVOCATION,
    "tool_call": EventKind.TOOL_INVOCATION,
    "tool_invocation": EventKind.TOOL_INVOCATION,
    "tool_result": EventKind.TOOL_RESULT,
    "system": EventKind.SYSTEM,
}


def _alias(value: Any) -> EventKind | None:
    if isinstance(value, str):
        return KIND_ALIASES.get(value.lower())
    return None


def _nested_role(raw: dict[str, Any]) -> Any:
    message = raw.get("message")
    return message.get("role") if isinstance(message, dict) else None


# ORDER MATTERS: explicit fields first, structural cues last
KIND_RULES: list[Callable[[dict[str, Any]], EventKind | None]] = [
    lambda raw: _alias(raw.get("type")),
    lambda raw: _alias(raw.get("role")),
    lambda raw: _alias(_nested_role(raw)),
    lambda raw: EventKind.TOOL_INVOCATION if (raw.get("tool_name") or raw.get("name")) else None,
    lambda raw: EventKind.TOOL_RESULT if raw.get("tool_use_id") else None,
]


def infer_kind(raw: dict[str, Any]) -> EventKind | None:
    """Return the event kind for a raw record, or None if unrecognized."""
    for rule in KIND_RULES:
        kind = rule(raw)
        if kind is not None:
            return kind
    return None


# -----------------------------------------------------------------------------
# Content flattening
# -----------------------------------------------------------------------------

TEXT_BLOCK_FIELDS = {"text": "text", "thinking": "thinking"}


def _raw_content(raw: dict[str, Any]) -> Any:
    message = raw.get("message")
    if isinstance(message, dict):
        return message.get("content", "")
    for key in ("content", "text", "message"):
        value = raw.get(key)
        if value is not None:
            return value
    return ""


def flatten_content(content: Any) -> str:
    """
    Flatten string-or-blocks content into text.

    Text and thinking blocks are joined with newlines in order; any
    other block kind is ignored.
    """
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""

    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict):
            text_field = TEXT_BLOCK_FIELDS.get(block.get("type", "text"))
            value = block.get(text_field) if text_field else None
            if isinstance(value, str) and value:
                parts.append(value)
    return "\n".join(p for p in parts if p)


def _parse_timestamp(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # Millisecond epochs are common in JS-produced transcripts
        return value / 1000.0 if value > 1e11 else float(value)
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
        except ValueError:
            return None
    return None


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


# -----------------------------------------------------------------------------
# Record normalization
# -----------------------------------------------------------------------------


def normalize_record(raw: dict[str, Any]) -> list[Event]:
    """
    Convert one raw record into zero or more events.

    A tool_result block takes its tool name only from a tool_use block
    earlier in the same record. Results whose invocation lives in another
    record keep ``tool_name`` empty.

    Args:
        raw: Decoded JSON object from one transcript line

    Returns:
        The parent event (if it carries text) followed by any synthetic
        tool events embedded in its content blocks.
    """
    kind = infer_kind(raw)
    if kind is None:
        return []

    timestamp = _parse_timestamp(raw.get("timestamp"))
    session_id = raw.get("session_id") or raw.get("sessionId")
    content = _raw_content(raw)

    if kind is EventKind.TOOL_INVOCATION:
        return [_flat_invocation(raw, timestamp, session_id)]
    if kind is EventKind.TOOL_RESULT:
        return [_flat_result(raw, content, timestamp, session_id)]

    events: list[Event] = []
    tool_names: dict[str, str] = {}
    text = flatten_content(content)
    if text.strip():
        events.append(Event(kind=kind, text=text, timestamp=timestamp, session_id=session_id))

    if isinstance(content, list):
        for block in content:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type", "")
            if block_type == "tool_use":
                tool_use_id = block.get("id") or None
                name = block.get("name") or "unknown"
                if tool_use_id:
                    tool_names[tool_use_id] = name
                events.append(Event(
                    kind=EventKind.TOOL_INVOCATION,
                    text=json.dumps(block.get("input", {}), default=str),
                    timestamp=timestamp,
                    tool_name=name,
                    tool_input=_as_dict(block.get("input")),
                    tool_use_id=tool_use_id,
                    session_id=session_id,
                ))
            elif block_type == "tool_result":
                tool_use_id = block.get("tool_use_id") or None
                events.append(Event(
                    kind=EventKind.TOOL_RESULT,
                    text=flatten_content(block.get("content", "")),
                    timestamp=timestamp,
                    tool_name=tool_names.get(tool_use_id) if tool_use_id else None,
                    tool_use_id=tool_use_id,
                    session_id=session_id,
                ))

    return events


def _flat_invocation(
    raw: dict[str, Any],
    timestamp: float | None,
    session_id: str | None,
) -> Event:
    name = raw.get("tool_name") or raw.get("name") or "unknown"
    tool_input = _as_dict(raw.get("tool_input", raw.get("input")))
    tool_use_id = raw.get("id") or raw.get("tool_use_id") or None
    return Event(
        kind=EventKind.TOOL_INVOCATION,
        text=json.dumps(tool_input, default=str) if tool_input else "",
        timestamp=timestamp,
        tool_name=name,
        tool_input=tool_input,
        tool_use_id=tool_use_id,
        session_id=session_id,
    )


def _flat_result(
    raw: dict[str, Any],
    content: Any,
    timestamp: float | None,
    session_id: str | None,
) -> Event:
    tool_use_id = raw.get("tool_use_id") or None
    name = raw.get("tool_name") or None
    return Event(
        kind=EventKind.TOOL_RESULT,
        text=flatten_content(content),
        timestamp=timestamp,
        tool_name=name,
        tool_use_id=tool_use_id,
        session_id=session_id,
    )


def _decode_line(line: str | bytes) -> dict[str, Any] | None:
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.strip()
    if not line:
        return None
    try:
        raw = json.loads(line)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed transcript line")
        return None
    return raw if isinstance(raw, dict) else None


def parse_lines(lines: Iterable[str | bytes]) -> list[Event]:
    """Normalize an iterable of JSONL lines. Malformed lines are skipped."""
    events: list[Event] = []

    for line in lines:
        raw = _decode_line(line)
        if raw is not None:
            events.extend(normalize_record(raw))

    return events


def parse_transcript(transcript_path: str | Path, start_offset: int = 0) -> ParseResult:
    """
    Parse a JSONL transcript file, optionally resuming from a byte offset.

    A line is emitted only if it starts at or after ``start_offset``; a
    line straddling the offset is treated as already processed. A trailing
    line without a newline that does not decode yet (a record still being
    written) is left unread, so ``bytes_read`` stops before it.

    Args:
        transcript_path: Path to the JSONL transcript
        start_offset: Byte offset already processed by an earlier parse

    Returns:
        ParseResult. A missing or unreadable file yields an empty result.
    """
    path = Path(transcript_path)
    try:
        total_bytes = path.stat().st_size
    except OSError:
        return ParseResult()

    if start_offset >= total_bytes:
        return ParseResult(bytes_read=total_bytes, total_bytes=total_bytes)

    events: list[Event] = []
    try:
        with open(path, "rb") as f:
            if start_offset > 0:
                f.seek(start_offset - 1)
                if f.read(1) != b"\n":
                    f.readline()
            position = f.tell()
            for line in f:
                raw = _decode_line(line)
                if raw is None and not line.endswith(b"\n") and line.strip():
                    break
                position += len(line)
                if raw is not None:
                    events.extend(normalize_record(raw))
    except OSError as e:
        logger.debug(f"Could not read transcript {path}: {e}")
        return ParseResult()

    return ParseResult(events=events, bytes_read=position, total_bytes=max(total_bytes, position))


def find_transcript_path(cwd: str | None = None, session_id: str | None = None) -> Path | None:
    """
    Find the transcript file for a session.

    Args:
        cwd: Project directory (uses CLAUDE_CWD or the process cwd if not provided)
        session_id: Session ID to find (uses env var if not provided)

    Returns:
        Path to transcript file or None if not found
    """
    # Check environment variable first
    transcript_path = os.environ.get("CLAUDE_TRANSCRIPT_PATH")
    if transcript_path and Path(transcript_path).exists():
        return Path(transcript_path)

    session_id = session_id or os.environ.get("CLAUDE_SESSION_ID")
    cwd = cwd or os.environ.get("CLAUDE_CWD", os.getcwd())

    claude_projects = Path.home() / ".claude" / "projects"
    # Claude uses sanitized path with dashes
    project_dir = claude_projects / cwd.replace("/", "-").replace(" ", "-")
    if not project_dir.is_dir():
        return None

    if session_id:
        potential_path = project_dir / f"{session_id}.jsonl"
        if potential_path.exists():
            return potential_path

    try:
        candidates = sorted(
            project_dir.glob("*.jsonl"),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
    except OSError:
        return None
    return candidates[0] if candidates else None


__all__ = [
    "EventKind",
    "Event",
    "ParseResult",
    "KIND_ALIASES",
    "infer_kind",
    "flatten_content",
    "normalize_record",
    "parse_lines",
    "parse_transcript",
    "find_transcript_path",
]
