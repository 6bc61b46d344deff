"""
Heuristic extraction of session context from normalized events.

Zero LLM calls - pure pattern matching. Each category has its own small
extraction function so it can be tested in isolation:

- decisions, file activity, errors, tool usage: whole transcript
- open items, unknowns, sentiment, intent/progress: recent window only
"""

from __future__ import annotations

import math
import os
import re
import shlex
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Sequence

from ..schema import (
    NO_STATUS,
    UNKNOWN,
    Decision,
    ErrorEntry,
    FileActivity,
    FileOperation,
    OpenItem,
    Priority,
    Sentiment,
)
from .parser import Event, EventKind

if TYPE_CHECKING:
    from ..config import BookmarkConfig


RECENT_FRACTION = 0.3
MIN_RECENT_EVENTS = 20
DEDUP_KEY_LENGTH = 60
MAX_TEXT_LENGTH = 200
MIN_DECISION_WORDS = 6
MIN_ITEM_WORDS = 3
SENTIMENT_MIN_NET = 2
STATUS_TOOL_WINDOW = 20
STATUS_TOP_TOOLS = 3
MAX_INTENT_CHARS = 300


@dataclass
class ExtractionResult:
    """Everything the extractor derives from one event sequence."""

    current_status: str = NO_STATUS
    intent: str = UNKNOWN
    progress: str = UNKNOWN
    decisions: list[Decision] = field(default_factory=list)
    open_items: list[OpenItem] = field(default_factory=list)
    unknowns: list[str] = field(default_factory=list)
    files_changed: list[FileActivity] = field(default_factory=list)
    errors_encountered: list[ErrorEntry] = field(default_factory=list)
    tools_summary: dict[str, int] = field(default_factory=dict)
    user_sentiment: Sentiment = Sentiment.NEUTRAL


# -----------------------------------------------------------------------------
# Patterns
# -----------------------------------------------------------------------------

DECISION_PATTERN = re.compile(
    r"\b(?:decided to|decided on|chose|going with|go with|opted for|settled on|"
    r"will use|we'll use|let[’']s use|let[’']s go with|switched to|switching to|"
    r"instead of|approach:)",
    re.IGNORECASE,
)
JUSTIFICATION_PATTERN = re.compile(
    r"\b(?:because|since|rationale|reason:|the reason|the advantage|so that|"
    r"due to|better approach)\b",
    re.IGNORECASE,
)
FILLER_OPENER = re.compile(r"^(?:let me|i[’']ll|i will|now|okay|ok|sure)\b", re.IGNORECASE)

TODO_MARKER = re.compile(r"\b(?:TODO|FIXME)\b\s*[:\-)]?\s*(?P<item>.+)")
USER_OPEN_ITEM_PATTERNS = [
    re.compile(r"\bstill need to\b", re.IGNORECASE),
    re.compile(r"\bneed to\b", re.IGNORECASE),
    re.compile(r"\bnext step\b", re.IGNORECASE),
    re.compile(r"\btodo\b", re.IGNORECASE),
    re.compile(r"\bhaven[’']t (?:yet|done)\b", re.IGNORECASE),
    re.compile(r"\bdon[’']t forget\b", re.IGNORECASE),
    re.compile(r"\bremember to\b", re.IGNORECASE),
    re.compile(r"\bleft to do\b", re.IGNORECASE),
    re.compile(r"\bwe should also\b", re.IGNORECASE),
]
CHECKBOX = re.compile(r"^\s*[-*]\s*\[ \]\s*(?P<item>.+)")
NOISE_PHRASES = (
    "if you need to",
    "no need to",
    "don't need to",
    "do i need to",
    "do we need to",
    "you need to know",
    "need to see",
    "need to understand",
)

UNKNOWN_PATTERNS = [
    re.compile(
        r"\b(?:not sure|unclear|blocker|blocked by|need to figure out|question:|"
        r"unknown|investigate|TBD)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(?:might need|may require|haven[’']t determined|needs research|uncertain)\b",
        re.IGNORECASE,
    ),
]

HIGH_PRIORITY = re.compile(r"\b(?:must|critical|urgent|blocker|breaking|immediately|asap)\b")
MEDIUM_PRIORITY = re.compile(r"\b(?:should|important|next|before|required)\b")

ERROR_PATTERNS = [
    re.compile(r"\b(?:error|Error|ERROR|exception|Exception|traceback|Traceback|failed|FAILED)\b"),
    re.compile(r"\b(?:TypeError|SyntaxError|ReferenceError|cannot find|not found|undefined is not)\b"),
    re.compile(r"\b(?:ENOENT|EACCES|EPERM|ECONNREFUSED|ETIMEDOUT|EADDRINUSE)\b"),
    re.compile(r"(?:command not found|No such file or directory|Permission denied)"),
]
ERROR_FALSE_POSITIVES = [
    re.compile(r"^\s*toolu_[A-Za-z0-9]+\s*$"),  # bare tool-call id
    re.compile(r"^\s*#!"),  # shebang
    re.compile(r"^\s*\d+\s*(?:→|\t)"),  # line-numbered file output
]

POSITIVE_PATTERN = re.compile(
    r"\b(?:thanks|thank you|great|perfect|awesome|excellent|nice|love it|"
    r"looks good|well done|good job|works now|that works|it works)\b",
    re.IGNORECASE,
)
NEGATIVE_PATTERN = re.compile(
    r"\b(?:wrong|broken|doesn[’']t work|does not work|not working|still failing|"
    r"still broken|frustrat\w*|annoying|terrible|useless|ugh|revert that|undo that)\b",
    re.IGNORECASE,
)

FILE_EDIT_TOOLS: dict[str, FileOperation] = {
    "Write": FileOperation.WRITE,
    "write": FileOperation.WRITE,
    "Edit": FileOperation.EDIT,
    "edit": FileOperation.EDIT,
    "MultiEdit": FileOperation.EDIT,
    "NotebookEdit": FileOperation.EDIT,
}
SHELL_TOOLS = {"Bash", "bash", "shell"}
SHELL_FILE_COMMANDS: dict[str, FileOperation] = {
    "mkdir": FileOperation.CREATE,
    "touch": FileOperation.CREATE,
    "mv": FileOperation.CREATE,
    "cp": FileOperation.CREATE,
    "tee": FileOperation.CREATE,
    "rm": FileOperation.DELETE,
}
SHELL_SEPARATORS = re.compile(r"&&|\|\||;|\n|\|")
REDIRECTION = re.compile(r"(?<![0-9&>])>>?\s*(?P<target>[^\s;&|<>]+)")


# -----------------------------------------------------------------------------
# Text helpers
# -----------------------------------------------------------------------------


def normalized_key(text: str, length: int = DEDUP_KEY_LENGTH) -> str:
    """Case-folded prefix used to deduplicate extracted text."""
    return " ".join(text.split()).casefold()[:length]


def split_sentences(text: str) -> list[str]:
    """Split on sentence-ending punctuation followed by space, and on newlines."""
    parts = re.split(r"(?<=[.!?])\s+|\n+", text)
    return [p.strip() for p in parts if p and p.strip()]


def _clip(text: str, limit: int = MAX_TEXT_LENGTH) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 3].rstrip() + "..."


def _strip_list_marker(text: str) -> str:
    return re.sub(r"^\s*(?:[-*+]|\d+[.)])\s+", "", text).strip()


def looks_like_code(text: str) -> bool:
    """Markdown structure, code fences, or punctuation-heavy text."""
    stripped = text.strip()
    if not stripped:
        return True
    if stripped.startswith(("#", "```", "~~~", ">", "|", "$ ", "//", "/*")):
        return True
    if "```" in stripped or stripped.count("|") >= 2:
        return True
    if re.search(r"[{};]\s*$|=>|::|\(\)|^\s*(?:def|class|import|from|const|let|var|function)\s", stripped):
        return True
    symbols = sum(1 for c in stripped if not (c.isalnum() or c.isspace() or c in ".,'’\"-:!?()/"))
    return symbols / len(stripped) > 0.15


def looks_like_regex(text: str) -> bool:
    return bool(re.search(r"\\[dswbDSWB]|\(\?[:=!<]|\[\^|\.\*|\.\+|\^\S.*\$$", text))


def _word_count(text: str) -> int:
    return len(text.split())


def recent_window(events: Sequence[Event]) -> Sequence[Event]:
    """
    The most recent ~30% of events, never fewer than MIN_RECENT_EVENTS.

    Below roughly 67 events the floor dominates, so a short transcript (or a
    short slice after a compaction) is read whole or nearly whole. A
    handful of events is too little signal for intent, open items and
    sentiment to be cut down to 30%.
    """
    n = len(events)
    size = max(math.ceil(n * RECENT_FRACTION), min(n, MIN_RECENT_EVENTS))
    return events[n - size:] if size < n else events


def _texts(events: Iterable[Event], *kinds: EventKind) -> Iterable[Event]:
    return (e for e in events if e.kind in kinds and e.text)


# -----------------------------------------------------------------------------
# Category extractors
# -----------------------------------------------------------------------------


def is_decision_sentence(sentence: str) -> bool:
    """Decision phrase AND justification phrase, not filler, not code."""
    if _word_count(sentence) < MIN_DECISION_WORDS:
        return False
    if FILLER_OPENER.match(sentence) or looks_like_code(sentence):
        return False
    return bool(DECISION_PATTERN.search(sentence) and JUSTIFICATION_PATTERN.search(sentence))


def extract_decisions(events: Sequence[Event], limit: int = 15) -> list[Decision]:
    """Decisions stated with a justification, in transcript order."""
    decisions: list[Decision] = []
    seen: set[str] = set()

    for event in _texts(events, EventKind.ASSISTANT, EventKind.USER):
        for sentence in split_sentences(event.text):
            sentence = _strip_list_marker(sentence)
            if not is_decision_sentence(sentence):
                continue
            key = normalized_key(sentence)
            if key in seen:
                continue
            seen.add(key)

            justification = JUSTIFICATION_PATTERN.search(sentence)
            rationale = sentence[justification.end():].strip(" :,-") if justification else ""
            decisions.append(Decision(
                description=_clip(sentence),
                rationale=_clip(rationale) if rationale else None,
            ))
            if len(decisions) >= limit:
                return decisions

    return decisions


def infer_priority(text: str) -> Priority:
    lower = text.lower()
    if HIGH_PRIORITY.search(lower):
        return Priority.HIGH
    if MEDIUM_PRIORITY.search(lower):
        return Priority.MEDIUM
    return Priority.LOW


def _assistant_open_item(sentence: str) -> str | None:
    match = TODO_MARKER.search(sentence)
    if not match:
        return None
    item = match.group("item").strip()
    return item if len(item) >= 10 else None


def _user_open_item(sentence: str) -> str | None:
    checkbox = CHECKBOX.match(sentence)
    if checkbox:
        item = checkbox.group("item").strip()
    elif any(p.search(sentence) for p in USER_OPEN_ITEM_PATTERNS):
        item = _strip_list_marker(sentence)
    else:
        return None

    lower = item.lower()
    if item.endswith("?") or any(phrase in lower for phrase in NOISE_PHRASES):
        return None
    if looks_like_code(item) or looks_like_regex(item):
        return None
    if len(item) < 10 or _word_count(item) < MIN_ITEM_WORDS:
        return None
    return item


def extract_open_items(window: Sequence[Event], limit: int = 10) -> list[OpenItem]:
    """
    Outstanding work from the recent window, newest first.

    Assistant text only counts with an explicit TODO/FIXME marker; user
    text uses broader phrasing but stricter artifact filtering.
    """
    items: list[OpenItem] = []
    seen: set[str] = set()

    for event in reversed(list(_texts(window, EventKind.ASSISTANT, EventKind.USER))):
        pick = _assistant_open_item if event.kind is EventKind.ASSISTANT else _user_open_item
        for sentence in event.text.splitlines():
            item = pick(sentence.strip())
            if not item:
                continue
            key = normalized_key(item)
            if key in seen:
                continue
            seen.add(key)
            items.append(OpenItem(description=_clip(item), priority=infer_priority(item)))
            if len(items) >= limit:
                return items

    return items


def extract_unknowns(window: Sequence[Event], limit: int = 3) -> list[str]:
    unknowns: list[str] = []
    seen: set[str] = set()

    for event in reversed(list(_texts(window, EventKind.ASSISTANT, EventKind.USER))):
        for sentence in split_sentences(event.text):
            sentence = _strip_list_marker(sentence)
            if len(sentence) < 10 or looks_like_code(sentence):
                continue
            if not any(p.search(sentence) for p in UNKNOWN_PATTERNS):
                continue
            key = normalized_key(sentence)
            if key in seen:
                continue
            seen.add(key)
            unknowns.append(_clip(sentence))
            if len(unknowns) >= limit:
                return unknowns

    return unknowns


def _line_count(text: object) -> int:
    if not isinstance(text, str) or not text:
        return 0
    return text.count("\n") + 1


def edit_line_delta(old: object, new: object) -> int:
    """
    Approximate lines changed by replacing ``old`` with ``new``.

    abs(added - removed) + min(added, removed). Only the relative
    ordering across files is meaningful.
    """
    removed = _line_count(old)
    added = _line_count(new)
    return abs(added - removed) + min(added, removed)


def _tool_line_delta(tool_name: str, tool_input: dict) -> int:
    if tool_name in ("Write", "write"):
        return _line_count(tool_input.get("content"))
    if tool_name == "MultiEdit":
        edits = tool_input.get("edits") or []
        return sum(
            edit_line_delta(e.get("old_string"), e.get("new_string"))
            for e in edits if isinstance(e, dict)
        )
    if tool_name == "NotebookEdit":
        return _line_count(tool_input.get("new_source"))
    return edit_line_delta(tool_input.get("old_string"), tool_input.get("new_string"))


def within_root(path: str, project_root: str | None) -> bool:
    """Relative paths are assumed to be inside the project."""
    if not project_root or not os.path.isabs(path):
        return True
    root = os.path.normpath(project_root)
    try:
        return os.path.commonpath([root, os.path.normpath(path)]) == root
    except ValueError:
        return False


def shell_file_targets(command: str) -> list[tuple[str, FileOperation]]:
    """Best-effort (path, operation) pairs for file-creating shell commands."""
    targets: list[tuple[str, FileOperation]] = []

    for segment in SHELL_SEPARATORS.split(command):
        segment = segment.strip()
        if not segment:
            continue

        redirect = REDIRECTION.search(segment)
        if redirect and redirect.group("target") != "/dev/null":
            targets.append((redirect.group("target").strip("'\""), FileOperation.CREATE))
            continue

        try:
            tokens = shlex.split(segment)
        except ValueError:
            tokens = segment.split()
        if not tokens:
            continue
        operation = SHELL_FILE_COMMANDS.get(os.path.basename(tokens[0]))
        if operation is None:
            continue
        last = tokens[-1]
        if len(tokens) < 2 or last.startswith(("-", "$")) or "*" in last:
            continue
        targets.append((last, operation))

    return targets


def extract_files_changed(
    events: Sequence[Event],
    project_root: str | None = None,
    limit: int = 20,
) -> list[FileActivity]:
    """File activity keyed by path, in order of first appearance."""
    operations: dict[str, list[FileOperation]] = {}
    lines: dict[str, int] = {}

    def record(path: str, operation: FileOperation, delta: int = 0) -> None:
        if not path or not within_root(path, project_root):
            return
        ops = operations.setdefault(path, [])
        if operation not in ops:
            ops.append(operation)
        lines[path] = max(0, lines.get(path, 0) + delta)

    for event in events:
        if event.kind is not EventKind.TOOL_INVOCATION or not event.tool_name:
            continue
        tool_input = event.tool_input

        operation = FILE_EDIT_TOOLS.get(event.tool_name)
        if operation is not None:
            path = tool_input.get("file_path") or tool_input.get("path") or tool_input.get("notebook_path")
            if isinstance(path, str):
                record(path, operation, _tool_line_delta(event.tool_name, tool_input))

        elif event.tool_name in SHELL_TOOLS:
            command = tool_input.get("command")
            if isinstance(command, str):
                for path, shell_op in shell_file_targets(command):
                    record(path, shell_op)

    return [
        FileActivity(path=path, operations=ops, lines_changed=lines.get(path, 0))
        for path, ops in list(operations.items())[:limit]
    ]


def is_error_text(text: str) -> bool:
    return any(p.search(text) for p in ERROR_PATTERNS)


def extract_errors(events: Sequence[Event], limit: int = 10) -> list[ErrorEntry]:
    """First line of each error-looking tool result, deduplicated."""
    errors: list[ErrorEntry] = []
    seen: set[str] = set()

    for event in _texts(events, EventKind.TOOL_RESULT):
        if not is_error_text(event.text):
            continue
        first_line = next((line.strip() for line in event.text.splitlines() if line.strip()), "")
        if not first_line or any(p.search(first_line) for p in ERROR_FALSE_POSITIVES):
            continue
        key = normalized_key(first_line)
        if key in seen:
            continue
        seen.add(key)
        errors.append(ErrorEntry(message=_clip(first_line), tool=event.tool_name, resolved=False))
        if len(errors) >= limit:
            break

    return errors


def extract_tools_summary(events: Iterable[Event]) -> dict[str, int]:
    counts = Counter(
        e.tool_name for e in events
        if e.kind is EventKind.TOOL_INVOCATION and e.tool_name
    )
    return dict(counts)


def extract_sentiment(window: Sequence[Event]) -> Sentiment:
    """
    Conservative sentiment over recent user messages.

    Net keyword hits must reach SENTIMENT_MIN_NET either way; ties and
    weak signals are neutral.
    """
    positive = negative = 0
    for event in _texts(window, EventKind.USER):
        positive += len(POSITIVE_PATTERN.findall(event.text))
        negative += len(NEGATIVE_PATTERN.findall(event.text))

    net = positive - negative
    if net >= SENTIMENT_MIN_NET:
        return Sentiment.POSITIVE
    if net <= -SENTIMENT_MIN_NET:
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL


def extract_intent(window: Sequence[Event]) -> str:
    """The most recent short, plain user message."""
    for event in reversed(list(_texts(window, EventKind.USER))):
        text = " ".join(event.text.split())
        if text.startswith(("<", "[", "/")) or len(text) > MAX_INTENT_CHARS:
            continue
        if _word_count(text) < MIN_ITEM_WORDS:
            continue
        return _clip(text)
    return UNKNOWN


def extract_progress(window: Sequence[Event], files_changed: int = 0) -> str:
    """Top tools in the last few invocations, plus the file count."""
    invocations = [
        e.tool_name for e in window
        if e.kind is EventKind.TOOL_INVOCATION and e.tool_name
    ][-STATUS_TOOL_WINDOW:]
    if not invocations:
        return UNKNOWN

    top = Counter(invocations).most_common(STATUS_TOP_TOOLS)
    summary = "Recent activity: " + ", ".join(f"{name} x{count}" for name, count in top)
    if files_changed:
        summary += f"; {files_changed} file{'s' if files_changed != 1 else ''} touched"
    return summary


def synthesize_status(intent: str, progress: str) -> str:
    parts = []
    if intent != UNKNOWN:
        parts.append(f"Working on: {intent}")
    if progress != UNKNOWN:
        parts.append(progress)
    return _clip(". ".join(parts), 300) if parts else NO_STATUS


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------


def extract_from_events(
    events: Sequence[Event],
    config: "BookmarkConfig | None" = None,
    project_root: str | None = None,
) -> ExtractionResult:
    """
    Extract structured context from a normalized event sequence.

    Args:
        events: Events in transcript order
        config: Supplies per-category caps (defaults if None)
        project_root: File activity outside this directory is ignored

    Returns:
        ExtractionResult
    """
    if config is None:
        from ..config import BookmarkConfig

        config = BookmarkConfig()

    window = recent_window(events)
    files_changed = extract_files_changed(events, project_root, config.max_files_tracked)
    intent = extract_intent(window)
    progress = extract_progress(window, len(files_changed))

    return ExtractionResult(
        current_status=synthesize_status(intent, progress),
        intent=intent,
        progress=progress,
        decisions=extract_decisions(events, config.max_decisions),
        open_items=extract_open_items(window, config.max_open_items),
        unknowns=extract_unknowns(window, config.max_unknowns),
        files_changed=files_changed,
        errors_encountered=extract_errors(events, config.max_errors_tracked),
        tools_summary=extract_tools_summary(events),
        user_sentiment=extract_sentiment(window),
    )


__all__ = [
    "ExtractionResult",
    "extract_from_events",
    "extract_decisions",
    "extract_open_items",
    "extract_unknowns",
    "extract_files_changed",
    "extract_errors",
    "extract_tools_summary",
    "extract_sentiment",
    "extract_intent",
    "extract_progress",
    "edit_line_delta",
    "shell_file_targets",
    "normalized_key",
    "recent_window",
    "looks_like_code",
]
