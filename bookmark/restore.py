"""
Session-start restoration.

Picks what to hand back to a fresh session, in order of preference:

1. first-run notice when no snapshot exists yet
2. chain briefing when several linked snapshots exist (merged)
3. single-snapshot briefing
4. raw LATEST.md wrapped in a short header

Briefings are plain text sized to ``summary_token_budget``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Callable, Sequence

from .config import BookmarkConfig, get_storage_path
from .schema import (
    UNKNOWN,
    Decision,
    FileActivity,
    OpenItem,
    Sentiment,
    Snapshot,
    TriggerState,
)
from .snapshot.storage import SnapshotStore
from .threshold.state import apply_session_event, load_state, save_state
from .trails.reader import read_trailhead
from .trails.writer import relative_path
from .transcript.extractor import normalized_key

logger = logging.getLogger(__name__)

MAX_CHAIN_DECISIONS = 6
LINE_CHARS = 120

RESUME_GUIDANCE = (
    "Resume working on the task above. "
    "Do not re-read files you already modified unless the user asks."
)


class RestoreFormat(str, Enum):
    SYSTEM_MESSAGE = "system_message"
    MARKDOWN = "markdown"
    JSON = "json"
    TRAILHEAD = "trailhead"


@dataclass
class RestoreResult:
    """What restoration produced. ``message`` is None when nothing applies."""

    message: str | None = None
    kind: str = "none"
    state: TriggerState | None = None


@dataclass
class MergedContext:
    """A snapshot chain reconciled into one view."""

    intent: str = UNKNOWN
    progress: str = UNKNOWN
    sentiment: str = Sentiment.NEUTRAL.value
    files: list[FileActivity] = field(default_factory=list)
    decisions: list[Decision] = field(default_factory=list)
    open_items: list[OpenItem] = field(default_factory=list)
    compaction_cycle: int = 0
    project_path: str = ""
    oldest: float = 0.0
    newest: float = 0.0

    @property
    def total_lines(self) -> int:
        return sum(f.lines_changed for f in self.files)

    def is_empty(self) -> bool:
        return not (
            self.files or self.decisions or self.open_items
            or self.intent != UNKNOWN or self.progress != UNKNOWN
        )


@dataclass
class BriefingLimits:
    files: int
    decisions: int
    open_items: int


# Tried in order until the briefing fits the budget
LIMIT_LADDER = [
    BriefingLimits(files=10, decisions=6, open_items=4),
    BriefingLimits(files=5, decisions=4, open_items=3),
    BriefingLimits(files=3, decisions=2, open_items=2),
    BriefingLimits(files=0, decisions=0, open_items=1),
]


# -----------------------------------------------------------------------------
# Chain merge
# -----------------------------------------------------------------------------


def merge_snapshot_chain(chain: Sequence[Snapshot]) -> MergedContext:
    """
    Merge a chronological (oldest first) snapshot chain.

    - intent, progress: newest value that is not Unknown
    - sentiment: newest non-neutral value
    - files: union by path, operations unioned, lines summed
    - decisions: accumulated oldest first, deduplicated, capped
    - open items: newest snapshot only

    Raises:
        ValueError: If the chain is empty
    """
    if not chain:
        raise ValueError("Cannot merge an empty snapshot chain")

    latest = chain[-1]
    merged = MergedContext(
        open_items=list(latest.open_items),
        compaction_cycle=latest.compaction_cycle,
        project_path=latest.project_path,
        oldest=chain[0].timestamp,
        newest=latest.timestamp,
    )

    for snap in reversed(chain):
        if merged.intent == UNKNOWN and snap.intent and snap.intent != UNKNOWN:
            merged.intent = snap.intent
        if merged.progress == UNKNOWN and snap.progress and snap.progress != UNKNOWN:
            merged.progress = snap.progress
        if merged.sentiment == Sentiment.NEUTRAL.value and snap.user_sentiment != Sentiment.NEUTRAL.value:
            merged.sentiment = snap.user_sentiment

    by_path: dict[str, FileActivity] = {}
    for snap in chain:
        for f in snap.files_changed:
            existing = by_path.get(f.path)
            if existing is None:
                by_path[f.path] = f.model_copy(update={"operations": list(f.operations)})
                continue
            existing.operations = existing.operations + [
                op for op in f.operations if op not in existing.operations
            ]
            existing.lines_changed = existing.lines_changed + f.lines_changed
    merged.files = list(by_path.values())

    seen: set[str] = set()
    for snap in chain:
        for d in snap.decisions:
            key = normalized_key(d.description)
            if key in seen:
                continue
            seen.add(key)
            merged.decisions.append(d)
    merged.decisions = merged.decisions[:MAX_CHAIN_DECISIONS]

    return merged


def merged_from_snapshot(snapshot: Snapshot) -> MergedContext:
    """Single-snapshot view, files kept in their recorded order."""
    return MergedContext(
        intent=snapshot.intent,
        progress=snapshot.progress,
        sentiment=snapshot.user_sentiment,
        files=list(snapshot.files_changed),
        decisions=list(snapshot.decisions),
        open_items=list(snapshot.open_items),
        compaction_cycle=snapshot.compaction_cycle,
        project_path=snapshot.project_path,
        oldest=snapshot.timestamp,
        newest=snapshot.timestamp,
    )


# -----------------------------------------------------------------------------
# Briefings
# -----------------------------------------------------------------------------


def format_span(seconds: float) -> str:
    minutes = max(0, round(seconds / 60))
    if minutes > 60:
        hours, rest = divmod(minutes, 60)
        return f"{hours}h {rest}m"
    return f"{minutes}m"


def _clip(text: str, limit: int = LINE_CHARS) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _briefing_body(
    merged: MergedContext,
    limits: BriefingLimits,
    decisions_title: str,
    sort_files: bool,
) -> list[str]:
    lines: list[str] = []

    if merged.intent != UNKNOWN:
        lines.append(f"**User intent:** {merged.intent}")
    if merged.progress != UNKNOWN:
        lines.append(f"**Progress:** {merged.progress}")
    if merged.sentiment != Sentiment.NEUTRAL.value:
        lines.append(f"**User feedback:** {merged.sentiment}")
    lines.append("")

    if merged.files:
        files = merged.files
        if sort_files:
            files = sorted(files, key=lambda f: f.lines_changed, reverse=True)
        lines.append(f"**Files modified:** {len(files)} files (~{merged.total_lines} lines total)")
        for f in files[: limits.files]:
            lc = f" ~{f.lines_changed}L" if f.lines_changed else ""
            path = relative_path(f.path, merged.project_path)
            lines.append(f"- `{path}` ({'/'.join(f.operations)}{lc})")
        if len(files) > limits.files:
            lines.append(f"- ...+{len(files) - limits.files} more")
        lines.append("")

    if merged.decisions and limits.decisions:
        lines.append(decisions_title)
        for d in merged.decisions[: limits.decisions]:
            lines.append(f"- {_clip(d.description)}")
        lines.append("")

    if merged.open_items and limits.open_items:
        lines.append("**Remaining:**")
        for item in merged.open_items[: limits.open_items]:
            lines.append(f"- {_clip(item.description)}")
        lines.append("")

    return lines


def fit_to_budget(render: Callable[[BriefingLimits], str], budget_chars: int) -> str:
    """Render with progressively tighter limits until the text fits."""
    text = ""
    for limits in LIMIT_LADDER:
        text = render(limits)
        if len(text) <= budget_chars:
            return text
    # Still over budget: keep the head and the closing guidance
    tail = "\n...\n\n" + RESUME_GUIDANCE
    keep = max(0, budget_chars - len(tail))
    return text[:keep].rstrip() + tail


def build_chain_restoration(
    merged: MergedContext,
    chain_length: int,
    snapshot_count: int,
    budget_chars: int = 2400,
) -> str:
    """Briefing for a merged chain of ``chain_length`` snapshots."""
    span = format_span(merged.newest - merged.oldest)

    def render(limits: BriefingLimits) -> str:
        lines = [f"[Bookmark: Context recovered - {chain_length} snapshots merged across {span}]", ""]
        lines += _briefing_body(merged, limits, "**Key decisions (across session):**", sort_files=True)
        if merged.compaction_cycle > 0:
            lines.append(
                f"> Compaction cycle {merged.compaction_cycle} - context compressed "
                f"{merged.compaction_cycle} time(s), this merges all recovered state."
            )
        if snapshot_count > chain_length:
            lines.append(f"> {snapshot_count} total snapshots. Run `bookmark list` for full history.")
        lines.append("")
        lines.append(RESUME_GUIDANCE)
        return "\n".join(lines)

    return fit_to_budget(render, budget_chars)


def build_smart_restoration(snapshot: Snapshot, snapshot_count: int, budget_chars: int = 2400) -> str:
    """Briefing for a single snapshot: intent, progress, changes, what's next."""
    merged = merged_from_snapshot(snapshot)

    def render(limits: BriefingLimits) -> str:
        single = replace(limits, files=min(limits.files, 8), decisions=min(limits.decisions, 4))
        lines = ["[Bookmark: Context recovered - pick up where you left off]", ""]
        lines += _briefing_body(merged, single, "**Key decisions:**", sort_files=False)
        if snapshot.compaction_cycle > 0:
            lines.append(
                f"> Compaction cycle {snapshot.compaction_cycle} - context was compressed, "
                "this is the recovered state."
            )
        if snapshot_count > 1:
            lines.append(f"> {snapshot_count} snapshots in history. Run `bookmark list` for the full chain.")
        lines.append("")
        lines.append(RESUME_GUIDANCE)
        return "\n".join(lines)

    return fit_to_budget(render, budget_chars)


def build_fallback_restoration(latest_md: str, snapshot_count: int) -> str:
    lines = ["[Bookmark: Context recovered from previous session]", "", latest_md]
    if snapshot_count > 1:
        lines.append("")
        lines.append(f"> {snapshot_count} snapshots available. Run `bookmark list` for history.")
    return "\n".join(lines)


def first_run_notice(config: BookmarkConfig) -> str:
    return (
        "[Bookmark: Active - no snapshots yet. Snapshots will be captured automatically "
        f"before compaction, on {config.interval_minutes}-minute intervals, and at session end.]\n\n"
        "Briefly let the user know that Bookmark is active and will start capturing "
        "context snapshots automatically."
    )


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------


def build_system_message(store: SnapshotStore, config: BookmarkConfig) -> RestoreResult:
    """Chain, single or fallback restoration from what is on disk."""
    count = store.count()
    budget_chars = config.summary_token_budget * config.chars_per_token

    chain = store.load_chain(config.chain_max_length)
    if len(chain) > 1:
        merged = merge_snapshot_chain(chain)
        if not merged.is_empty():
            return RestoreResult(
                message=build_chain_restoration(merged, len(chain), count, budget_chars),
                kind="chain",
            )
    elif chain and chain[0].has_content():
        return RestoreResult(message=build_smart_restoration(chain[0], count, budget_chars), kind="single")

    latest_md = store.read_latest()
    if latest_md:
        return RestoreResult(message=build_fallback_restoration(latest_md, count), kind="fallback")
    return RestoreResult()


def restore_context(
    cwd: str | Path,
    source: str = "startup",
    session_id: str | None = None,
    output_format: RestoreFormat | str = RestoreFormat.SYSTEM_MESSAGE,
    config: BookmarkConfig | None = None,
    now: float | None = None,
) -> RestoreResult:
    """
    Apply the session transition and build the restoration payload.

    Args:
        cwd: Project root
        source: Session start source (startup, resume, compact, clear)
        session_id: Host session id
        output_format: One of system_message, markdown, json, trailhead
        config: Loaded config (loaded from ``cwd`` if None)
        now: Current epoch seconds

    Returns:
        RestoreResult; ``message`` is None when nothing should be injected
    """
    now = time.time() if now is None else now
    config = config or BookmarkConfig.load(cwd)
    root = get_storage_path(cwd, config)
    store = SnapshotStore(root, max_active=config.max_active_snapshots)

    state = apply_session_event(load_state(root, config), source, session_id, config, now)
    save_state(root, state)

    if not config.restore_on_session_start:
        return RestoreResult(state=state)
    # On resume the context is still intact
    if source == "resume":
        return RestoreResult(state=state)

    if store.count() == 0:
        return RestoreResult(message=first_run_notice(config), kind="first_run", state=state)

    fmt = RestoreFormat(output_format)
    if fmt is RestoreFormat.MARKDOWN:
        result = RestoreResult(message=store.read_latest(), kind="markdown")
    elif fmt is RestoreFormat.JSON:
        latest = store.load_latest()
        result = RestoreResult(
            message=latest.model_dump_json(indent=2) if latest else None,
            kind="json",
        )
    elif fmt is RestoreFormat.TRAILHEAD:
        trailhead = read_trailhead(root)
        result = RestoreResult(message=trailhead, kind="trailhead") if trailhead else build_system_message(store, config)
    else:
        result = build_system_message(store, config)

    result.state = state
    if result.message is None:
        result.kind = "none"
    logger.debug(f"Restore ({source}): {result.kind}")
    return result


__all__ = [
    "RestoreFormat",
    "RestoreResult",
    "MergedContext",
    "merge_snapshot_chain",
    "build_chain_restoration",
    "build_smart_restoration",
    "build_fallback_restoration",
    "build_system_message",
    "first_run_notice",
    "restore_context",
]
