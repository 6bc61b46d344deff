"""
Trail-routed memory writer.

Two tiers of context:
1. CONTEXT.md - trailhead, small enough to inject on every restore
2. trails/ - detail files the assistant can read when it needs more

Each capture updates the trails incrementally:
- decisions are appended; a newer decision on the same topic marks the
  older active one superseded instead of deleting it
- files are merged by project-relative path
- CONTEXT.md is rewritten from the snapshot plus routing pointers
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from ..persistence import atomic_write_text
from ..schema import (
    UNKNOWN,
    DecisionTrail,
    FileActivity,
    FileTrail,
    Sentiment,
    Snapshot,
    TrailDecision,
    TrailStatus,
)
from ..transcript.extractor import normalized_key
from .reader import (
    CONTEXT_FILE,
    DECISIONS_JSON,
    DECISIONS_MD,
    FILES_JSON,
    FILES_MD,
    load_decision_trail,
    load_file_trail,
)

logger = logging.getLogger(__name__)

TOPIC_WORDS = 4
TRAILHEAD_OPEN_ITEMS = 4

STOP_WORDS = frozenset({
    "the", "a", "an", "is", "are", "was", "were", "to", "for", "of",
    "in", "on", "at", "by", "with", "from", "that", "this", "it",
    "and", "or", "but", "not", "be", "has", "have", "had", "do", "does",
    "use", "using", "used",
})


@dataclass
class TrailStats:
    active_decisions: int = 0
    superseded_decisions: int = 0
    file_count: int = 0
    total_lines: int = 0


def derive_topic(description: str) -> str:
    """
    Topic key for same-topic supersession.

    First four significant words (longer than two characters, not stop
    words), lowercased, joined with underscores; ``misc`` if none.
    """
    cleaned = re.sub(r"[^a-z0-9\s]", "", description.lower())
    words = [w for w in cleaned.split() if len(w) > 2 and w not in STOP_WORDS]
    return "_".join(words[:TOPIC_WORDS]) or "misc"


def _stamp(timestamp: float | None) -> str:
    if not timestamp:
        return ""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%dT%H:%MZ")


def relative_path(path: str, project_path: str) -> str:
    """Project-relative form of ``path`` when it lies inside the project."""
    if project_path and os.path.isabs(path):
        root = os.path.normpath(project_path)
        normalized = os.path.normpath(path)
        if normalized == root or normalized.startswith(root + os.sep):
            return os.path.relpath(normalized, root)
    return path


# -----------------------------------------------------------------------------
# Decision trail
# -----------------------------------------------------------------------------


def merge_decisions(trail: DecisionTrail, snapshot: Snapshot) -> DecisionTrail:
    """
    Fold a snapshot's decisions into the trail.

    A decision already in the trail (same 60-character case-folded
    prefix) is not added again. A new decision supersedes the active
    entry sharing its topic.
    """
    entries = [d.model_copy() for d in trail.decisions]
    known = {normalized_key(d.description) for d in entries}

    for decision in snapshot.decisions:
        key = normalized_key(decision.description)
        if key in known:
            continue
        known.add(key)

        topic = derive_topic(decision.description)
        for existing in entries:
            if existing.topic == topic and existing.status == TrailStatus.ACTIVE.value:
                existing.status = TrailStatus.SUPERSEDED.value
                existing.superseded_by = snapshot.timestamp

        entries.append(TrailDecision(
            timestamp=snapshot.timestamp,
            topic=topic,
            description=decision.description,
            rationale=decision.rationale,
        ))

    return DecisionTrail(decisions=entries)


def render_decision_trail(trail: DecisionTrail) -> str:
    active = [d for d in trail.decisions if d.status == TrailStatus.ACTIVE.value]
    superseded = [d for d in trail.decisions if d.status == TrailStatus.SUPERSEDED.value]

    lines = [
        "# Decision Trail",
        "> Newer decisions override older ones on the same topic. Superseded entries are kept for context.",
        "",
    ]
    if active:
        lines.append("## Active")
        for d in active:
            lines.append("")
            lines.append(f"### [{_stamp(d.timestamp)}] {d.description[:100]}")
            if d.rationale:
                lines.append(f"Rationale: {d.rationale[:150]}")
        lines.append("")
    if superseded:
        lines.append("## Superseded")
        for d in superseded:
            lines.append(f"- ~~{d.description[:80]}~~ (replaced {_stamp(d.superseded_by)})")
        lines.append("")
    return "\n".join(lines)


# -----------------------------------------------------------------------------
# File trail
# -----------------------------------------------------------------------------


def merge_files(trail: FileTrail, snapshot: Snapshot) -> FileTrail:
    """
    Fold a snapshot's file activity into the trail.

    Line counts take the max, not the sum: successive captures of the
    same transcript report cumulative totals.
    """
    by_path: dict[str, FileActivity] = {f.path: f.model_copy() for f in trail.files}

    for activity in snapshot.files_changed:
        path = relative_path(activity.path, snapshot.project_path)
        existing = by_path.get(path)
        if existing is None:
            by_path[path] = FileActivity(
                path=path,
                operations=list(activity.operations),
                lines_changed=activity.lines_changed,
            )
            continue
        existing.operations = existing.operations + [
            op for op in activity.operations if op not in existing.operations
        ]
        existing.lines_changed = max(existing.lines_changed, activity.lines_changed)

    files = sorted(by_path.values(), key=lambda f: f.lines_changed, reverse=True)
    return FileTrail(files=files)


def render_file_trail(trail: FileTrail) -> str:
    total = sum(f.lines_changed for f in trail.files)
    lines = [
        "# File Trail",
        f"> {len(trail.files)} files, ~{total} lines changed total",
        "",
    ]
    for f in trail.files:
        lc = f" ~{f.lines_changed}L" if f.lines_changed else ""
        lines.append(f"- `{f.path}` ({'/'.join(f.operations)}{lc})")
    return "\n".join(lines)


# -----------------------------------------------------------------------------
# Trailhead
# -----------------------------------------------------------------------------


def render_trailhead(snapshot: Snapshot, trails_dir: Path, stats: TrailStats) -> str:
    """CONTEXT.md: current state plus pointers into the trail files."""
    project_name = Path(snapshot.project_path).name or "project"
    lines = [
        f"[Bookmark Context - {project_name}]",
        f"> Updated: {_stamp(snapshot.timestamp)} | Cycle: {snapshot.compaction_cycle}",
        "",
    ]

    if snapshot.intent != UNKNOWN:
        lines.append(f"**Intent:** {snapshot.intent}")
    if snapshot.progress != UNKNOWN:
        lines.append(f"**Progress:** {snapshot.progress}")
    if snapshot.user_sentiment != Sentiment.NEUTRAL.value:
        lines.append(f"**User feedback:** {snapshot.user_sentiment}")
    lines.append("")

    lines.append("**Trails** (use the Read tool if you need more detail):")
    if stats.active_decisions:
        superseded = f", {stats.superseded_decisions} superseded" if stats.superseded_decisions else ""
        lines.append(
            f"- `{trails_dir / DECISIONS_MD}`: {stats.active_decisions} active decisions{superseded}"
        )
    if stats.file_count:
        lines.append(
            f"- `{trails_dir / FILES_MD}`: {stats.file_count} files, ~{stats.total_lines} lines changed"
        )
    lines.append("")

    if snapshot.open_items:
        lines.append("**Remaining:**")
        for item in snapshot.open_items[:TRAILHEAD_OPEN_ITEMS]:
            lines.append(f"- {item.description[:120]}")
        lines.append("")

    lines.append("Resume the task above. Follow trail links only if you need specifics.")
    return "\n".join(lines)


def write_trails(storage_root: Path, snapshot: Snapshot) -> TrailStats:
    """
    Update the decision and file trails, then rewrite CONTEXT.md.

    Args:
        storage_root: Bookmark storage root
        snapshot: The snapshot just captured

    Returns:
        TrailStats describing the updated trails
    """
    trails_dir = storage_root / "trails"
    trails_dir.mkdir(parents=True, exist_ok=True)

    decisions = merge_decisions(load_decision_trail(storage_root), snapshot)
    atomic_write_text(trails_dir / DECISIONS_JSON, decisions.model_dump_json(indent=2))
    atomic_write_text(trails_dir / DECISIONS_MD, render_decision_trail(decisions))

    files = merge_files(load_file_trail(storage_root), snapshot)
    atomic_write_text(trails_dir / FILES_JSON, files.model_dump_json(indent=2))
    atomic_write_text(trails_dir / FILES_MD, render_file_trail(files))

    stats = TrailStats(
        active_decisions=sum(1 for d in decisions.decisions if d.status == TrailStatus.ACTIVE.value),
        superseded_decisions=sum(1 for d in decisions.decisions if d.status == TrailStatus.SUPERSEDED.value),
        file_count=len(files.files),
        total_lines=sum(f.lines_changed for f in files.files),
    )

    # Trailhead last: it points at the trail files above
    atomic_write_text(storage_root / CONTEXT_FILE, render_trailhead(snapshot, trails_dir, stats))
    logger.debug(
        f"Trails updated: {stats.active_decisions} active decisions, {stats.file_count} files"
    )
    return stats


__all__ = [
    "TrailStats",
    "derive_topic",
    "relative_path",
    "merge_decisions",
    "merge_files",
    "render_decision_trail",
    "render_file_trail",
    "render_trailhead",
    "write_trails",
]
