"""
Render a snapshot as LATEST.md.

LATEST.md is the hot restoration tier, so it stays well under
1000 tokens: every section is capped.
"""

from __future__ import annotations

from datetime import datetime, timezone

from ..schema import NO_STATUS, Priority, Snapshot

MAX_DECISIONS = 8
MAX_FILES = 12
MAX_OPEN_ITEMS = 8
MAX_UNKNOWNS = 5
MAX_ERRORS = 3
MAX_TOOLS = 5

PRIORITY_TAGS = {
    Priority.HIGH.value: " [HIGH]",
    Priority.MEDIUM.value: " [MED]",
}


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def compress_to_markdown(snapshot: Snapshot) -> str:
    """Compact markdown digest of one snapshot."""
    lines: list[str] = []

    updated = datetime.fromtimestamp(snapshot.timestamp, tz=timezone.utc).isoformat(timespec="seconds")
    lines.append(f"# Session Context - Last Updated {updated}")
    lines.append("")
    lines.append(
        f"> Snapshot: {snapshot.snapshot_id} | Compaction cycle: {snapshot.compaction_cycle}"
        f" | Trigger: {snapshot.trigger}"
    )
    lines.append(
        f"> Context remaining: {round(snapshot.context_remaining_pct * 100)}%"
        f" (~{snapshot.token_estimate:,} tokens used)"
    )
    lines.append("")

    if snapshot.current_status and snapshot.current_status != NO_STATUS:
        lines.append("## Current Status")
        lines.append(truncate(snapshot.current_status, 300))
        lines.append("")

    if snapshot.decisions:
        lines.append("## Decisions Made")
        for d in snapshot.decisions[:MAX_DECISIONS]:
            rationale = f" ({truncate(d.rationale, 80)})" if d.rationale else ""
            lines.append(f"- {truncate(d.description, 150)}{rationale}")
        if len(snapshot.decisions) > MAX_DECISIONS:
            lines.append(f"- ...and {len(snapshot.decisions) - MAX_DECISIONS} more")
        lines.append("")

    if snapshot.files_changed:
        lines.append("## Files Changed This Session")
        for f in snapshot.files_changed[:MAX_FILES]:
            lines.append(f"- `{f.path}` ({', '.join(f.operations)})")
        if len(snapshot.files_changed) > MAX_FILES:
            lines.append(f"- ...and {len(snapshot.files_changed) - MAX_FILES} more files")
        lines.append("")

    if snapshot.open_items:
        lines.append("## Open Items")
        for item in snapshot.open_items[:MAX_OPEN_ITEMS]:
            tag = PRIORITY_TAGS.get(item.priority, "")
            lines.append(f"- [ ] {truncate(item.description, 150)}{tag}")
        if len(snapshot.open_items) > MAX_OPEN_ITEMS:
            lines.append(f"- ...and {len(snapshot.open_items) - MAX_OPEN_ITEMS} more")
        lines.append("")

    if snapshot.unknowns:
        lines.append("## Unknowns / Blockers")
        for u in snapshot.unknowns[:MAX_UNKNOWNS]:
            lines.append(f"- {truncate(u, 150)}")
        lines.append("")

    unresolved = [e for e in snapshot.errors_encountered if not e.resolved]
    if unresolved:
        lines.append("## Unresolved Errors")
        for e in unresolved[:MAX_ERRORS]:
            tool = f" ({e.tool})" if e.tool else ""
            lines.append(f"- {truncate(e.message, 150)}{tool}")
        lines.append("")

    if snapshot.tools_summary:
        top = sorted(snapshot.tools_summary.items(), key=lambda kv: kv[1], reverse=True)[:MAX_TOOLS]
        lines.append("> Tool usage: " + ", ".join(f"{tool}: {count}" for tool, count in top))
        lines.append("")

    lines.append("*bookmark - context snapshot*")
    return "\n".join(lines)


__all__ = ["compress_to_markdown", "truncate"]
