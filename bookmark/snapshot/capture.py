"""
Snapshot capture pipeline.

1. Parse the transcript from where the previous capture stopped
2. Estimate token usage
3. Extract decisions/status/files/errors
4. Optionally enhance (LLM strategy)
5. Build and store the snapshot, update the catalog
6. Regenerate LATEST.md and the trails when there is something to restore
7. Stamp trigger state
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path

from ..config import BookmarkConfig, get_storage_path
from ..schema import Snapshot, SnapshotTrigger, TriggerState
from ..threshold.state import load_state, record_snapshot, save_state
from ..trails.writer import write_trails
from ..transcript.estimator import estimate_from_events, estimate_from_transcript
from ..transcript.extractor import extract_from_events
from ..transcript.parser import ParseResult, parse_transcript
from .compress import compress_to_markdown
from .enhance import Enhancer, select_enhancer
from .storage import SnapshotStore

logger = logging.getLogger(__name__)


def _parse_new_records(transcript_path: str | Path | None, state: TriggerState) -> tuple[ParseResult, int]:
    """
    Parse the part of the transcript not covered by an earlier snapshot.

    Returns:
        The parse result and the offset it started from. A different
        transcript, or one shorter than the stored offset, is read from
        the beginning.
    """
    if not transcript_path:
        return ParseResult(), 0

    start = state.transcript_offset if state.transcript_path == str(transcript_path) else 0
    parsed = parse_transcript(transcript_path, start_offset=start)
    if start > parsed.total_bytes:
        logger.debug(f"Transcript {transcript_path} shrank below offset {start}; reading from the start")
        start = 0
        parsed = parse_transcript(transcript_path)
    return parsed, start


@dataclass
class CaptureResult:
    snapshot: Snapshot
    state: TriggerState
    path: Path
    restoration_updated: bool = False


def capture_snapshot(
    trigger: SnapshotTrigger,
    cwd: str | Path,
    transcript_path: str | Path | None = None,
    session_id: str | None = None,
    config: BookmarkConfig | None = None,
    state: TriggerState | None = None,
    smart: bool | None = None,
    enhancer: Enhancer | None = None,
    now: float | None = None,
) -> CaptureResult:
    """
    Capture, store and index a snapshot of the current session.

    Args:
        trigger: What caused this capture
        cwd: Project root; file activity outside it is ignored
        transcript_path: JSONL transcript (no transcript => empty extraction).
            Only records after the state's stored offset are extracted, so
            snapshots in a chain cover disjoint slices.
        session_id: Host session id (falls back to the state's)
        config: Loaded config (loaded from ``cwd`` if None)
        state: Current trigger state (loaded from storage if None)
        smart: Force the LLM enhancer on/off (config default if None)
        enhancer: Explicit enhancement strategy, overrides ``smart``
        now: Capture time in epoch seconds

    Returns:
        CaptureResult with the stored snapshot and the updated state,
        which has already been saved.
    """
    now = time.time() if now is None else now
    trigger = SnapshotTrigger(trigger)
    config = config or BookmarkConfig.load(cwd)
    root = get_storage_path(cwd, config)
    store = SnapshotStore(root, max_active=config.max_active_snapshots)
    state = state if state is not None else load_state(root, config)

    parsed, start = _parse_new_records(transcript_path, state)
    events = parsed.events
    if start > 0:
        estimate = estimate_from_transcript(transcript_path, config.context_limit_tokens, config.chars_per_token)
    else:
        estimate = estimate_from_events(events, config.context_limit_tokens, config.chars_per_token)

    extraction = extract_from_events(events, config, project_root=str(cwd))
    enhancer = enhancer or select_enhancer(config, smart)
    extraction = enhancer.enhance(extraction, events)

    prior = store.load_latest()
    snapshot = Snapshot(
        snapshot_id=store.allocate_id(now),
        timestamp=now,
        session_id=session_id or state.session_id or "unknown",
        project_path=str(cwd),
        trigger=trigger,
        compaction_cycle=state.compaction_count,
        context_remaining_pct=estimate.remaining_fraction,
        token_estimate=estimate.total_tokens,
        intent=extraction.intent,
        progress=extraction.progress,
        current_status=extraction.current_status,
        decisions=extraction.decisions,
        open_items=extraction.open_items,
        unknowns=extraction.unknowns,
        files_changed=extraction.files_changed,
        errors_encountered=extraction.errors_encountered,
        tools_summary=extraction.tools_summary,
        user_sentiment=extraction.user_sentiment,
        prior_snapshot_id=prior.snapshot_id if prior else None,
    )
    path = store.save(snapshot)

    # An empty post-compaction capture must not clobber the last useful digest
    restoration_updated = snapshot.has_content() or trigger is SnapshotTrigger.MANUAL
    if restoration_updated:
        store.write_latest(compress_to_markdown(snapshot))
        write_trails(root, snapshot)
    else:
        logger.debug(f"Snapshot {snapshot.snapshot_id} has no content; LATEST.md left as is")

    if transcript_path:
        state = record_snapshot(state, now, transcript_path, parsed.bytes_read)
    else:
        state = record_snapshot(state, now)
    save_state(root, state)

    logger.debug(
        f"Captured {snapshot.snapshot_id} ({trigger.value}): "
        f"{len(snapshot.decisions)} decisions, {len(snapshot.files_changed)} files, "
        f"{snapshot.context_remaining_pct:.0%} context remaining"
    )
    return CaptureResult(snapshot=snapshot, state=state, path=path, restoration_updated=restoration_updated)


__all__ = ["CaptureResult", "capture_snapshot"]
