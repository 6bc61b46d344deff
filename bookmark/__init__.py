"""Bookmark: context snapshots for Claude Code sessions.

Keeps working context alive across compactions and restarts:

- Transcript: parse the session JSONL, estimate usage, extract context
- Trigger: adaptive threshold and time interval, per-session state
- Snapshot: capture, store, compress to LATEST.md
- Restore: merge the snapshot chain into a short briefing
"""

__version__ = "0.1.0"

# Transcript Layer
from .transcript import (
    Event,
    EventKind,
    ExtractionResult,
    UsageEstimate,
    estimate_from_transcript,
    extract_from_events,
    parse_transcript,
    quick_estimate,
)

# Trigger Layer
from .threshold import evaluate_triggers, get_threshold, load_state, save_state

# Snapshot Layer
from .snapshot import SnapshotStore, capture_snapshot, compress_to_markdown
from .restore import RestoreFormat, RestoreResult, merge_snapshot_chain, restore_context
from .trails import write_trails

# Types & Config
from .config import BookmarkConfig, get_storage_path
from .schema import Snapshot, SnapshotTrigger, TriggerState

__all__ = [
    # Transcript
    "Event",
    "EventKind",
    "ExtractionResult",
    "UsageEstimate",
    "parse_transcript",
    "estimate_from_transcript",
    "quick_estimate",
    "extract_from_events",
    # Trigger
    "get_threshold",
    "evaluate_triggers",
    "load_state",
    "save_state",
    # Snapshot
    "SnapshotStore",
    "capture_snapshot",
    "compress_to_markdown",
    "RestoreFormat",
    "RestoreResult",
    "merge_snapshot_chain",
    "restore_context",
    "write_trails",
    # Types & Config
    "BookmarkConfig",
    "get_storage_path",
    "Snapshot",
    "SnapshotTrigger",
    "TriggerState",
]
