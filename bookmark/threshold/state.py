"""
Trigger bookkeeping persisted as <storage>/state.json.

State is passed explicitly: load once, transform with the functions
below, save once at the end of the invocation.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from ..persistence import atomic_write_text, read_json
from ..schema import SessionEntry, TriggerState
from .adaptive import get_threshold

if TYPE_CHECKING:
    from ..config import BookmarkConfig

logger = logging.getLogger(__name__)

STATE_FILE = "state.json"
MAX_SESSION_HISTORY = 10

NEW_SESSION_SOURCES = ("startup", "clear")


def get_state_path(storage_root: Path) -> Path:
    return storage_root / STATE_FILE


def default_state(config: "BookmarkConfig | None" = None) -> TriggerState:
    if config is None:
        return TriggerState()
    return TriggerState(
        current_threshold=get_threshold(0, config.thresholds, config.max_threshold),
        snapshot_interval_minutes=config.interval_minutes,
    )


def load_state(storage_root: Path, config: "BookmarkConfig | None" = None) -> TriggerState:
    """
    Load trigger state, falling back to defaults.

    A missing or corrupt state file yields a fresh default state. The
    configured interval always wins over the persisted one.
    """
    data = read_json(get_state_path(storage_root))
    state = default_state(config)
    if isinstance(data, dict):
        try:
            state = TriggerState.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Discarding invalid state file: {e}")

    if config is not None:
        state.snapshot_interval_minutes = config.interval_minutes
    return state


def save_state(storage_root: Path, state: TriggerState) -> None:
    atomic_write_text(get_state_path(storage_root), state.model_dump_json(indent=2))


def _archive_current_session(state: TriggerState, now: float) -> list[SessionEntry]:
    history = list(state.session_history)
    if state.session_id:
        history.insert(0, SessionEntry(
            session_id=state.session_id,
            started=state.session_started or state.last_event_time or now,
            ended=now,
            compaction_count=state.compaction_count,
            snapshots_taken=state.snapshots_this_session,
        ))
    return history[:MAX_SESSION_HISTORY]


def apply_session_event(
    state: TriggerState,
    source: str,
    session_id: str | None,
    config: "BookmarkConfig",
    now: float | None = None,
) -> TriggerState:
    """
    Apply a session lifecycle transition.

    Args:
        state: Current state (not modified)
        source: One of startup, clear, compact, resume
        session_id: Session id reported by the host, if any
        config: Supplies threshold levels
        now: Current epoch seconds

    Returns:
        The next state
    """
    now = time.time() if now is None else now
    new_state = state.model_copy(deep=True)

    if source in NEW_SESSION_SOURCES:
        new_state.session_history = _archive_current_session(state, now)
        new_state.session_id = session_id or f"session_{int(now * 1000)}"
        new_state.session_started = now
        new_state.compaction_count = 0
        new_state.snapshots_this_session = 0
        new_state.current_threshold = get_threshold(0, config.thresholds, config.max_threshold)
        new_state.transcript_path = ""
        new_state.transcript_offset = 0

    elif source == "compact":
        new_state.compaction_count = state.compaction_count + 1
        new_state.current_threshold = get_threshold(
            new_state.compaction_count, config.thresholds, config.max_threshold
        )
        if session_id:
            new_state.session_id = session_id

    elif source != "resume":
        logger.debug(f"Unknown session source {source!r}, refreshing timestamps only")

    new_state.last_event_time = now
    return new_state


def record_snapshot(
    state: TriggerState,
    now: float | None = None,
    transcript_path: str | Path | None = None,
    transcript_offset: int | None = None,
) -> TriggerState:
    """Stamp a completed capture and the transcript position it reached."""
    now = time.time() if now is None else now
    update = {
        "last_snapshot_time": now,
        "last_event_time": now,
        "snapshots_this_session": state.snapshots_this_session + 1,
    }
    if transcript_path is not None and transcript_offset is not None:
        update["transcript_path"] = str(transcript_path)
        update["transcript_offset"] = transcript_offset
    return state.model_copy(update=update)


def touch(state: TriggerState, now: float | None = None) -> TriggerState:
    now = time.time() if now is None else now
    return state.model_copy(update={"last_event_time": now})


__all__ = [
    "STATE_FILE",
    "MAX_SESSION_HISTORY",
    "get_state_path",
    "default_state",
    "load_state",
    "save_state",
    "apply_session_event",
    "record_snapshot",
    "touch",
]
