"""
Hook entry points.

Claude Code hooks pass JSON on stdin:
    {"session_id": ..., "transcript_path": ..., "cwd": ...,
     "hook_event_name": ..., "source": ..., "trigger": ...}

Wiring:
    PreCompact        -> run_snapshot(trigger=pre_compact)
    SessionEnd        -> run_snapshot(trigger=session_end)
    SessionStart      -> run_restore
    UserPromptSubmit  -> run_check

None of these ever raise: a failure is logged and degrades to a no-op
so the host session is never disrupted.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from pathlib import Path
from typing import IO, Any

from .config import BookmarkConfig, get_storage_path
from .restore import RestoreFormat, restore_context
from .schema import SnapshotTrigger
from .snapshot.capture import CaptureResult, capture_snapshot
from .threshold.adaptive import evaluate_triggers
from .threshold.state import load_state, save_state, touch
from .transcript.estimator import quick_estimate
from .transcript.parser import find_transcript_path

logger = logging.getLogger(__name__)


def read_hook_input(stream: IO[str] | None = None) -> dict[str, Any]:
    """Read hook input from stdin (JSON format per Claude Code docs)."""
    stream = stream or sys.stdin
    try:
        if stream.isatty():
            return {}
        data = stream.read()
        if data and data.strip():
            parsed = json.loads(data)
            return parsed if isinstance(parsed, dict) else {}
    except (json.JSONDecodeError, OSError, ValueError) as e:
        logger.debug(f"Ignoring unreadable hook input: {e}")
    return {}


def _resolve_cwd(hook_input: dict[str, Any], cwd: str | Path | None) -> Path:
    return Path(cwd or hook_input.get("cwd") or os.environ.get("CLAUDE_CWD") or os.getcwd())


def _resolve_transcript(
    hook_input: dict[str, Any],
    cwd: Path,
    transcript_path: str | Path | None,
    session_id: str | None,
) -> Path | None:
    explicit = transcript_path or hook_input.get("transcript_path")
    if explicit:
        return Path(explicit)
    return find_transcript_path(str(cwd), session_id)


def run_snapshot(
    hook_input: dict[str, Any],
    trigger: SnapshotTrigger | str = SnapshotTrigger.MANUAL,
    cwd: str | Path | None = None,
    transcript_path: str | Path | None = None,
    session_id: str | None = None,
    smart: bool | None = None,
) -> CaptureResult | None:
    """
    Capture a snapshot (PreCompact, SessionEnd, or manual).

    Returns:
        CaptureResult, or None if nothing was captured
    """
    try:
        trigger = SnapshotTrigger(trigger)
        project = _resolve_cwd(hook_input, cwd)
        config = BookmarkConfig.load(project)

        if trigger is SnapshotTrigger.SESSION_END and not config.snapshot_on_session_end:
            logger.debug("Session-end snapshots disabled")
            return None

        session_id = session_id or hook_input.get("session_id")
        transcript = _resolve_transcript(hook_input, project, transcript_path, session_id)
        if transcript is None or not transcript.exists():
            logger.warning("No transcript found; snapshot skipped")
            return None

        return capture_snapshot(
            trigger=trigger,
            cwd=project,
            transcript_path=transcript,
            session_id=session_id,
            config=config,
            smart=smart,
        )
    except Exception as e:
        logger.warning(f"Snapshot failed: {e}")
        logger.debug("Snapshot failure details", exc_info=True)
        return None


def run_restore(
    hook_input: dict[str, Any],
    source: str | None = None,
    cwd: str | Path | None = None,
    output_format: RestoreFormat | str = RestoreFormat.SYSTEM_MESSAGE,
) -> str | None:
    """
    Build the SessionStart restoration text.

    Returns:
        Text for the host to inject, or None
    """
    try:
        project = _resolve_cwd(hook_input, cwd)
        result = restore_context(
            cwd=project,
            source=source or hook_input.get("source") or "startup",
            session_id=hook_input.get("session_id"),
            output_format=output_format,
        )
        return result.message
    except Exception as e:
        logger.warning(f"Restore failed: {e}")
        logger.debug("Restore failure details", exc_info=True)
        return None


def run_check(
    hook_input: dict[str, Any],
    cwd: str | Path | None = None,
    transcript_path: str | Path | None = None,
    now: float | None = None,
) -> CaptureResult | None:
    """
    Per-turn trigger check (UserPromptSubmit).

    Runs the time evaluator, then the threshold evaluator on the quick
    file-size estimate, and captures at most once. ``last_event_time`` is
    stamped whether or not a capture happened.

    Returns:
        CaptureResult if a snapshot was captured, else None
    """
    try:
        now = time.time() if now is None else now
        project = _resolve_cwd(hook_input, cwd)
        config = BookmarkConfig.load(project)
        root = get_storage_path(project, config)
        session_id = hook_input.get("session_id")

        state = load_state(root, config)
        if session_id and not state.session_id:
            state.session_id = session_id

        transcript = _resolve_transcript(hook_input, project, transcript_path, session_id)
        estimate = quick_estimate(transcript, config.context_limit_tokens, config.chars_per_token)
        decision = evaluate_triggers(state, estimate.remaining_fraction, now)

        result = None
        if decision.should_capture and transcript is not None and transcript.exists():
            result = capture_snapshot(
                trigger=SnapshotTrigger.TIME_INTERVAL,
                cwd=project,
                transcript_path=transcript,
                session_id=session_id,
                config=config,
                state=state,
                now=now,
            )
            state = result.state
            logger.info(f"Auto-snapshot {result.snapshot.snapshot_id} ({decision.reason})")

        save_state(root, touch(state, now))
        return result
    except Exception as e:
        logger.warning(f"Check failed: {e}")
        logger.debug("Check failure details", exc_info=True)
        return None


__all__ = ["read_hook_input", "run_snapshot", "run_restore", "run_check"]
