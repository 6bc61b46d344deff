"""Trigger Layer - adaptive threshold, time interval and session state."""

from .adaptive import TriggerDecision, evaluate_triggers, get_threshold, should_snapshot_by_threshold
from .state import apply_session_event, default_state, load_state, record_snapshot, save_state, touch
from .time_based import TimeCheckResult, check_time_interval

__all__ = [
    "get_threshold",
    "should_snapshot_by_threshold",
    "TriggerDecision",
    "evaluate_triggers",
    "TimeCheckResult",
    "check_time_interval",
    "default_state",
    "load_state",
    "save_state",
    "apply_session_event",
    "record_snapshot",
    "touch",
]
