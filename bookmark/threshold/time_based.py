"""
Time-based snapshot trigger.

Evaluated on demand from the per-turn hook; there is no background timer.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from ..schema import TriggerState


@dataclass
class TimeCheckResult:
    should_snapshot: bool
    elapsed_minutes: float
    interval_minutes: int
    reason: str | None = None


def check_time_interval(state: TriggerState, now: float | None = None) -> TimeCheckResult:
    """
    Check whether the snapshot interval has elapsed.

    A ``last_snapshot_time`` of 0 means no snapshot has been taken yet,
    so the very first check never fires.
    """
    now = time.time() if now is None else now
    interval = state.snapshot_interval_minutes
    last = state.last_snapshot_time

    elapsed_minutes = max(0.0, (now - last) / 60.0) if last > 0 else 0.0

    if last > 0 and interval > 0 and elapsed_minutes >= interval:
        return TimeCheckResult(
            should_snapshot=True,
            elapsed_minutes=elapsed_minutes,
            interval_minutes=interval,
            reason=f"{int(elapsed_minutes)}min since last snapshot (interval: {interval}min)",
        )

    return TimeCheckResult(
        should_snapshot=False,
        elapsed_minutes=elapsed_minutes,
        interval_minutes=interval,
    )


__all__ = ["TimeCheckResult", "check_time_interval"]
