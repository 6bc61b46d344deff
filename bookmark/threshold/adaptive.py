"""
Adaptive context threshold.

The more often a session has been compacted, the earlier we snapshot:

- 0 compactions: snapshot when 20% of context remains
- 1 compaction:  30%
- 2 compactions: 40%
- beyond the last level: stays on the last level, capped at max_threshold
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Sequence

from ..config import DEFAULT_THRESHOLDS
from ..schema import TriggerState
from .time_based import check_time_interval


def get_threshold(
    compaction_count: int,
    thresholds: Sequence[float] = DEFAULT_THRESHOLDS,
    max_threshold: float = 0.60,
) -> float:
    """
    Remaining-context fraction at or below which a snapshot is due.

    Args:
        compaction_count: Compactions so far in this session lineage
        thresholds: Ascending threshold levels
        max_threshold: Overall cap

    Returns:
        thresholds[min(count, len - 1)], clamped to max_threshold
    """
    levels = list(thresholds) or list(DEFAULT_THRESHOLDS)
    index = min(max(compaction_count, 0), len(levels) - 1)
    return min(levels[index], max_threshold)


def should_snapshot_by_threshold(remaining_fraction: float, current_threshold: float) -> bool:
    return remaining_fraction <= current_threshold


@dataclass
class TriggerDecision:
    """Outcome of running both trigger evaluators once."""

    should_capture: bool = False
    time_fired: bool = False
    threshold_fired: bool = False
    reason: str | None = None


def evaluate_triggers(
    state: TriggerState,
    remaining_fraction: float,
    now: float | None = None,
) -> TriggerDecision:
    """
    Run the time evaluator, then the threshold evaluator.

    The threshold evaluator only runs when the time evaluator did not
    fire, so one invocation authorizes at most one capture.
    """
    now = time.time() if now is None else now

    time_check = check_time_interval(state, now)
    if time_check.should_snapshot:
        return TriggerDecision(should_capture=True, time_fired=True, reason=time_check.reason)

    if should_snapshot_by_threshold(remaining_fraction, state.current_threshold):
        return TriggerDecision(
            should_capture=True,
            threshold_fired=True,
            reason=(
                f"{remaining_fraction:.0%} context remaining "
                f"(threshold: {state.current_threshold:.0%})"
            ),
        )

    return TriggerDecision()


__all__ = [
    "get_threshold",
    "should_snapshot_by_threshold",
    "TriggerDecision",
    "evaluate_triggers",
]
