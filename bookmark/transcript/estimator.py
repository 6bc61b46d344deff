"""
Token usage estimation.

Uses a simple characters-per-token heuristic, accurate enough for
threshold comparison. Two modes:
- precise: sums normalized event text per kind
- quick: reads only the file size (safe to call on every user turn)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .parser import Event, EventKind, parse_transcript

DEFAULT_CONTEXT_LIMIT = 200_000
CHARS_PER_TOKEN = 4

# Share of raw JSONL bytes that is actual content rather than JSON structure
CONTENT_DENSITY = 0.7


@dataclass
class UsageEstimate:
    """Estimated token usage partitioned by event kind."""

    total_tokens: int = 0
    message_count: int = 0
    user_tokens: int = 0
    assistant_tokens: int = 0
    tool_tokens: int = 0
    system_tokens: int = 0
    context_limit: int = DEFAULT_CONTEXT_LIMIT
    remaining_fraction: float = 1.0
    remaining_tokens: int = DEFAULT_CONTEXT_LIMIT

    @classmethod
    def empty(cls, context_limit: int = DEFAULT_CONTEXT_LIMIT) -> "UsageEstimate":
        return cls(
            context_limit=context_limit,
            remaining_fraction=1.0,
            remaining_tokens=context_limit,
        )


def _remaining(total_tokens: int, context_limit: int) -> tuple[int, float]:
    remaining_tokens = max(0, context_limit - total_tokens)
    if context_limit <= 0:
        return remaining_tokens, 1.0
    return remaining_tokens, round(remaining_tokens / context_limit, 2)


def estimate_from_events(
    events: Iterable[Event],
    context_limit: int = DEFAULT_CONTEXT_LIMIT,
    chars_per_token: int = CHARS_PER_TOKEN,
) -> UsageEstimate:
    """Precise estimate over already-normalized events."""
    chars = {kind: 0 for kind in EventKind}
    count = 0
    for event in events:
        chars[event.kind] += len(event.text)
        count += 1

    if count == 0:
        return UsageEstimate.empty(context_limit)

    def tokens(n: int) -> int:
        return math.ceil(n / chars_per_token)

    tool_chars = chars[EventKind.TOOL_INVOCATION] + chars[EventKind.TOOL_RESULT]
    total_tokens = tokens(sum(chars.values()))
    remaining_tokens, remaining_fraction = _remaining(total_tokens, context_limit)

    return UsageEstimate(
        total_tokens=total_tokens,
        message_count=count,
        user_tokens=tokens(chars[EventKind.USER]),
        assistant_tokens=tokens(chars[EventKind.ASSISTANT]),
        tool_tokens=tokens(tool_chars),
        system_tokens=tokens(chars[EventKind.SYSTEM]),
        context_limit=context_limit,
        remaining_fraction=remaining_fraction,
        remaining_tokens=remaining_tokens,
    )


def estimate_from_transcript(
    transcript_path: str | Path,
    context_limit: int = DEFAULT_CONTEXT_LIMIT,
    chars_per_token: int = CHARS_PER_TOKEN,
    start_offset: int = 0,
) -> UsageEstimate:
    """Precise estimate: parse the transcript and measure event text."""
    result = parse_transcript(transcript_path, start_offset=start_offset)
    return estimate_from_events(result.events, context_limit, chars_per_token)


def quick_estimate(
    transcript_path: str | Path | None,
    context_limit: int = DEFAULT_CONTEXT_LIMIT,
    chars_per_token: int = CHARS_PER_TOKEN,
) -> UsageEstimate:
    """
    File-size-based estimate without parsing.

    Only reads file metadata. Raw size is discounted by CONTENT_DENSITY
    to account for JSON overhead.
    """
    if not transcript_path:
        return UsageEstimate.empty(context_limit)
    try:
        size = Path(transcript_path).stat().st_size
    except OSError:
        return UsageEstimate.empty(context_limit)

    total_tokens = math.ceil(size * CONTENT_DENSITY / chars_per_token)
    remaining_tokens, remaining_fraction = _remaining(total_tokens, context_limit)
    return UsageEstimate(
        total_tokens=total_tokens,
        context_limit=context_limit,
        remaining_fraction=remaining_fraction,
        remaining_tokens=remaining_tokens,
    )


__all__ = [
    "CONTENT_DENSITY",
    "UsageEstimate",
    "estimate_from_events",
    "estimate_from_transcript",
    "quick_estimate",
]
