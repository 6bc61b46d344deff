"""Transcript Layer - parsing, usage estimation and heuristic extraction."""

from .estimator import UsageEstimate, estimate_from_events, estimate_from_transcript, quick_estimate
from .extractor import ExtractionResult, extract_from_events
from .parser import Event, EventKind, ParseResult, find_transcript_path, parse_lines, parse_transcript

__all__ = [
    "Event",
    "EventKind",
    "ParseResult",
    "parse_lines",
    "parse_transcript",
    "find_transcript_path",
    "UsageEstimate",
    "estimate_from_events",
    "estimate_from_transcript",
    "quick_estimate",
    "ExtractionResult",
    "extract_from_events",
]
