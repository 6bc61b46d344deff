"""Trail Layer - decision/file trails and the CONTEXT.md trailhead."""

from .reader import load_decision_trail, load_file_trail, read_trailhead
from .writer import TrailStats, derive_topic, write_trails

__all__ = [
    "TrailStats",
    "derive_topic",
    "write_trails",
    "read_trailhead",
    "load_decision_trail",
    "load_file_trail",
]
