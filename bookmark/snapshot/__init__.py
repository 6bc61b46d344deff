"""Snapshot Layer - capture, storage, LATEST.md and optional enhancement."""

from .capture import CaptureResult, capture_snapshot
from .compress import compress_to_markdown
from .enhance import Enhancer, LLMEnhancer, NullEnhancer, select_enhancer
from .storage import SnapshotStore, is_valid_snapshot_id

__all__ = [
    "CaptureResult",
    "capture_snapshot",
    "compress_to_markdown",
    "Enhancer",
    "LLMEnhancer",
    "NullEnhancer",
    "select_enhancer",
    "SnapshotStore",
    "is_valid_snapshot_id",
]
