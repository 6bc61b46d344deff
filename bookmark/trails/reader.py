"""Read the trailhead and trail records written by trails.writer."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from ..persistence import read_json, read_text
from ..schema import DecisionTrail, FileTrail

logger = logging.getLogger(__name__)

CONTEXT_FILE = "CONTEXT.md"
DECISIONS_JSON = "decisions.json"
DECISIONS_MD = "decisions.md"
FILES_JSON = "files.json"
FILES_MD = "files.md"


def read_trailhead(storage_root: Path) -> str | None:
    """CONTEXT.md content, or None if missing or blank."""
    return read_text(storage_root / CONTEXT_FILE)


def load_decision_trail(storage_root: Path) -> DecisionTrail:
    data = read_json(storage_root / "trails" / DECISIONS_JSON)
    if not isinstance(data, dict):
        return DecisionTrail()
    try:
        return DecisionTrail.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Discarding invalid decision trail: {e}")
        return DecisionTrail()


def load_file_trail(storage_root: Path) -> FileTrail:
    data = read_json(storage_root / "trails" / FILES_JSON)
    if not isinstance(data, dict):
        return FileTrail()
    try:
        return FileTrail.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Discarding invalid file trail: {e}")
        return FileTrail()


__all__ = [
    "CONTEXT_FILE",
    "DECISIONS_JSON",
    "DECISIONS_MD",
    "FILES_JSON",
    "FILES_MD",
    "read_trailhead",
    "load_decision_trail",
    "load_file_trail",
]
