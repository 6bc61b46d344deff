"""Atomic file writes and tolerant JSON reads for the storage root."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def atomic_write_text(target_path: Path, content: str) -> None:
    """
    Atomically write text to ``target_path``.

    Uses write-to-temp-then-rename so readers never observe a partial file.
    """
    target_path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        suffix=".tmp",
        prefix=f"{target_path.stem}_",
        dir=target_path.parent,
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(temp_path, target_path)
    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


def read_json(path: Path) -> Any | None:
    """
    Read a JSON document.

    Returns:
        The decoded value, or None if the file is missing or unreadable.
    """
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        logger.warning(f"Ignoring unreadable JSON file {path}: {e}")
        return None


def read_text(path: Path) -> str | None:
    """Read a text artifact, or None if missing, unreadable or blank."""
    if not path.exists():
        return None
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Ignoring unreadable file {path}: {e}")
        return None
    return content if content.strip() else None


__all__ = ["atomic_write_text", "read_json", "read_text"]
