"""
Configuration management for Bookmark.

Priority order (highest first):
1. BOOKMARK_* environment variables
2. <project>/.claude/bookmarks/config.json
3. Built-in defaults
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

PROJECT_CONFIG_RELPATH = Path(".claude") / "bookmarks" / "config.json"

DEFAULT_THRESHOLDS = [0.20, 0.30, 0.40, 0.50, 0.60]


def _filter_dataclass_fields(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter dict to only include fields that exist in the dataclass."""
    valid_fields = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_fields}


def _to_snake(key: str) -> str:
    """``contextLimitTokens`` -> ``context_limit_tokens``."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def _valid_value(value: Any, default: Any) -> bool:
    """True when a file value has the same shape as the field default."""
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, int):
        return isinstance(value, int) and not isinstance(value, bool) and value > 0
    if isinstance(default, float):
        return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0
    if isinstance(default, str):
        return isinstance(value, str)
    if isinstance(default, list):
        return isinstance(value, list) and all(
            isinstance(v, (int, float)) and not isinstance(v, bool) for v in value
        )
    return True


def _env_flag(name: str) -> bool | None:
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip().lower() == "true"


def _env_int(name: str) -> int | None:
    value = os.getenv(name)
    if not value:
        return None
    try:
        parsed = int(value)
    except ValueError:
        logger.debug(f"Ignoring non-integer {name}={value!r}")
        return None
    return parsed if parsed > 0 else None


def _env_float(name: str) -> float | None:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        logger.debug(f"Ignoring non-numeric {name}={value!r}")
        return None


def _env_thresholds(name: str) -> list[float] | None:
    value = os.getenv(name)
    if not value:
        return None
    levels = []
    for part in value.split(","):
        try:
            levels.append(float(part))
        except ValueError:
            continue
    return levels or None


@dataclass
class BookmarkConfig:
    """
    Bookmark configuration.

    Covers storage location, trigger thresholds, extraction caps,
    restoration budget and the optional enhancement call.
    """

    storage_path: str = ".claude/bookmarks"

    # Triggers
    thresholds: list[float] = field(default_factory=lambda: list(DEFAULT_THRESHOLDS))
    max_threshold: float = 0.60
    interval_minutes: int = 20

    # Usage estimation
    context_limit_tokens: int = 200_000
    chars_per_token: int = 4

    # Extraction caps
    max_decisions: int = 15
    max_open_items: int = 10
    max_unknowns: int = 3
    max_files_tracked: int = 20
    max_errors_tracked: int = 10

    # Restoration
    summary_token_budget: int = 600
    chain_max_length: int = 5

    # Retention
    max_active_snapshots: int = 50
    archive_after_days: int = 30

    # Lifecycle
    snapshot_on_session_end: bool = True
    restore_on_session_start: bool = True

    # Optional enhancement
    smart_default: bool = False
    enhancement_timeout_seconds: float = 10.0
    enhancement_model: str = "claude-haiku-4-5-20251001"

    verbose_logging: bool = False

    def __post_init__(self) -> None:
        raw = self.thresholds if isinstance(self.thresholds, (list, tuple)) else [self.thresholds]
        levels = sorted(
            float(t) for t in raw
            if isinstance(t, (int, float)) and not isinstance(t, bool) and 0.0 <= t <= 1.0
        )
        self.thresholds = levels or list(DEFAULT_THRESHOLDS)

    @classmethod
    def load(cls, cwd: str | Path | None = None) -> "BookmarkConfig":
        """
        Load config for a project directory.

        Args:
            cwd: Project root. When None, only defaults and environment apply.

        Returns:
            BookmarkConfig with file and environment overrides merged in
        """
        config: dict[str, Any] = asdict(cls())

        if cwd is not None:
            path = Path(cwd) / PROJECT_CONFIG_RELPATH
            if path.exists():
                try:
                    user_config = json.loads(path.read_text())
                    if isinstance(user_config, dict):
                        for key, value in user_config.items():
                            name = _to_snake(key)
                            if name not in config:
                                continue
                            if _valid_value(value, config[name]):
                                config[name] = value
                            else:
                                logger.warning(f"Ignoring invalid config value {key}={value!r} in {path}")
                except (json.JSONDecodeError, OSError) as e:
                    # Use defaults on error
                    logger.warning(f"Ignoring malformed config {path}: {e}")

        overrides: dict[str, Any] = {
            "storage_path": os.getenv("BOOKMARK_STORAGE_PATH") or None,
            "thresholds": _env_thresholds("BOOKMARK_THRESHOLD"),
            "max_threshold": _env_float("BOOKMARK_MAX_THRESHOLD"),
            "interval_minutes": _env_int("BOOKMARK_INTERVAL"),
            "context_limit_tokens": _env_int("BOOKMARK_CONTEXT_LIMIT"),
            "enhancement_model": os.getenv("BOOKMARK_MODEL") or None,
        }
        if _env_flag("BOOKMARK_SMART"):
            overrides["smart_default"] = True
        if _env_flag("BOOKMARK_VERBOSE"):
            overrides["verbose_logging"] = True
        config.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**_filter_dataclass_fields(config, cls))


def get_storage_path(cwd: str | Path, config: BookmarkConfig | None = None) -> Path:
    """Resolve the storage root for a project."""
    cfg = config or BookmarkConfig.load(cwd)
    storage = Path(cfg.storage_path).expanduser()
    if storage.is_absolute():
        return storage
    return Path(cwd) / storage


def write_project_config(cwd: str | Path, **updates: Any) -> Path:
    """
    Merge ``updates`` into the project config file.

    Args:
        cwd: Project root
        **updates: Field values to persist (snake_case)

    Returns:
        Path to the written config file
    """
    path = Path(cwd) / PROJECT_CONFIG_RELPATH
    path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, Any] = {}
    if path.exists():
        try:
            loaded = json.loads(path.read_text())
            if isinstance(loaded, dict):
                existing = {_to_snake(k): v for k, v in loaded.items()}
        except (json.JSONDecodeError, OSError):
            # Overwrite malformed config
            pass

    existing.update(_filter_dataclass_fields(updates, BookmarkConfig))
    with open(path, "w") as f:
        json.dump(existing, f, indent=2)
    return path


__all__ = [
    "BookmarkConfig",
    "DEFAULT_THRESHOLDS",
    "PROJECT_CONFIG_RELPATH",
    "get_storage_path",
    "write_project_config",
]
