"""
Unit tests for config module.
"""

import json
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from bookmark.config import (
    DEFAULT_THRESHOLDS,
    PROJECT_CONFIG_RELPATH,
    BookmarkConfig,
    get_storage_path,
    write_project_config,
)


def write_config(project: Path, data) -> Path:
    path = project / PROJECT_CONFIG_RELPATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data) if not isinstance(data, str) else data)
    return path


class TestBookmarkConfig:
    """Tests for BookmarkConfig defaults and loading."""

    def test_defaults(self, project):
        config = BookmarkConfig.load(project)

        assert config.storage_path == ".claude/bookmarks"
        assert config.thresholds == DEFAULT_THRESHOLDS
        assert config.max_threshold == 0.60
        assert config.interval_minutes == 20
        assert config.context_limit_tokens == 200_000
        assert config.smart_default is False

    def test_project_file_camel_case(self, project):
        write_config(project, {"intervalMinutes": 10, "contextLimitTokens": 50000, "maxDecisions": 4})

        config = BookmarkConfig.load(project)

        assert config.interval_minutes == 10
        assert config.context_limit_tokens == 50000
        assert config.max_decisions == 4

    def test_unknown_keys_ignored(self, project):
        write_config(project, {"interval_minutes": 15, "somethingElse": True})
        assert BookmarkConfig.load(project).interval_minutes == 15

    def test_malformed_file_ignored(self, project):
        write_config(project, "{not json")
        assert BookmarkConfig.load(project).interval_minutes == 20

    def test_env_overrides_file(self, project, monkeypatch):
        write_config(project, {"intervalMinutes": 10})
        monkeypatch.setenv("BOOKMARK_INTERVAL", "45")
        monkeypatch.setenv("BOOKMARK_CONTEXT_LIMIT", "1000")
        monkeypatch.setenv("BOOKMARK_SMART", "true")
        monkeypatch.setenv("BOOKMARK_MODEL", "some-model")

        config = BookmarkConfig.load(project)

        assert config.interval_minutes == 45
        assert config.context_limit_tokens == 1000
        assert config.smart_default is True
        assert config.enhancement_model == "some-model"

    def test_env_thresholds(self, project, monkeypatch):
        monkeypatch.setenv("BOOKMARK_THRESHOLD", "0.5, 0.1,bogus,0.3")
        assert BookmarkConfig.load(project).thresholds == [0.1, 0.3, 0.5]

    @pytest.mark.parametrize("value", ["abc", "0", "-5"])
    def test_invalid_env_interval_ignored(self, project, monkeypatch, value):
        monkeypatch.setenv("BOOKMARK_INTERVAL", value)
        assert BookmarkConfig.load(project).interval_minutes == 20

    def test_out_of_range_thresholds_dropped(self):
        assert BookmarkConfig(thresholds=[1.5, 0.4, -0.1]).thresholds == [0.4]
        assert BookmarkConfig(thresholds=[]).thresholds == DEFAULT_THRESHOLDS

    @pytest.mark.parametrize("data", [
        {"thresholds": 0.3},
        {"thresholds": ["low", "high"]},
        {"intervalMinutes": "ten"},
        {"contextLimitTokens": 0},
        {"snapshotOnSessionEnd": "no"},
        {"storagePath": 42},
    ])
    def test_badly_typed_values_fall_back_to_defaults(self, project, data):
        write_config(project, data)

        config = BookmarkConfig.load(project)

        assert config == BookmarkConfig()

    def test_bad_value_does_not_discard_good_ones(self, project):
        write_config(project, {"thresholds": 0.3, "intervalMinutes": 9})

        config = BookmarkConfig.load(project)

        assert config.thresholds == DEFAULT_THRESHOLDS
        assert config.interval_minutes == 9

    def test_scalar_thresholds_tolerated(self):
        assert BookmarkConfig(thresholds=0.3).thresholds == [0.3]
        assert BookmarkConfig(thresholds=["x", 0.2, True]).thresholds == [0.2]

    def test_load_without_project(self, monkeypatch):
        monkeypatch.setenv("BOOKMARK_INTERVAL", "5")
        assert BookmarkConfig.load(None).interval_minutes == 5


class TestStoragePath:
    """Tests for get_storage_path."""

    def test_relative_to_project(self, project):
        assert get_storage_path(project) == project / ".claude" / "bookmarks"

    def test_absolute(self, project, tmp_path):
        target = tmp_path / "elsewhere"
        config = BookmarkConfig(storage_path=str(target))
        assert get_storage_path(project, config) == target

    def test_env(self, project, tmp_path, monkeypatch):
        monkeypatch.setenv("BOOKMARK_STORAGE_PATH", str(tmp_path / "env-store"))
        assert get_storage_path(project) == tmp_path / "env-store"


class TestWriteProjectConfig:
    """Tests for write_project_config."""

    def test_merges(self, project):
        write_config(project, {"contextLimitTokens": 50000})

        path = write_project_config(project, interval_minutes=12, not_a_field=1)

        data = json.loads(path.read_text())
        assert data == {"context_limit_tokens": 50000, "interval_minutes": 12}
        config = BookmarkConfig.load(project)
        assert config.interval_minutes == 12
        assert config.context_limit_tokens == 50000

    def test_creates_file(self, project):
        path = write_project_config(project, interval_minutes=7)
        assert path == project / PROJECT_CONFIG_RELPATH
        assert BookmarkConfig.load(project).interval_minutes == 7
