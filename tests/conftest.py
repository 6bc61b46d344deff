"""
Shared fixtures for bookmark tests.

Every test runs with BOOKMARK_* / ANTHROPIC_* overrides cleared and HOME
pointed at a scratch directory, so a developer's real config and
~/.claude transcripts never leak in.
"""

import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))


ISOLATED_ENV_PREFIXES = ("BOOKMARK_", "ANTHROPIC_", "CLAUDE_")


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Clear overrides and redirect HOME."""
    for name in list(os.environ):
        if name.startswith(ISOLATED_ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture
def project(tmp_path):
    """Empty project directory."""
    path = tmp_path / "project"
    path.mkdir()
    return path

