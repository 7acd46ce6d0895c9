"""Shared fixtures; the project root goes on sys.path so tests run from a checkout."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from jira_rollup.core import rollup_config  # noqa: E402
from jira_rollup.core.errors import DataQualityLog  # noqa: E402


@pytest.fixture
def quality(caplog):
    """A fresh data-quality log whose warnings are captured by ``caplog``."""
    caplog.set_level(logging.WARNING, logger="jira_rollup.data_quality")
    return DataQualityLog()


@pytest.fixture(autouse=True)
def _fresh_rollup_settings(monkeypatch):
    # rollup.yaml is cached per process; each test starts from an empty cache.
    monkeypatch.setattr(rollup_config, "_CACHE", None)
