"""Shared test fixtures and configuration."""

from __future__ import annotations

import pytest

from helpers import make_settings
from notion_bridge.sessions.store import MemoryStore


@pytest.fixture
def settings():
    """Default settings for a single-credential pool."""
    return make_settings()


@pytest.fixture
def store():
    """Empty in-memory credential store."""
    return MemoryStore()
