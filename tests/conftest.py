"""Pytest configuration and shared fixtures."""

import logging
import os
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch):
    """Clear cached settings, BLUEGREEN_ env vars and root handlers per test."""
    from bluegreen.settings import get_settings

    for key in list(os.environ):
        if key.startswith("BLUEGREEN_"):
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()

    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level

    yield

    get_settings.cache_clear()
    root.handlers[:] = original_handlers
    root.setLevel(original_level)
