"""Pytest configuration — ensures the project root is importable."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))


@pytest.fixture(autouse=True)
def _quiet_env(monkeypatch):
    """Keep a developer's .env / shell settings out of the suite."""
    for name in ("LOG_LEVEL", "MAX_PAYLOAD_BYTES", "APP_VERSION"):
        monkeypatch.delenv(name, raising=False)
    yield
