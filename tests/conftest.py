"""
Shared pytest fixtures.
"""

import time

import pytest


@pytest.fixture
def local_tz_behind_utc(monkeypatch):
    """Run the test with local time five hours behind UTC."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    monkeypatch.setenv("TZ", "EST+05")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()
