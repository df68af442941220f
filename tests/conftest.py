"""Shared fixtures for the voice operator tests."""

import pytest

from voice_operator.core.config import settings


SETTLE_FIELDS = (
    "click_settle_ms",
    "text_settle_ms",
    "checkbox_settle_ms",
    "dropdown_settle_ms",
    "switch_refresh_ms",
    "profile_fill_delay_ms",
)


@pytest.fixture(autouse=True)
def no_settle_delays(monkeypatch):
    """Zero every settle delay so tests never sleep."""
    for name in SETTLE_FIELDS:
        monkeypatch.setattr(settings, name, 0)
