"""Shared fixtures for dialogue tests."""

from datetime import date

import pytest

from app.core.intelligence.extraction.types import Slot
from tests.factories import TODAY, make_slot


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def two_slots() -> list[Slot]:
    """Wednesday 7 Jan 10:30 and Thursday 8 Jan 14:00."""
    return [
        make_slot(date(2026, 1, 7), 10, 30),
        make_slot(date(2026, 1, 8), 14, 0),
    ]
