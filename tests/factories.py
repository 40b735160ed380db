"""Builders for test data."""

from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from app.core.intelligence.extraction.types import Slot, TimePreference
from app.core.scheduling.calendar import SlotProvider


IST = ZoneInfo("Asia/Kolkata")

# Monday
TODAY = date(2026, 1, 5)


def make_slot(day: date, hour: int, minute: int = 0) -> Slot:
    """30-minute slot on the IST grid."""
    start = datetime(day.year, day.month, day.day, hour, minute, tzinfo=IST)
    return Slot(
        id=f"slot-{int(start.timestamp() * 1000)}",
        start_time=start,
        end_time=start + timedelta(minutes=30),
    )


class FakeSlotProvider(SlotProvider):
    """Returns a fixed slot list and records every query."""

    def __init__(self, slots: Optional[list[Slot]] = None):
        self.slots = list(slots or [])
        self.calls: list[tuple[Optional[TimePreference], int]] = []

    async def get_candidate_slots(self, preference=None, limit=2):
        self.calls.append((preference, limit))
        return self.slots[:limit]
