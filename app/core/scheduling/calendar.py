"""
Advisor calendar and slot provider.

MockCalendar generates advisor slots on a business-hours grid
(Mon-Fri, 30-minute slots in the display time zone). Roughly 70% of the
grid is open; availability is derived from the slot id so the same slot
reads the same way on every call.

CalendarSlotProvider turns the calendar into candidate offers: future,
open, not already booked, and matching the caller's preference.
"""

import logging
import random
from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from app.config import settings
from app.core.intelligence.extraction.dates import DAY_NAMES, get_display_timezone
from app.core.intelligence.extraction.types import Slot, TimePreference
from .booking import BookingService

logger = logging.getLogger(__name__)


def slot_id_for(start_time: datetime) -> str:
    """Stable slot id derived from the start instant."""
    return f"slot-{int(start_time.timestamp() * 1000)}"


class MockCalendar:
    """Business-hours slot grid with deterministic availability."""

    def __init__(
        self,
        tz: Optional[ZoneInfo] = None,
        start_hour: Optional[int] = None,
        end_hour: Optional[int] = None,
        slot_minutes: Optional[int] = None,
        availability_ratio: float = 0.7,
    ):
        self.tz = tz or get_display_timezone()
        self.start_hour = start_hour if start_hour is not None else settings.business_hours_start
        self.end_hour = end_hour if end_hour is not None else settings.business_hours_end
        self.slot_minutes = slot_minutes or settings.slot_duration_minutes
        self.availability_ratio = availability_ratio

    def is_available(self, slot_id: str) -> bool:
        return random.Random(slot_id).random() < self.availability_ratio

    def slots_for_day(self, day: date) -> list[Slot]:
        """All grid slots on a day (none on weekends)."""
        if day.weekday() >= 5:
            return []

        slots = []
        current = datetime.combine(day, time(self.start_hour), tzinfo=self.tz)
        day_end = datetime.combine(day, time(self.end_hour), tzinfo=self.tz)
        step = timedelta(minutes=self.slot_minutes)

        while current + step <= day_end:
            slot_id = slot_id_for(current)
            slots.append(
                Slot(
                    id=slot_id,
                    start_time=current,
                    end_time=current + step,
                    is_available=self.is_available(slot_id),
                )
            )
            current += step

        return slots


class SlotProvider(ABC):
    """Source of candidate slots for offers."""

    @abstractmethod
    async def get_candidate_slots(
        self,
        preference: Optional[TimePreference] = None,
        limit: int = 2,
    ) -> list[Slot]:
        """
        Future, available, not-booked slots matching the preference.

        An empty list means the caller should be waitlisted.
        """


class CalendarSlotProvider(SlotProvider):
    """Slot provider backed by MockCalendar and the booking service."""

    def __init__(
        self,
        calendar: Optional[MockCalendar] = None,
        booking_service: Optional[BookingService] = None,
        lookahead_days: Optional[int] = None,
        now_fn: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize provider.

        Args:
            calendar: Slot grid (defaults to MockCalendar)
            booking_service: Used to exclude booked slots
            lookahead_days: How far ahead slots are offered
            now_fn: Clock override (for testing)
        """
        self._calendar = calendar or MockCalendar()
        self._booking_service = booking_service
        self._lookahead_days = lookahead_days or settings.slot_lookahead_days
        self._now_fn = now_fn

    def _now(self) -> datetime:
        if self._now_fn is not None:
            return self._now_fn()
        return datetime.now(self._calendar.tz)

    def _candidate_days(self, today: date, preference: Optional[TimePreference]) -> list[date]:
        last_day = today + timedelta(days=self._lookahead_days)

        if preference and preference.specific_date:
            if today <= preference.specific_date <= last_day:
                return [preference.specific_date]
            return []

        days = [today + timedelta(days=offset) for offset in range(self._lookahead_days + 1)]
        if preference and preference.day:
            days = [d for d in days if DAY_NAMES[d.weekday()] == preference.day]
        return days

    async def get_candidate_slots(
        self,
        preference: Optional[TimePreference] = None,
        limit: int = 2,
    ) -> list[Slot]:
        now = self._now()
        booked = await self._booking_service.booked_slot_ids() if self._booking_service else set()
        time_of_day = preference.time_of_day if preference else None

        candidates: list[Slot] = []
        for day in self._candidate_days(now.date(), preference):
            for slot in self._calendar.slots_for_day(day):
                if slot.start_time <= now or not slot.is_available or slot.id in booked:
                    continue
                if time_of_day and not time_of_day.contains(slot.start_time.hour):
                    continue
                candidates.append(slot)
                if len(candidates) >= limit:
                    return candidates

        logger.debug(
            f"Found {len(candidates)} slots for "
            f"{preference.describe() if preference else 'any time'}"
        )
        return candidates

