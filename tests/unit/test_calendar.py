"""Tests for the mock calendar and slot provider."""

import pytest
from datetime import date, datetime

from app.core.intelligence.extraction.types import TimeOfDay, TimePreference, Topic
from app.core.scheduling.booking import InMemoryBookingService
from app.core.scheduling.calendar import CalendarSlotProvider, MockCalendar, slot_id_for
from tests.factories import IST


# Monday 5 January 2026, 08:00 IST
NOW = datetime(2026, 1, 5, 8, 0, tzinfo=IST)


class TestMockCalendar:
    """Business-hours grid."""

    @pytest.fixture
    def calendar(self):
        return MockCalendar(tz=IST, start_hour=9, end_hour=18, slot_minutes=30)

    def test_weekday_grid(self, calendar):
        slots = calendar.slots_for_day(date(2026, 1, 7))

        assert len(slots) == 18
        assert slots[0].start_time.hour == 9
        assert slots[-1].end_time.hour == 18

    def test_no_weekend_slots(self, calendar):
        assert calendar.slots_for_day(date(2026, 1, 10)) == []
        assert calendar.slots_for_day(date(2026, 1, 11)) == []

    def test_availability_is_deterministic(self, calendar):
        first = [s.is_available for s in calendar.slots_for_day(date(2026, 1, 7))]
        second = [s.is_available for s in calendar.slots_for_day(date(2026, 1, 7))]

        assert first == second

    def test_slot_ids_are_stable(self, calendar):
        slot = calendar.slots_for_day(date(2026, 1, 7))[0]

        assert slot.id == slot_id_for(slot.start_time)
        assert slot.id.startswith("slot-")

    def test_all_open_calendar(self):
        calendar = MockCalendar(tz=IST, start_hour=9, end_hour=18, slot_minutes=30, availability_ratio=1.0)

        assert all(s.is_available for s in calendar.slots_for_day(date(2026, 1, 7)))


class TestCalendarSlotProvider:
    """Candidate slot selection."""

    @pytest.fixture
    def booking_service(self):
        return InMemoryBookingService()

    @pytest.fixture
    def provider(self, booking_service):
        calendar = MockCalendar(tz=IST, start_hour=9, end_hour=18, slot_minutes=30, availability_ratio=1.0)
        return CalendarSlotProvider(
            calendar=calendar,
            booking_service=booking_service,
            lookahead_days=14,
            now_fn=lambda: NOW,
        )

    @pytest.mark.asyncio
    async def test_default_limit_is_two(self, provider):
        slots = await provider.get_candidate_slots()

        assert len(slots) == 2
        assert slots[0].start_time == datetime(2026, 1, 5, 9, 0, tzinfo=IST)

    @pytest.mark.asyncio
    async def test_day_and_time_of_day(self, provider):
        preference = TimePreference(day="wednesday", time_of_day=TimeOfDay.AFTERNOON)

        slots = await provider.get_candidate_slots(preference, limit=5)

        assert len(slots) == 5
        for slot in slots:
            assert slot.start_time.strftime("%A") == "Wednesday"
            assert 12 <= slot.start_time.hour < 17

    @pytest.mark.asyncio
    async def test_specific_date(self, provider):
        preference = TimePreference(specific_date=date(2026, 1, 8), time_of_day=TimeOfDay.EVENING)

        slots = await provider.get_candidate_slots(preference)

        assert [s.start_time.hour for s in slots] == [17, 17]
        assert all(s.local_date == date(2026, 1, 8) for s in slots)

    @pytest.mark.asyncio
    async def test_date_outside_lookahead(self, provider):
        preference = TimePreference(specific_date=date(2026, 3, 2))

        assert await provider.get_candidate_slots(preference) == []

    @pytest.mark.asyncio
    async def test_weekend_preference_is_empty(self, provider):
        assert await provider.get_candidate_slots(TimePreference(day="saturday")) == []

    @pytest.mark.asyncio
    async def test_past_slots_excluded(self, booking_service):
        calendar = MockCalendar(tz=IST, start_hour=9, end_hour=18, slot_minutes=30, availability_ratio=1.0)
        provider = CalendarSlotProvider(
            calendar=calendar,
            booking_service=booking_service,
            now_fn=lambda: datetime(2026, 1, 5, 17, 10, tzinfo=IST),
        )

        slots = await provider.get_candidate_slots()

        assert slots[0].start_time == datetime(2026, 1, 5, 17, 30, tzinfo=IST)

    @pytest.mark.asyncio
    async def test_booked_slots_excluded(self, provider, booking_service):
        first, second = await provider.get_candidate_slots()
        await booking_service.create_booking(Topic.KYC_ONBOARDING, first)

        slots = await provider.get_candidate_slots()

        assert first.id not in {s.id for s in slots}
        assert slots[0].id == second.id
