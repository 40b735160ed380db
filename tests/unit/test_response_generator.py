"""Tests for Response Generator."""

import pytest
from datetime import date

from app.core.intelligence.extraction.types import TimeOfDay, TimePreference, Topic
from app.core.scheduling.response import HELP_URL, ResponseGenerator
from tests.factories import make_slot


class TestResponseGenerator:
    """Test ResponseGenerator templates."""

    @pytest.fixture
    def generator(self):
        return ResponseGenerator(timezone_label="IST", frontend_url="https://book.example.com/")

    # === Formatting ===

    def test_format_slot_time(self, generator):
        slot = make_slot(date(2026, 1, 7), 10, 30)

        assert generator.format_slot_time(slot) == (
            "Wednesday, 7 January 2026 at 10:30 AM to 11:00 AM IST"
        )

    def test_format_slot_list_is_numbered(self, generator, two_slots):
        lines = generator.format_slot_list(two_slots).split("\n")

        assert lines[0].startswith("1. Wednesday, 7 January 2026")
        assert lines[1].startswith("2. Thursday, 8 January 2026 at 2:00 PM")

    def test_links_strip_trailing_slash(self, generator):
        assert generator.secure_link("NL-A7K2") == "https://book.example.com/complete/NL-A7K2"
        assert generator.manage_link("NL-A7K2") == "https://book.example.com/booking/NL-A7K2"

    # === Opening and topic ===

    def test_greeting(self, generator):
        response = generator.greeting()
        assert "Hello" in response
        assert "appointment" in response.lower()

    def test_disclaimer_mentions_no_investment_advice(self, generator):
        assert "not investment advice" in generator.disclaimer()

    def test_topic_prompt_lists_all_topics_in_order(self, generator):
        response = generator.topic_prompt()

        positions = [response.index(topic.value) for topic in Topic]
        assert positions == sorted(positions)
        assert "5. Account Changes/Nominee" in response

    def test_topic_help_escalates(self, generator):
        replies = [generator.topic_help(n) for n in range(3)]

        assert len(set(replies)) == 3
        assert "number" in replies[2]

    def test_time_preference_reprompt_escalates(self, generator):
        assert generator.time_preference_reprompt(1) != generator.time_preference_reprompt(2)

    # === Offers ===

    def test_slot_offer(self, generator, two_slots):
        preference = TimePreference(day="wednesday", time_of_day=TimeOfDay.MORNING)

        response = generator.slot_offer(two_slots, preference)

        assert "Wednesday morning" in response
        assert "1. Wednesday, 7 January 2026" in response
        assert "2. Thursday, 8 January 2026" in response

    def test_no_slots_keeps_previous_offer(self, generator, two_slots):
        preference = TimePreference(time_of_day=TimeOfDay.EVENING)

        response = generator.no_slots_for_preference(preference, two_slots)

        assert "evening" in response
        assert "still available" in response

    def test_waitlist_with_code(self, generator):
        response = generator.waitlist(Topic.SIP_MANDATES, "NL-W2X3")

        assert "NL-W2X3" in response
        assert "SIP/Mandates" in response

    # === Confirmation ===

    def test_confirmation_prompt(self, generator, two_slots):
        response = generator.confirmation_prompt(Topic.KYC_ONBOARDING, two_slots[0])

        assert "KYC/Onboarding" in response
        assert "10:30 AM" in response
        assert "yes or no" in response

    def test_confirmation_menu_has_three_options(self, generator):
        response = generator.confirmation_menu()

        assert "1. Choose a different slot" in response
        assert "3. Start over" in response

    def test_booking_confirmed(self, generator, two_slots):
        response = generator.booking_confirmed("NL-A7K2", Topic.KYC_ONBOARDING, two_slots[0])

        assert "NL-A7K2" in response
        assert "https://book.example.com/complete/NL-A7K2" in response
        assert "IST" in response

    def test_booking_failed_includes_reason(self, generator):
        response = generator.booking_failed("That slot has just been booked by someone else.")

        assert "just been booked" in response

    # === Side branches ===

    def test_manage_booking(self, generator):
        response = generator.manage_booking("NL-A7K2", "cancel")

        assert "cancel booking NL-A7K2" in response
        assert "/booking/NL-A7K2" in response

    def test_availability_lists_slots(self, generator, two_slots):
        response = generator.availability(two_slots)

        assert "1. Wednesday" in response

    def test_availability_empty(self, generator):
        response = generator.availability([], TimePreference(day="saturday"))

        assert "no open slots for Saturday" in response

    def test_preparation_info_per_topic(self, generator):
        kyc = generator.preparation_info(Topic.KYC_ONBOARDING)
        generic = generator.preparation_info(None)

        assert "PAN card" in kyc
        assert "KYC/Onboarding" in kyc
        assert HELP_URL in generic
        assert kyc != generic
