"""
Reply templates for the booking dialogue.

All replies are deterministic templates: they are read out by TTS, so
they avoid markdown and keep lists short and numbered.
"""

import logging
from typing import Optional

from app.config import settings
from app.core.intelligence.extraction.dates import format_date, format_time
from app.core.intelligence.extraction.types import Slot, TimePreference, Topic

logger = logging.getLogger(__name__)


PREPARATION_CHECKLIST: dict[Optional[Topic], list[str]] = {
    None: [
        "A government photo ID (PAN card, Aadhaar, or passport)",
        "Address proof",
        "Any documents related to your query",
        "A list of questions you want to ask",
    ],
    Topic.KYC_ONBOARDING: [
        "PAN card",
        "Aadhaar card or another address proof",
        "A cancelled cheque or bank statement",
        "A recent passport-size photograph",
    ],
    Topic.SIP_MANDATES: [
        "Details of your existing SIPs",
        "Bank account details for the mandate",
        "Your preferred SIP dates and amounts",
    ],
    Topic.STATEMENTS_TAX_DOCS: [
        "The financial year you need statements for",
        "Your PAN card",
        "Any tax notices you have received",
    ],
    Topic.WITHDRAWALS_TIMELINES: [
        "Details of the holdings you want to withdraw",
        "Bank account details for the payout",
        "Any deadlines you are working towards",
    ],
    Topic.ACCOUNT_CHANGES_NOMINEE: [
        "Your PAN card",
        "Nominee name, date of birth and relationship",
        "Proof for any details you want to change",
    ],
}

HELP_URL = "https://groww.in/help"


class ResponseGenerator:
    """Template-based reply generator."""

    def __init__(self, timezone_label: Optional[str] = None, frontend_url: Optional[str] = None):
        self.timezone_label = timezone_label or settings.timezone_label
        self.frontend_url = (frontend_url or settings.frontend_url).rstrip("/")

    # === Formatting ===

    def format_slot_time(self, slot: Slot) -> str:
        """Render a slot as "Wednesday, 7 January 2026 at 10:30 AM to 11:00 AM IST"."""
        start = slot.start_time
        return (
            f"{start:%A}, {format_date(start.date())} at {format_time(start)} "
            f"to {format_time(slot.end_time)} {self.timezone_label}"
        )

    def format_slot_list(self, slots: list[Slot]) -> str:
        return "\n".join(
            f"{index}. {self.format_slot_time(slot)}" for index, slot in enumerate(slots, start=1)
        )

    def secure_link(self, booking_code: str) -> str:
        return f"{self.frontend_url}/complete/{booking_code}"

    def manage_link(self, booking_code: str) -> str:
        return f"{self.frontend_url}/booking/{booking_code}"

    # === Opening ===

    def greeting(self) -> str:
        return (
            "Hello! I'm your advisor appointment scheduler. "
            "I can help you book, reschedule, or cancel a consultation with an advisor. "
            "How can I help you today?"
        )

    def greeting_hint(self) -> str:
        return (
            "I can help you book a new advisor appointment, reschedule or cancel one, "
            "check available slots, or tell you what to prepare. "
            "Would you like to book an appointment?"
        )

    def disclaimer(self) -> str:
        return (
            "Before we begin, please note: this service is for scheduling only. "
            "The information shared here is informational and not investment advice. "
            "Please don't share account numbers or other personal details in this chat. "
            "Shall we continue?"
        )

    def garbage_input(self) -> str:
        return (
            "I'm having trouble understanding your voice input. It may have been transcribed "
            "incorrectly. Could you try:\n"
            "1. Speaking more clearly and slowly\n"
            "2. Using text mode instead\n"
            "3. Checking your microphone settings"
        )

    # === Topic ===

    def topic_prompt(self) -> str:
        return (
            "What would you like to discuss with the advisor? Please choose a topic:\n"
            f"{self._numbered_topics()}"
        )

    def topic_help(self, failed_attempts: int) -> str:
        """Re-prompt for a topic, escalating with each failure.

        Args:
            failed_attempts: Failures before this one (0 for the first miss)
        """
        if failed_attempts <= 0:
            return (
                "Sorry, I didn't catch the topic. Which of these would you like to discuss?\n"
                f"{self._numbered_topics()}"
            )
        if failed_attempts == 1:
            return (
                "I'm still not sure which topic you mean. You can say the topic name, "
                "for example \"KYC\" or \"nominee\", or just say its number:\n"
                f"{self._numbered_topics()}"
            )
        return (
            "Let's try it one more way. Please say only the number of your topic, "
            "from one to five:\n"
            f"{self._numbered_topics()}"
        )

    def suggest_text_mode(self) -> str:
        return (
            "I'm having trouble hearing your replies. Switching to text mode may be easier: "
            "you can type the topic name or its number (1 to 5)."
        )

    def _numbered_topics(self) -> str:
        return "\n".join(f"{index}. {topic.value}" for index, topic in enumerate(Topic, start=1))

    # === Time preference and offers ===

    def time_preference_prompt(self, topic: Topic) -> str:
        return (
            f"Great, {topic.value} it is. When would you prefer to meet? "
            "You can say a day and time of day, like \"Monday morning\" or "
            "\"Thursday afternoon\", or a date."
        )

    def time_preference_reprompt(self, failures: int) -> str:
        if failures <= 1:
            return (
                "I didn't catch when you'd like to meet. Could you tell me a day and a "
                "time of day, such as \"Tuesday afternoon\"?"
            )
        return (
            "Sorry, I still didn't get a day or time. Try a weekday with morning, afternoon "
            "or evening, or a date like \"7 January\". Advisors are available Monday to Friday, "
            "9 AM to 6 PM."
        )

    def slot_offer(self, slots: list[Slot], preference: Optional[TimePreference] = None) -> str:
        intro = "Here are the available slots"
        if preference and preference.has_any():
            intro += f" for {preference.describe()}"
        return (
            f"{intro}:\n\n{self.format_slot_list(slots)}\n\n"
            "Which one works for you? You can say \"first\" or \"second\"."
        )

    def slot_reoffer(self, slots: list[Slot]) -> str:
        return (
            "Sorry, I didn't catch which slot you'd like. The options are:\n\n"
            f"{self.format_slot_list(slots)}\n\n"
            "Please say \"first\" or \"second\", or tell me another day or time."
        )

    def no_slots_for_preference(self, preference: TimePreference, kept: list[Slot]) -> str:
        message = f"I couldn't find any open slots for {preference.describe()}."
        if kept:
            message += (
                " The earlier options are still available:\n\n"
                f"{self.format_slot_list(kept)}\n\n"
                "You can pick one of those or tell me another day or time."
            )
        else:
            message += " Could you suggest another day or time?"
        return message

    def ask_new_preference(self) -> str:
        return (
            "No problem. What other day or time would suit you? "
            "For example, \"Wednesday evening\" or \"next Friday morning\"."
        )

    def waitlist(self, topic: Optional[Topic], waitlist_code: Optional[str]) -> str:
        topic_text = f" for {topic.value}" if topic else ""
        if waitlist_code:
            return (
                f"I'm sorry, there are no available slots matching your preference{topic_text}. "
                f"I've added you to the waitlist; your waitlist code is {waitlist_code}. "
                "We'll reach out as soon as a slot opens up."
            )
        return (
            f"I'm sorry, there are no available slots matching your preference{topic_text}. "
            "Please try again later or start a new conversation with a different time."
        )

    # === Confirmation ===

    def confirmation_prompt(self, topic: Topic, slot: Slot) -> str:
        return (
            f"You've selected {self.format_slot_time(slot)} for a {topic.value} consultation. "
            "Shall I confirm this booking? Please say yes or no."
        )

    def confirmation_reprompt(self, slot: Slot) -> str:
        return (
            f"Just to check, would you like me to book {self.format_slot_time(slot)}? "
            "Please say yes to confirm or no to choose another slot."
        )

    def confirmation_menu(self) -> str:
        return (
            "I understand you're not ready to confirm. Would you like to:\n"
            "1. Choose a different slot\n"
            "2. Change the time preference\n"
            "3. Start over"
        )

    def choose_another_slot(self, slots: list[Slot]) -> str:
        return (
            "No problem. Here are the slots again:\n\n"
            f"{self.format_slot_list(slots)}\n\n"
            "Which one would you like?"
        )

    def start_over(self) -> str:
        return f"Let's start over. {self.topic_prompt()}"

    def missing_booking_details(self) -> str:
        return f"I'm missing some details for your booking. {self.topic_prompt()}"

    def booking_confirmed(self, booking_code: str, topic: Topic, slot: Slot) -> str:
        return (
            f"Your appointment is booked! Your booking code is {booking_code}. "
            f"Topic: {topic.value}. Time: {self.format_slot_time(slot)}. "
            f"Please complete your details using this secure link: {self.secure_link(booking_code)}"
        )

    def booking_failed(self, reason: Optional[str]) -> str:
        reason_text = f" {reason}" if reason else ""
        return (
            f"I'm sorry, I couldn't complete that booking.{reason_text} "
            "Let's find you another time. Just say anything to see fresh options, "
            "or tell me a different day."
        )

    def recovery_offer(self, slots: list[Slot]) -> str:
        return (
            "Here are some other slots you can choose from:\n\n"
            f"{self.format_slot_list(slots)}\n\n"
            "Which one works for you?"
        )

    def booking_summary(self, booking_code: Optional[str]) -> str:
        return (
            f"Your booking {booking_code} is all set. Thank you for using the advisor scheduler! "
            "To book another appointment, please start a new conversation."
        )

    def conversation_closed(self) -> str:
        return (
            "This conversation is complete. To book or manage another appointment, "
            "please start a new conversation."
        )

    # === Side branches ===

    def reschedule_prompt(self) -> str:
        return (
            "I can help you reschedule. Please share your booking code "
            "(format: NL-XXXX)."
        )

    def cancel_prompt(self) -> str:
        return (
            "I can help you cancel your appointment. Please share your booking code "
            "(format: NL-XXXX)."
        )

    def manage_booking(self, booking_code: str, action: str) -> str:
        return (
            f"Thanks. You can {action} booking {booking_code} securely here: "
            f"{self.manage_link(booking_code)}. Is there anything else I can help you with?"
        )

    def availability(self, slots: list[Slot], preference: Optional[TimePreference] = None) -> str:
        if not slots:
            scope = f" for {preference.describe()}" if preference and preference.has_any() else ""
            return (
                f"I'm sorry, there are no open slots{scope} in the next two weeks. "
                "Would you like to try a different day or book a waitlist spot?"
            )
        scope = f" for {preference.describe()}" if preference and preference.has_any() else ""
        return (
            f"Here are the next available slots{scope}:\n\n"
            f"{self.format_slot_list(slots)}\n\n"
            "Would you like to book one of these? Just say \"book an appointment\"."
        )

    def preparation_info(self, topic: Optional[Topic]) -> str:
        items = PREPARATION_CHECKLIST.get(topic, PREPARATION_CHECKLIST[None])
        heading = f"For a {topic.value} consultation" if topic else "For your appointment"
        checklist = "\n".join(f"{index}. {item}" for index, item in enumerate(items, start=1))
        return (
            f"{heading}, please have ready:\n{checklist}\n\n"
            f"You can find more help at {HELP_URL}. Would you like to book an appointment?"
        )

    def side_branch_fallback(self) -> str:
        return (
            "I'm not sure how to help with that. I can book a new appointment, "
            "check availability, or tell you what to prepare. Would you like to book an appointment?"
        )

    # === Errors ===

    def apology(self) -> str:
        return "I'm sorry, something went wrong on my side. Could you please say that again?"


# Singleton
_generator: Optional[ResponseGenerator] = None


def get_response_generator() -> ResponseGenerator:
    """Get singleton ResponseGenerator."""
    global _generator
    if _generator is None:
        _generator = ResponseGenerator()
    return _generator
