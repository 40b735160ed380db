"""
Dialogue State Machine.

One handler per ConversationState, dispatched through a table that is
checked for completeness at construction. Each handler reads the
utterance (with help from the extraction library), updates the session's
collected details, and returns the reply plus the next state. The engine
applies the state change after validating it against the transition
table.

Side-branch intents (reschedule, cancel, check availability, what to
prepare) preempt the current handler from every non-terminal state.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Awaitable, Callable, Optional

from app.config import settings
from app.core.intelligence.extraction import (
    TopicClassifier,
    extract_slot_selection,
    extract_time_preference,
    extract_topic,
    extract_topic_fuzzy,
    find_booking_code,
    has_word_characters,
    is_cancellation,
    is_confirmation,
    is_short_reply,
    is_slot_decline,
    local_now,
    looks_like_language,
    normalize_text,
)
from app.core.intelligence.extraction.types import TimePreference
from app.core.intelligence.intent.types import OVERRIDE_INTENTS, Intent, IntentResult
from app.core.intelligence.session.models import DialogueSession
from app.core.intelligence.session.state import ConversationState, is_terminal_state
from .booking import BookingTrigger, is_valid_booking_code
from .calendar import SlotProvider
from .response import ResponseGenerator, get_response_generator

logger = logging.getLogger(__name__)


_BOOKING_KEYWORDS = re.compile(r"\b(book|appointment|schedule|meeting|slot)\b")

_MENU_DIFFERENT_SLOT = re.compile(r"^(1|one|first)\b|different slot|another slot|other slot")
_MENU_CHANGE_TIME = re.compile(r"^(2|two|second)\b|\btime\b|preference|another day")
_MENU_START_OVER = re.compile(r"^(3|three|third)\b|start over|start again|restart")

AVAILABILITY_LISTING_SIZE = 5
OFFER_SIZE = 2


@dataclass
class TurnResult:
    """What a handler decided for one turn."""

    reply: str
    next_state: ConversationState
    # e.g. "slots_offered", "booking_created", "booking_failed", "waitlisted"
    side_effects: list[str] = field(default_factory=list)


Handler = Callable[[DialogueSession, str, IntentResult], Awaitable[TurnResult]]


class DialogueStateMachine:
    """
    Per-state handlers for the advisor booking dialogue.

    Collaborators are injected so tests can substitute fakes.
    """

    def __init__(
        self,
        slot_provider: SlotProvider,
        booking_trigger: BookingTrigger,
        responses: Optional[ResponseGenerator] = None,
        topic_classifier: Optional[TopicClassifier] = None,
        override_threshold: Optional[float] = None,
        today_fn: Optional[Callable[[], date]] = None,
    ):
        """Initialize the state machine.

        Args:
            slot_provider: Source of candidate slots
            booking_trigger: Creates bookings and waitlist entries
            responses: Reply templates
            topic_classifier: Claude-assisted topic tier (optional)
            override_threshold: Minimum confidence for side-branch preemption
            today_fn: Reference date for parsing year-less dates
        """
        self._slots = slot_provider
        self._trigger = booking_trigger
        self._responses = responses or get_response_generator()
        self._topic_classifier = topic_classifier
        self._override_threshold = (
            override_threshold
            if override_threshold is not None
            else settings.intent_override_threshold
        )
        self._today_fn = today_fn or (lambda: local_now().date())

        self._handlers: dict[ConversationState, Handler] = {
            ConversationState.GREETING: self._handle_greeting,
            ConversationState.DISCLAIMER: self._handle_disclaimer,
            ConversationState.COLLECTING_TOPIC: self._handle_collecting_topic,
            ConversationState.COLLECTING_TIME_PREFERENCE: self._handle_collecting_time_preference,
            ConversationState.OFFERING_SLOTS: self._handle_offering_slots,
            ConversationState.CONFIRMING_BOOKING: self._handle_confirming_booking,
            ConversationState.BOOKING_CONFIRMED: self._handle_booking_confirmed,
            ConversationState.RESCHEDULING: self._handle_rescheduling,
            ConversationState.CANCELLING: self._handle_cancelling,
            ConversationState.CHECKING_AVAILABILITY: self._handle_checking_availability,
            ConversationState.PROVIDING_PREPARATION_INFO: self._handle_preparation_info,
            ConversationState.COMPLETED: self._handle_completed,
            ConversationState.ERROR: self._handle_error,
        }

        missing = set(ConversationState) - set(self._handlers)
        if missing:
            raise RuntimeError(
                f"No dialogue handler for states: {sorted(s.value for s in missing)}"
            )

        self._side_branch_entries: dict[Intent, Handler] = {
            Intent.RESCHEDULE: self._enter_rescheduling,
            Intent.CANCEL: self._enter_cancelling,
            Intent.CHECK_AVAILABILITY: self._enter_checking_availability,
            Intent.WHAT_TO_PREPARE: self._enter_preparation_info,
        }
        if set(self._side_branch_entries) != OVERRIDE_INTENTS:
            raise RuntimeError("Side-branch handlers do not match the override intents")

    def should_override(self, state: ConversationState, intent: IntentResult) -> bool:
        """Whether a side-branch intent preempts the current state."""
        return (
            not is_terminal_state(state)
            and intent.is_override
            and intent.confidence >= self._override_threshold
        )

    async def process_turn(
        self,
        session: DialogueSession,
        utterance: str,
        intent: IntentResult,
    ) -> TurnResult:
        """
        Run one dialogue turn.

        Args:
            session: Session to read and update (state is left to the caller)
            utterance: Raw caller text
            intent: Classification of the utterance

        Returns:
            TurnResult with reply and next state
        """
        if self.should_override(session.state, intent):
            logger.info(
                f"Intent override {intent.intent.value} "
                f"({intent.confidence:.2f}) from {session.state.value}"
            )
            return await self._side_branch_entries[intent.intent](session, utterance, intent)

        return await self._handlers[session.state](session, utterance, intent)

    # === Main path ===

    async def _handle_greeting(self, session, utterance, intent) -> TurnResult:
        if not looks_like_language(utterance):
            return TurnResult(self._responses.garbage_input(), ConversationState.GREETING)

        if (
            intent.intent == Intent.GREETING
            or self._wants_booking(utterance, intent)
            or is_confirmation(utterance)
        ):
            return TurnResult(self._responses.disclaimer(), ConversationState.DISCLAIMER)

        return TurnResult(self._responses.greeting_hint(), ConversationState.GREETING)

    async def _handle_disclaimer(self, session, utterance, intent) -> TurnResult:
        if not utterance.strip():
            return TurnResult(self._responses.disclaimer(), ConversationState.DISCLAIMER)
        return TurnResult(self._responses.topic_prompt(), ConversationState.COLLECTING_TOPIC)

    async def _handle_collecting_topic(self, session, utterance, intent) -> TurnResult:
        topic = extract_topic(utterance)

        if topic is None and self._topic_classifier and has_word_characters(utterance):
            topic = await self._topic_classifier.classify(utterance)

        if topic is None:
            topic = extract_topic_fuzzy(utterance, session.topic_failed_attempts)

        if topic is not None:
            session.topic = topic
            session.topic_failed_attempts = 0
            session.short_reply_streak = 0
            return TurnResult(
                self._responses.time_preference_prompt(topic),
                ConversationState.COLLECTING_TIME_PREFERENCE,
            )

        previous_failures = session.topic_failed_attempts
        session.topic_failed_attempts += 1
        session.short_reply_streak = session.short_reply_streak + 1 if is_short_reply(utterance) else 0

        if session.short_reply_streak >= settings.short_reply_limit:
            reply = self._responses.suggest_text_mode()
        else:
            reply = self._responses.topic_help(previous_failures)

        logger.debug(
            f"Topic not recognised (attempt {session.topic_failed_attempts}) "
            f"for session {session.session_id}"
        )
        return TurnResult(reply, ConversationState.COLLECTING_TOPIC)

    async def _handle_collecting_time_preference(self, session, utterance, intent) -> TurnResult:
        preference = extract_time_preference(utterance, today=self._today_fn())

        if preference is None:
            session.time_preference_failures += 1
            return TurnResult(
                self._responses.time_preference_reprompt(session.time_preference_failures),
                ConversationState.COLLECTING_TIME_PREFERENCE,
            )

        session.time_preference = preference
        session.time_preference_failures = 0

        slots = await self._slots.get_candidate_slots(preference, limit=OFFER_SIZE)
        if not slots:
            await self._trigger.waitlist(session)
            return TurnResult(
                self._responses.waitlist(session.topic, session.waitlist_code),
                ConversationState.COMPLETED,
                side_effects=["waitlisted"] if session.waitlist_code else [],
            )

        session.offer(slots)
        return TurnResult(
            self._responses.slot_offer(slots, preference),
            ConversationState.OFFERING_SLOTS,
            side_effects=["slots_offered"],
        )

    async def _handle_offering_slots(self, session, utterance, intent) -> TurnResult:
        if not session.offered_slots:
            return TurnResult(
                self._responses.ask_new_preference(),
                ConversationState.COLLECTING_TIME_PREFERENCE,
            )

        today = self._today_fn()
        preference = extract_time_preference(utterance, today=today)

        if preference and preference.is_revision:
            return await self._reoffer(session, preference)

        if is_slot_decline(utterance):
            return TurnResult(self._responses.ask_new_preference(), ConversationState.OFFERING_SLOTS)

        if preference and preference.specific_date and not any(
            slot.local_date == preference.specific_date for slot in session.offered_slots
        ):
            return await self._reoffer(session, preference)

        selected = extract_slot_selection(utterance, session.offered_slots, today=today)
        if selected is None:
            return TurnResult(
                self._responses.slot_reoffer(session.offered_slots),
                ConversationState.OFFERING_SLOTS,
            )

        session.select(selected)
        session.confirmation_reprompts = 0
        return TurnResult(
            self._responses.confirmation_prompt(session.topic, selected)
            if session.topic
            else self._responses.confirmation_reprompt(selected),
            ConversationState.CONFIRMING_BOOKING,
        )

    async def _reoffer(self, session: DialogueSession, update: TimePreference) -> TurnResult:
        preference = (
            session.time_preference.revised(update) if session.time_preference else update
        )
        slots = await self._slots.get_candidate_slots(preference, limit=OFFER_SIZE)

        if not slots:
            return TurnResult(
                self._responses.no_slots_for_preference(preference, session.offered_slots),
                ConversationState.OFFERING_SLOTS,
            )

        session.time_preference = preference
        session.offer(slots)
        return TurnResult(
            self._responses.slot_offer(slots, preference),
            ConversationState.OFFERING_SLOTS,
            side_effects=["slots_offered"],
        )

    async def _handle_confirming_booking(self, session, utterance, intent) -> TurnResult:
        if session.topic is None or session.selected_slot is None:
            session.reset_booking_progress()
            return TurnResult(
                self._responses.missing_booking_details(),
                ConversationState.COLLECTING_TOPIC,
            )

        if is_confirmation(utterance):
            return await self._book(session)

        if is_cancellation(utterance):
            return self._back_to_offers(session)

        # Menu choices are honoured once the menu has been read out
        if session.confirmation_reprompts >= 2:
            choice = self._menu_choice(utterance)
            if choice == 1:
                return self._back_to_offers(session)
            if choice == 2:
                session.selected_slot = None
                session.confirmation_reprompts = 0
                return TurnResult(
                    self._responses.ask_new_preference(),
                    ConversationState.COLLECTING_TIME_PREFERENCE,
                )
            if choice == 3:
                session.reset_booking_progress()
                return TurnResult(self._responses.start_over(), ConversationState.COLLECTING_TOPIC)

        session.confirmation_reprompts += 1
        if session.confirmation_reprompts == 1:
            reply = self._responses.confirmation_reprompt(session.selected_slot)
        else:
            reply = self._responses.confirmation_menu()
        return TurnResult(reply, ConversationState.CONFIRMING_BOOKING)

    def _menu_choice(self, utterance: str) -> Optional[int]:
        text = normalize_text(utterance)
        if _MENU_START_OVER.search(text):
            return 3
        if _MENU_DIFFERENT_SLOT.search(text):
            return 1
        if _MENU_CHANGE_TIME.search(text):
            return 2
        return None

    def _back_to_offers(self, session: DialogueSession) -> TurnResult:
        session.selected_slot = None
        session.confirmation_reprompts = 0
        if session.offered_slots:
            return TurnResult(
                self._responses.choose_another_slot(session.offered_slots),
                ConversationState.OFFERING_SLOTS,
            )
        return TurnResult(
            self._responses.ask_new_preference(),
            ConversationState.COLLECTING_TIME_PREFERENCE,
        )

    async def _book(self, session: DialogueSession) -> TurnResult:
        outcome = await self._trigger.trigger(session)

        if outcome.success:
            return TurnResult(
                self._responses.booking_confirmed(
                    outcome.booking_code, session.topic, session.selected_slot
                ),
                ConversationState.BOOKING_CONFIRMED,
                side_effects=["booking_created"],
            )

        return TurnResult(
            self._responses.booking_failed(outcome.reason),
            ConversationState.ERROR,
            side_effects=["booking_failed"],
        )

    async def _handle_booking_confirmed(self, session, utterance, intent) -> TurnResult:
        return TurnResult(
            self._responses.booking_summary(session.booking_code),
            ConversationState.COMPLETED,
        )

    async def _handle_completed(self, session, utterance, intent) -> TurnResult:
        return TurnResult(self._responses.conversation_closed(), ConversationState.COMPLETED)

    async def _handle_error(self, session, utterance, intent) -> TurnResult:
        session.selected_slot = None
        session.confirmation_reprompts = 0

        update = extract_time_preference(utterance, today=self._today_fn())
        preference = update
        if session.time_preference:
            preference = session.time_preference.revised(update) if update else session.time_preference

        if preference:
            slots = await self._slots.get_candidate_slots(preference, limit=OFFER_SIZE)
            if slots:
                session.time_preference = preference
                session.offer(slots)
                return TurnResult(
                    self._responses.recovery_offer(slots),
                    ConversationState.OFFERING_SLOTS,
                    side_effects=["slots_offered"],
                )

        return TurnResult(
            self._responses.ask_new_preference(),
            ConversationState.COLLECTING_TIME_PREFERENCE,
        )

    # === Side branches ===

    def _wants_booking(self, utterance: str, intent: IntentResult) -> bool:
        return intent.intent == Intent.BOOK_NEW or bool(
            _BOOKING_KEYWORDS.search(normalize_text(utterance))
        )

    def _restart_booking(self, session: DialogueSession) -> TurnResult:
        session.reset_booking_progress()
        return TurnResult(self._responses.disclaimer(), ConversationState.DISCLAIMER)

    def _manage_booking(
        self,
        utterance: str,
        action: str,
        state: ConversationState,
        prompt: str,
    ) -> TurnResult:
        code = find_booking_code(utterance)
        if code and is_valid_booking_code(code):
            return TurnResult(self._responses.manage_booking(code, action), state)
        return TurnResult(prompt, state)

    async def _enter_rescheduling(self, session, utterance, intent) -> TurnResult:
        return self._manage_booking(
            utterance, "reschedule", ConversationState.RESCHEDULING,
            self._responses.reschedule_prompt(),
        )

    async def _enter_cancelling(self, session, utterance, intent) -> TurnResult:
        return self._manage_booking(
            utterance, "cancel", ConversationState.CANCELLING,
            self._responses.cancel_prompt(),
        )

    async def _enter_checking_availability(self, session, utterance, intent) -> TurnResult:
        preference = extract_time_preference(utterance, today=self._today_fn())
        slots = await self._slots.get_candidate_slots(preference, limit=AVAILABILITY_LISTING_SIZE)
        return TurnResult(
            self._responses.availability(slots, preference),
            ConversationState.CHECKING_AVAILABILITY,
        )

    async def _enter_preparation_info(self, session, utterance, intent) -> TurnResult:
        return TurnResult(
            self._responses.preparation_info(session.topic),
            ConversationState.PROVIDING_PREPARATION_INFO,
        )

    async def _handle_rescheduling(self, session, utterance, intent) -> TurnResult:
        if self._wants_new_booking(utterance, intent):
            return self._restart_booking(session)
        return await self._enter_rescheduling(session, utterance, intent)

    async def _handle_cancelling(self, session, utterance, intent) -> TurnResult:
        if self._wants_new_booking(utterance, intent):
            return self._restart_booking(session)
        return await self._enter_cancelling(session, utterance, intent)

    async def _handle_checking_availability(self, session, utterance, intent) -> TurnResult:
        if self._wants_new_booking(utterance, intent):
            return self._restart_booking(session)
        if extract_time_preference(utterance, today=self._today_fn()):
            return await self._enter_checking_availability(session, utterance, intent)
        return TurnResult(
            self._responses.side_branch_fallback(),
            ConversationState.CHECKING_AVAILABILITY,
        )

    async def _handle_preparation_info(self, session, utterance, intent) -> TurnResult:
        if self._wants_new_booking(utterance, intent):
            return self._restart_booking(session)
        return TurnResult(
            self._responses.side_branch_fallback(),
            ConversationState.PROVIDING_PREPARATION_INFO,
        )

    def _wants_new_booking(self, utterance: str, intent: IntentResult) -> bool:
        # Side-branch replies end with "Would you like to book an appointment?"
        return self._wants_booking(utterance, intent) or is_confirmation(utterance)
