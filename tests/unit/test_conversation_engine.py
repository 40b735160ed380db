"""Tests for Conversation Engine."""

import asyncio
import re

import pytest
from unittest.mock import AsyncMock, MagicMock

from app.core.intelligence.extraction.types import Topic
from app.core.intelligence.intent.classifier import IntentClassifier
from app.core.intelligence.session.manager import InMemorySessionStore
from app.core.intelligence.session.models import DialogueSession
from app.core.intelligence.session.state import (
    ConversationState,
    TERMINAL_STATES,
    can_transition,
)
from app.core.scheduling.booking import BookingTrigger, InMemoryBookingService
from app.core.scheduling.engine import (
    ConversationEngine,
    SessionNotFoundError,
    VoiceMetadata,
)
from app.core.scheduling.flow import DialogueStateMachine, TurnResult
from app.core.scheduling.response import ResponseGenerator
from tests.factories import TODAY, FakeSlotProvider


class TestConversationEngine:
    """End-to-end turns through the engine with rules-only classification."""

    @pytest.fixture
    def responses(self):
        return ResponseGenerator(timezone_label="IST", frontend_url="https://book.example.com")

    @pytest.fixture
    def store(self):
        return InMemorySessionStore()

    @pytest.fixture
    def provider(self, two_slots):
        return FakeSlotProvider(two_slots)

    @pytest.fixture
    def state_machine(self, provider, responses):
        return DialogueStateMachine(
            slot_provider=provider,
            booking_trigger=BookingTrigger(InMemoryBookingService()),
            responses=responses,
            override_threshold=0.7,
            today_fn=lambda: TODAY,
        )

    @pytest.fixture
    def engine(self, store, state_machine, responses):
        return ConversationEngine(
            store=store,
            classifier=IntentClassifier(remote=None),
            state_machine=state_machine,
            responses=responses,
        )

    async def _session_in(self, store, state, **details) -> DialogueSession:
        session = DialogueSession(state=state, **details)
        await store.save(session)
        return session

    # === Session lifecycle ===

    @pytest.mark.asyncio
    async def test_start_session(self, engine, responses):
        started = await engine.start_session()

        assert started.session_id
        assert started.greeting == responses.greeting()
        assert await engine.get_state(started.session_id) == ConversationState.GREETING

        history = await engine.get_history(started.session_id)
        assert [(m.role, m.content) for m in history] == [("assistant", responses.greeting())]

    @pytest.mark.asyncio
    async def test_sessions_are_independent(self, engine):
        first = await engine.start_session()
        second = await engine.start_session()

        await engine.process_turn(first.session_id, "I want to book an appointment")

        assert first.session_id != second.session_id
        assert await engine.get_state(first.session_id) == ConversationState.DISCLAIMER
        assert await engine.get_state(second.session_id) == ConversationState.GREETING

    @pytest.mark.asyncio
    async def test_unknown_session(self, engine):
        with pytest.raises(SessionNotFoundError) as exc_info:
            await engine.process_turn("does-not-exist", "hello")
        assert exc_info.value.session_id == "does-not-exist"

        with pytest.raises(SessionNotFoundError):
            await engine.get_history("does-not-exist")
        with pytest.raises(SessionNotFoundError):
            await engine.get_state("does-not-exist")

    @pytest.mark.asyncio
    async def test_turn_locks_are_released(self, engine):
        for i in range(100):
            with pytest.raises(SessionNotFoundError):
                await engine.process_turn(f"bogus-{i}", "hi")

        sid = (await engine.start_session()).session_id
        await engine.process_turn(sid, "hello")

        assert engine._locks == {}
        assert engine._lock_users == {}

    # === Booking scenarios ===

    @pytest.mark.asyncio
    async def test_booking_request_reaches_topic_collection(self, engine):
        sid = (await engine.start_session()).session_id

        first = await engine.process_turn(sid, "I want to book an appointment")
        second = await engine.process_turn(sid, "ok")

        assert first.state == ConversationState.DISCLAIMER
        assert second.state == ConversationState.COLLECTING_TOPIC

    @pytest.mark.asyncio
    @pytest.mark.parametrize("utterance", ["KYC onboarding", "one"])
    async def test_topic_then_time_preference(self, engine, store, utterance):
        session = await self._session_in(store, ConversationState.COLLECTING_TOPIC)

        response = await engine.process_turn(session.session_id, utterance)

        assert response.state == ConversationState.COLLECTING_TIME_PREFERENCE
        assert (await engine.get_session(session.session_id)).topic == Topic.KYC_ONBOARDING

    @pytest.mark.asyncio
    async def test_first_slot_selected(self, engine, store, two_slots):
        session = await self._session_in(
            store, ConversationState.OFFERING_SLOTS, topic=Topic.SIP_MANDATES
        )
        session.offer(two_slots)

        response = await engine.process_turn(session.session_id, "first")

        assert response.state == ConversationState.CONFIRMING_BOOKING
        loaded = await engine.get_session(session.session_id)
        assert loaded.selected_slot == loaded.offered_slots[0]

    @pytest.mark.asyncio
    async def test_full_booking(self, engine):
        sid = (await engine.start_session()).session_id

        for utterance in [
            "I want to book an appointment",
            "ok",
            "SIP mandates",
            "Wednesday morning",
            "first",
        ]:
            await engine.process_turn(sid, utterance)
        response = await engine.process_turn(sid, "yes")

        assert response.state == ConversationState.BOOKING_CONFIRMED
        assert re.match(r"^[A-Z]{2}-[A-Z0-9]{4}$", response.booking_code)
        assert response.to_dict()["booking_code"] == response.booking_code

        history = await engine.get_history(sid)
        assert history[-1].metadata["booking_code"] == response.booking_code

        closing = await engine.process_turn(sid, "thank you")
        assert closing.state == ConversationState.COMPLETED
        assert closing.booking_code == response.booking_code

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "state",
        [s for s in ConversationState if s not in TERMINAL_STATES],
    )
    async def test_cancel_from_any_active_state(self, engine, store, two_slots, state):
        session = await self._session_in(store, state, topic=Topic.KYC_ONBOARDING)
        session.offer(two_slots)
        session.select(two_slots[0])

        response = await engine.process_turn(session.session_id, "cancel")

        assert response.state == ConversationState.CANCELLING

    # === Robustness ===

    @pytest.mark.asyncio
    async def test_noise_never_raises(self, engine):
        sid = (await engine.start_session()).session_id
        previous = ConversationState.GREETING

        for utterance in ["", "   ", "😀😀", "!!!!", "ԾԾԾԾ", None, "I want to book", "", "🙂", "?"]:
            response = await engine.process_turn(sid, utterance)
            assert response.reply
            assert can_transition(previous, response.state)
            previous = response.state

    @pytest.mark.asyncio
    async def test_topic_help_escalates(self, engine, store, responses):
        session = await self._session_in(store, ConversationState.COLLECTING_TOPIC)

        replies = [
            (await engine.process_turn(session.session_id, text)).reply
            for text in ["something about money", "the thing I mentioned", "I am not really sure"]
        ]

        assert replies == [responses.topic_help(n) for n in range(3)]

    @pytest.mark.asyncio
    async def test_voice_metadata_in_transcript(self, engine):
        sid = (await engine.start_session()).session_id
        voice = VoiceMetadata(
            is_voice_input=True,
            transcribed_text="i want to book",
            is_tts_response=True,
            tts_voice="alloy",
        )

        await engine.process_turn(sid, "i want to book", voice)

        user, assistant = (await engine.get_history(sid))[-2:]
        assert user.metadata == {"is_voice_input": True, "transcribed_text": "i want to book"}
        assert assistant.metadata["is_tts_response"] is True
        assert assistant.metadata["tts_voice"] == "alloy"
        assert assistant.metadata["state"] == "DISCLAIMER"
        assert assistant.metadata["intent"] == "book_new"

    # === Failure handling ===

    @pytest.mark.asyncio
    async def test_handler_error_apologises(self, store, responses):
        state_machine = MagicMock()
        state_machine.process_turn = AsyncMock(side_effect=RuntimeError("boom"))
        engine = ConversationEngine(
            store=store,
            classifier=IntentClassifier(remote=None),
            state_machine=state_machine,
            responses=responses,
        )
        session = await self._session_in(store, ConversationState.COLLECTING_TOPIC)

        response = await engine.process_turn(session.session_id, "kyc")

        assert response.reply == responses.apology()
        assert response.state == ConversationState.COLLECTING_TOPIC
        assert len((await engine.get_history(session.session_id))) == 2

    @pytest.mark.asyncio
    async def test_invalid_transition_rejected(self, store, responses):
        state_machine = MagicMock()
        state_machine.process_turn = AsyncMock(
            return_value=TurnResult("Booked!", ConversationState.BOOKING_CONFIRMED)
        )
        engine = ConversationEngine(
            store=store,
            classifier=IntentClassifier(remote=None),
            state_machine=state_machine,
            responses=responses,
        )
        session = await self._session_in(store, ConversationState.GREETING)

        response = await engine.process_turn(session.session_id, "hello")

        assert response.state == ConversationState.GREETING

    @pytest.mark.asyncio
    async def test_turns_on_one_session_are_serialised(self, store, responses):
        class SlowStateMachine:
            def __init__(self):
                self.active = 0
                self.max_active = 0

            async def process_turn(self, session, utterance, intent):
                self.active += 1
                self.max_active = max(self.max_active, self.active)
                await asyncio.sleep(0.01)
                self.active -= 1
                return TurnResult(f"echo {utterance}", session.state)

        state_machine = SlowStateMachine()
        engine = ConversationEngine(
            store=store,
            classifier=IntentClassifier(remote=None),
            state_machine=state_machine,
            responses=responses,
        )
        sid = (await engine.start_session()).session_id

        await asyncio.gather(
            engine.process_turn(sid, "first message"),
            engine.process_turn(sid, "second message"),
        )

        assert state_machine.max_active == 1
        contents = [m.content for m in await engine.get_history(sid)]
        assert len(contents) == 5
        # Each reply directly follows its own utterance
        for user, reply in zip(contents[1::2], contents[2::2]):
            assert reply == f"echo {user}"

    # === Conversation log ===

    @pytest.mark.asyncio
    async def test_turn_is_logged(self, store, state_machine, responses):
        conversation_logger = AsyncMock()
        engine = ConversationEngine(
            store=store,
            classifier=IntentClassifier(remote=None),
            state_machine=state_machine,
            conversation_logger=conversation_logger,
            responses=responses,
        )
        sid = (await engine.start_session()).session_id

        await engine.process_turn(sid, "I want to book an appointment")

        conversation_logger.log_user_input.assert_awaited_once()
        conversation_logger.log_intent.assert_awaited_once_with(
            sid, "book_new", pytest.approx(0.85), "I want to book an appointment"
        )
        conversation_logger.log_state_change.assert_awaited_once_with(
            sid, "GREETING", "DISCLAIMER"
        )
        # Greeting plus the reply
        assert conversation_logger.log_assistant_response.await_count == 2

    @pytest.mark.asyncio
    async def test_debug_snapshot(self, engine):
        sid = (await engine.start_session()).session_id

        snapshot = await engine.get_session_debug(sid)

        assert snapshot["session_id"] == sid
        assert snapshot["messages_count"] == 1
