"""
Conversation Engine - Main Orchestrator.

Owns the produced interface: start a session, process a turn, read back
history and state. Each turn runs under a per-session lock:

    load session -> classify intent -> state handler -> validate transition
    -> append transcript -> save session -> conversation log

A turn never raises for any utterance; only an unknown session id does.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

from app.config import settings
from app.core.intelligence.extraction import TopicClassifier
from app.core.intelligence.intent.classifier import IntentClassifier, get_intent_classifier
from app.core.intelligence.intent.types import Intent, IntentResult
from app.core.intelligence.session.manager import SessionStore, get_session_store
from app.core.intelligence.session.models import DialogueSession, Message
from app.core.intelligence.session.state import ConversationState, can_transition
from app.infra.conversation_log import ConversationLogger, get_conversation_logger
from .booking import BookingTrigger, InMemoryBookingService
from .calendar import CalendarSlotProvider
from .flow import DialogueStateMachine, TurnResult
from .response import ResponseGenerator, get_response_generator

logger = logging.getLogger(__name__)


class SessionNotFoundError(Exception):
    """No session exists for the given id."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


@dataclass
class StartSessionResult:
    """A freshly created session and its greeting."""

    session_id: str
    greeting: str
    state: ConversationState = ConversationState.GREETING

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "greeting": self.greeting,
            "state": self.state.value,
        }


@dataclass
class VoiceMetadata:
    """How the utterance arrived and how the reply will be played."""

    is_voice_input: bool = False
    transcribed_text: Optional[str] = None
    is_tts_response: bool = False
    tts_model: Optional[str] = None
    tts_voice: Optional[str] = None

    def input_metadata(self) -> dict:
        data = {"is_voice_input": self.is_voice_input}
        if self.transcribed_text:
            data["transcribed_text"] = self.transcribed_text
        return data

    def output_metadata(self) -> dict:
        data = {"is_tts_response": self.is_tts_response}
        if self.tts_model:
            data["tts_model"] = self.tts_model
        if self.tts_voice:
            data["tts_voice"] = self.tts_voice
        return data


@dataclass
class TurnResponse:
    """Response from the conversation engine for one turn."""

    reply: str
    session_id: str
    state: ConversationState
    intent: Optional[Intent] = None
    confidence: Optional[float] = None
    booking_code: Optional[str] = None
    processing_time_ms: Optional[float] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        result = {
            "reply": self.reply,
            "session_id": self.session_id,
            "state": self.state.value,
        }

        if self.intent:
            result["intent"] = self.intent.value
        if self.confidence is not None:
            result["confidence"] = self.confidence
        if self.booking_code:
            result["booking_code"] = self.booking_code
        if self.processing_time_ms is not None:
            result["processing_time_ms"] = self.processing_time_ms

        return result


class ConversationEngine:
    """
    Main orchestrator for the advisor booking dialogue.

    Coordinates:
    - Session store
    - Intent classification
    - Dialogue state machine
    - Conversation log
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        classifier: Optional[IntentClassifier] = None,
        state_machine: Optional[DialogueStateMachine] = None,
        conversation_logger: Optional[ConversationLogger] = None,
        responses: Optional[ResponseGenerator] = None,
    ):
        """Initialize engine with optional dependencies.

        Args:
            store: Session store
            classifier: Two-tier intent classifier
            state_machine: Per-state dialogue handlers
            conversation_logger: Conversation log writer (None disables logging
                unless enabled in settings)
            responses: Reply templates
        """
        self._store = store
        self._classifier = classifier
        self._state_machine = state_machine
        self._conversation_logger = conversation_logger
        self._responses = responses
        # Per-session turn locks, dropped once no turn holds or awaits them
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def _get_store(self) -> SessionStore:
        if self._store is None:
            self._store = get_session_store()
        return self._store

    def _get_classifier(self) -> IntentClassifier:
        if self._classifier is None:
            self._classifier = get_intent_classifier()
        return self._classifier

    def _get_responses(self) -> ResponseGenerator:
        if self._responses is None:
            self._responses = get_response_generator()
        return self._responses

    def _get_state_machine(self) -> DialogueStateMachine:
        if self._state_machine is None:
            self._state_machine = build_state_machine(self._get_responses())
        return self._state_machine

    def _get_conversation_logger(self) -> Optional[ConversationLogger]:
        if self._conversation_logger is None and settings.conversation_log_enabled:
            self._conversation_logger = get_conversation_logger()
        return self._conversation_logger

    @asynccontextmanager
    async def _session_lock(self, session_id: str) -> AsyncGenerator[None, None]:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if self._lock_users[session_id] == 0:
                del self._lock_users[session_id]
                del self._locks[session_id]

    async def get_session(self, session_id: str) -> DialogueSession:
        """Load a session.

        Raises:
            SessionNotFoundError: If the id is unknown
        """
        session = await self._get_store().get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def start_session(self) -> StartSessionResult:
        """Create a session in GREETING and return its greeting."""
        store = self._get_store()
        session = await store.create()

        greeting = self._get_responses().greeting()
        session.add_message("assistant", greeting, {"state": session.state.value})
        await store.save(session)

        conversation_logger = self._get_conversation_logger()
        if conversation_logger:
            await conversation_logger.log_assistant_response(
                session.session_id, greeting, {"state": session.state.value}
            )

        logger.info(f"Session started: {session.session_id}")
        return StartSessionResult(session_id=session.session_id, greeting=greeting)

    async def process_turn(
        self,
        session_id: str,
        utterance: Optional[str],
        voice: Optional[VoiceMetadata] = None,
    ) -> TurnResponse:
        """Process one caller utterance.

        Args:
            session_id: Existing session id
            utterance: Caller text (typed or transcribed); may be empty
            voice: Optional voice/TTS metadata for the transcript

        Returns:
            TurnResponse with the reply and resulting state

        Raises:
            SessionNotFoundError: If the id is unknown
        """
        start_time = time.time()
        utterance = utterance or ""
        voice = voice or VoiceMetadata()

        async with self._session_lock(session_id):
            session = await self.get_session(session_id)
            old_state = session.state
            session.add_message("user", utterance, voice.input_metadata())

            intent, result = await self._run_turn(session, utterance)

            next_state = result.next_state
            if not can_transition(old_state, next_state):
                logger.error(
                    f"Rejected transition {old_state.value} -> {next_state.value} "
                    f"for session {session_id}"
                )
                next_state = old_state
            session.state = next_state

            reply_metadata = {
                "intent": intent.intent.value,
                "state": next_state.value,
                **voice.output_metadata(),
            }
            if session.booking_code:
                reply_metadata["booking_code"] = session.booking_code
            session.add_message("assistant", result.reply, reply_metadata)

            await self._get_store().save(session)

        await self._log_turn(session, utterance, voice, intent, old_state, result, reply_metadata)

        processing_time_ms = (time.time() - start_time) * 1000
        logger.debug(
            f"Turn processed for {session_id}: {old_state.value} -> {next_state.value} "
            f"({processing_time_ms:.0f}ms)"
        )

        return TurnResponse(
            reply=result.reply,
            session_id=session_id,
            state=next_state,
            intent=intent.intent,
            confidence=intent.confidence,
            booking_code=session.booking_code,
            processing_time_ms=processing_time_ms,
        )

    async def _run_turn(
        self,
        session: DialogueSession,
        utterance: str,
    ) -> tuple[IntentResult, TurnResult]:
        intent = IntentResult(intent=Intent.UNKNOWN, confidence=0.0)
        try:
            intent = await self._get_classifier().classify(utterance, session.state)
            session.current_intent = intent.intent
            result = await self._get_state_machine().process_turn(session, utterance, intent)
        except Exception as e:
            logger.error(
                f"Error processing turn for session {session.session_id}: {e}",
                exc_info=True,
            )
            result = TurnResult(self._get_responses().apology(), session.state)
        return intent, result

    async def _log_turn(
        self,
        session: DialogueSession,
        utterance: str,
        voice: VoiceMetadata,
        intent: IntentResult,
        old_state: ConversationState,
        result: TurnResult,
        reply_metadata: dict,
    ) -> None:
        conversation_logger = self._get_conversation_logger()
        if conversation_logger is None:
            return

        session_id = session.session_id
        await conversation_logger.log_user_input(
            session_id,
            utterance,
            {**voice.input_metadata(), "state": old_state.value},
        )
        await conversation_logger.log_intent(
            session_id, intent.intent.value, intent.confidence, utterance
        )
        if session.state != old_state:
            await conversation_logger.log_state_change(
                session_id, old_state.value, session.state.value
            )
        if "booking_created" in result.side_effects and session.booking_code:
            await conversation_logger.log_booking_action(
                session_id,
                "created",
                session.booking_code,
                {
                    "topic": session.topic.value if session.topic else None,
                    "slot": session.selected_slot.to_dict() if session.selected_slot else None,
                },
            )
        if "waitlisted" in result.side_effects and session.waitlist_code:
            await conversation_logger.log_booking_action(
                session_id, "waitlisted", session.waitlist_code
            )
        await conversation_logger.log_assistant_response(session_id, result.reply, reply_metadata)

    async def get_history(self, session_id: str) -> list[Message]:
        """Transcript of a session in arrival order."""
        session = await self.get_session(session_id)
        return list(session.messages)

    async def get_state(self, session_id: str) -> ConversationState:
        session = await self.get_session(session_id)
        return session.state

    async def get_session_debug(self, session_id: str) -> dict:
        """Session details without the transcript."""
        session = await self.get_session(session_id)
        return session.debug_snapshot()


def build_state_machine(responses: Optional[ResponseGenerator] = None) -> DialogueStateMachine:
    """Wire the state machine with the default calendar and booking service."""
    booking_service = InMemoryBookingService()
    slot_provider = CalendarSlotProvider(booking_service=booking_service)
    topic_classifier = TopicClassifier() if settings.remote_classifier_available else None
    return DialogueStateMachine(
        slot_provider=slot_provider,
        booking_trigger=BookingTrigger(booking_service),
        responses=responses,
        topic_classifier=topic_classifier,
    )


# Singleton
_engine: Optional[ConversationEngine] = None


def get_conversation_engine() -> ConversationEngine:
    """Get singleton ConversationEngine."""
    global _engine
    if _engine is None:
        _engine = ConversationEngine()
    return _engine
