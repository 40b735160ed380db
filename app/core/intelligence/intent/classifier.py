"""
Two-tier intent classification.

1. RemoteIntentClassifier asks Claude for a label from a fixed set.
2. RuleBasedIntentClassifier is a deterministic keyword table tuned per
   dialogue state. It answers when the remote tier is unavailable, fails,
   or is less confident, and it short-circuits replies that obviously
   answer the current question ("2", "yes", "Monday morning") so those are
   left to extraction instead of being read as a new intent.

IntentClassifier combines both and never raises.
"""

import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Optional

from app.config import settings
from app.infra.claude import (
    ClaudeClient,
    ClaudeClientError,
    get_claude_client,
    parse_json_content,
)
from app.core.intelligence.extraction import (
    extract_time_preference,
    extract_topic,
    normalize_text,
)
from app.core.intelligence.extraction.dates import extract_day, extract_time_of_day
from app.core.intelligence.extraction.selection import SLOT_DECLINE
from app.core.intelligence.extraction.text import strip_edge_punctuation
from app.core.intelligence.session.state import ConversationState
from .types import Intent, IntentResult

logger = logging.getLogger(__name__)


class IntentClassificationError(Exception):
    """Raised when the remote classifier cannot produce a usable label."""
    pass


CLASSIFICATION_PROMPT = """You are an intent classifier for a financial advisor appointment scheduler.
Callers speak or type; voice input may contain transcription errors.

Classify the caller's message into ONE intent.

## Intents

- book_new: wants to BOOK a new advisor appointment
- reschedule: wants to MOVE an existing appointment to another time
- cancel: wants to CANCEL an existing appointment
- check_availability: asks which slots or times are AVAILABLE
- what_to_prepare: asks what to PREPARE or BRING to the appointment
- greeting: hello, hi, namaste
- unknown: anything else, INCLUDING answers to the scheduler's current question

## Important

If the message is a number, an ordinal ("first", "option 2"), a yes/no reply,
a topic name, a day or a time of day, it is almost always an answer to the
current question: use "unknown".

## Context

Current dialogue state: {state}

## Caller Message

"{message}"

## Response

Respond with ONLY valid JSON:
{{"intent": "<intent>", "confidence": <0.0-1.0>}}"""


class BaseIntentClassifier(ABC):
    """Interface shared by every classifier tier."""

    @abstractmethod
    async def classify(
        self,
        message: str,
        state: Optional[ConversationState] = None,
    ) -> IntentResult:
        """Classify a caller utterance."""


class RemoteIntentClassifier(BaseIntentClassifier):
    """
    Claude-backed classifier.

    Raises IntentClassificationError instead of guessing, so the two-tier
    classifier can fall back.
    """

    def __init__(self, claude_client: Optional[ClaudeClient] = None):
        """Initialize classifier.

        Args:
            claude_client: Optional Claude client (for testing)
        """
        self._client = claude_client

    async def _get_client(self) -> ClaudeClient:
        if self._client is None:
            self._client = await get_claude_client()
        if self._client is None:
            raise IntentClassificationError("Remote classifier is not configured")
        return self._client

    async def classify(
        self,
        message: str,
        state: Optional[ConversationState] = None,
    ) -> IntentResult:
        start_time = time.time()
        client = await self._get_client()

        prompt = CLASSIFICATION_PROMPT.format(
            state=state.value if state else "GREETING",
            message=message[:500],
        )

        try:
            response = await client.generate(
                prompt=prompt,
                max_tokens=60,
                temperature=0,
            )
        except ClaudeClientError as e:
            raise IntentClassificationError(str(e)) from e

        result = self._parse_response(response.content)
        result.processing_time_ms = (time.time() - start_time) * 1000
        return result

    def _parse_response(self, content: str) -> IntentResult:
        """Parse LLM JSON response."""
        try:
            data = parse_json_content(content)
        except ClaudeClientError as e:
            raise IntentClassificationError(str(e)) from e

        label = re.sub(r"[^a-z_]", "", str(data.get("intent", "unknown")).lower())
        try:
            intent = Intent(label)
        except ValueError:
            logger.debug(f"Unrecognised intent label from model: {label!r}")
            intent = Intent.UNKNOWN

        try:
            confidence = float(data.get("confidence", 0.5))
        except (TypeError, ValueError):
            confidence = 0.5

        return IntentResult(
            intent=intent,
            confidence=confidence,
            source="remote",
            raw_response=content,
        )


# === Rule tables ===

_GREETING = re.compile(
    r"^(hi|hello|hey|hiya|good morning|good afternoon|good evening|namaste)\b"
)
_RESCHEDULE = re.compile(
    r"\b(reschedule|re-schedule|postpone)\b"
    r"|\b(move|shift|push) (it|my appointment|the appointment|my booking|the booking|my meeting|the meeting)\b"
    r"|change (the |my )?(time|date)"
)
_CANCEL = re.compile(r"\b(cancel|delete|remove)\b|don'?t need|not needed")
_PREPARE = re.compile(
    r"\bwhat (do|should) i (need to )?(need|bring|carry|prepare)\b"
    r"|\bhow (do|should) i prepare\b|\bprepare for (the|my) (appointment|meeting|consultation|call)\b"
    r"|\bwhat (documents|papers|details)\b|\b(documents|papers) (are )?(required|needed)\b|\bchecklist\b"
)
_AVAILABILITY = re.compile(
    r"\b(available|availability|free|open)\b|what time|when can|which slots"
)
_BOOK = re.compile(
    r"\b(book|schedule|appointment|slot|meeting|consultation)\b|new booking"
)
# Only these verbs outrank a booking request at the start of a call
_EXPLICIT_CHANGE = re.compile(r"\b(reschedule|re-schedule|postpone|cancel)\b")
_BOOKING_FIRST_STATES = (ConversationState.GREETING, ConversationState.DISCLAIMER)

_YES_NO = frozenset({
    "yes", "y", "yeah", "yep", "ok", "okay", "sure", "proceed", "confirm", "book it",
    "no", "n", "nope", "don't", "dont", "not", "stop", "nevermind", "never mind",
})
_SLOT_REPLY = re.compile(
    r"^(the |slot |option |number )?(\d{1,2}|one|two|first|second|1st|2nd)"
    r"( one| slot| option| please)?$"
)
_CONFIRM_MENU = re.compile(
    r"different slot|another slot|other slot|change (the |my )?(time|preference)|start over|start again"
)


class RuleBasedIntentClassifier(BaseIntentClassifier):
    """Deterministic keyword classifier. Never raises."""

    def state_local_answer(
        self,
        message: str,
        state: Optional[ConversationState],
    ) -> Optional[IntentResult]:
        """Recognise replies that answer the current state's question.

        Returns:
            A high-confidence UNKNOWN result, or None if the reply could be
            a new intent
        """
        text = normalize_text(message)
        short = strip_edge_punctuation(text)
        local = IntentResult(intent=Intent.UNKNOWN, confidence=0.95, source="rules")

        if state in (ConversationState.OFFERING_SLOTS, ConversationState.CONFIRMING_BOOKING):
            if short in _YES_NO or _SLOT_REPLY.match(short):
                return local

        if state == ConversationState.OFFERING_SLOTS:
            if SLOT_DECLINE.search(text) or extract_time_preference(text):
                return local

        if state == ConversationState.CONFIRMING_BOOKING and _CONFIRM_MENU.search(text):
            return local

        if state == ConversationState.COLLECTING_TOPIC and extract_topic(text):
            return local

        if state == ConversationState.COLLECTING_TIME_PREFERENCE and extract_time_preference(text):
            return local

        return None

    async def classify(
        self,
        message: str,
        state: Optional[ConversationState] = None,
    ) -> IntentResult:
        return self.classify_sync(message, state)

    def classify_sync(
        self,
        message: str,
        state: Optional[ConversationState] = None,
    ) -> IntentResult:
        """Synchronous rule evaluation (the table is pure)."""
        text = normalize_text(message)
        if not text:
            return IntentResult(intent=Intent.UNKNOWN, confidence=1.0, source="empty")

        local = self.state_local_answer(text, state)
        if local:
            return local

        if (
            state in _BOOKING_FIRST_STATES
            and _BOOK.search(text)
            and not _EXPLICIT_CHANGE.search(text)
        ):
            return IntentResult(intent=Intent.BOOK_NEW, confidence=0.85)

        if _RESCHEDULE.search(text):
            return IntentResult(intent=Intent.RESCHEDULE, confidence=0.85)
        if _CANCEL.search(text):
            return IntentResult(intent=Intent.CANCEL, confidence=0.85)
        if _PREPARE.search(text):
            return IntentResult(intent=Intent.WHAT_TO_PREPARE, confidence=0.85)
        if _AVAILABILITY.search(text):
            return IntentResult(intent=Intent.CHECK_AVAILABILITY, confidence=0.8)
        if _BOOK.search(text):
            return IntentResult(intent=Intent.BOOK_NEW, confidence=0.85)
        if _GREETING.search(text):
            return IntentResult(intent=Intent.GREETING, confidence=0.9)
        if extract_day(text) and extract_time_of_day(text):
            return IntentResult(intent=Intent.CHECK_AVAILABILITY, confidence=0.8)

        return IntentResult(intent=Intent.UNKNOWN, confidence=0.3)


class IntentClassifier(BaseIntentClassifier):
    """
    Two-tier classifier: Claude first, rules as fallback.

    - Empty input: UNKNOWN with confidence 1.0
    - Replies that answer the current question: rule result, no remote call
    - Remote failure: rule result with fallback_used=True
    - Remote confidence below threshold: the more confident of the two
    """

    def __init__(
        self,
        remote: Optional[BaseIntentClassifier] = None,
        rules: Optional[RuleBasedIntentClassifier] = None,
        confidence_threshold: Optional[float] = None,
    ):
        """Initialize classifier.

        Args:
            remote: Remote tier; None runs on rules only
            rules: Rule-based tier
            confidence_threshold: Minimum remote confidence to trust outright
        """
        self._remote = remote
        self._rules = rules or RuleBasedIntentClassifier()
        self._confidence_threshold = (
            confidence_threshold
            if confidence_threshold is not None
            else settings.claude_intent_confidence_threshold
        )

    @property
    def has_remote(self) -> bool:
        return self._remote is not None

    async def classify(
        self,
        message: str,
        state: Optional[ConversationState] = None,
    ) -> IntentResult:
        """
        Classify a caller utterance.

        Args:
            message: Caller utterance (typed or transcribed)
            state: Current dialogue state, used for per-state rules

        Returns:
            IntentResult; never raises
        """
        start_time = time.time()
        message = (message or "").strip()

        if not message:
            return IntentResult(intent=Intent.UNKNOWN, confidence=1.0, source="empty")

        local = self._rules.state_local_answer(message, state)
        if local:
            local.processing_time_ms = (time.time() - start_time) * 1000
            return local

        if self._remote is None:
            result = self._rules.classify_sync(message, state)
        else:
            result = await self._classify_remote_first(message, state)

        result.processing_time_ms = (time.time() - start_time) * 1000
        logger.debug(
            f"Classified intent: {result.intent.value} "
            f"(confidence: {result.confidence:.2f}, source: {result.source})"
        )
        return result

    async def _classify_remote_first(
        self,
        message: str,
        state: Optional[ConversationState],
    ) -> IntentResult:
        try:
            remote = await self._remote.classify(message, state)
        except Exception as e:
            logger.warning(f"Remote intent classification failed, using rules: {e}")
            result = self._rules.classify_sync(message, state)
            result.fallback_used = True
            return result

        if remote.confidence >= self._confidence_threshold:
            return remote

        rules = self._rules.classify_sync(message, state)
        if rules.confidence > remote.confidence:
            logger.debug(
                f"Remote confidence {remote.confidence:.2f} below threshold, "
                f"rules answered {rules.intent.value}"
            )
            rules.fallback_used = True
            return rules
        return remote


# Singleton
_classifier: Optional[IntentClassifier] = None


def get_intent_classifier() -> IntentClassifier:
    """Get singleton IntentClassifier wired from settings."""
    global _classifier
    if _classifier is None:
        remote = RemoteIntentClassifier() if settings.remote_classifier_available else None
        _classifier = IntentClassifier(remote=remote)
    return _classifier

