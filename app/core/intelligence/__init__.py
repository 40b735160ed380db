"""
Intelligence Layer Module

Turns noisy caller utterances into structured signals for the dialogue:
intent classification, topic/date/slot extraction, and session state.

Usage:
    from app.core.intelligence import (
        get_intent_classifier,
        extract_topic,
        extract_time_preference,
        ConversationState,
    )

    result = await get_intent_classifier().classify("I need to cancel", ConversationState.DISCLAIMER)
    print(result.intent)  # Intent.CANCEL

    extract_topic("kay see onboarding")  # Topic.KYC_ONBOARDING
    extract_time_preference("Monday morning").describe()  # "Monday morning"
"""

# Extraction (no dependencies on the rest of the layer)
from app.core.intelligence.extraction import (
    Slot,
    TimeOfDay,
    TimePreference,
    Topic,
    TopicClassifier,
    extract_slot_selection,
    extract_time_preference,
    extract_topic,
    extract_topic_fuzzy,
    is_cancellation,
    is_confirmation,
    parse_date,
)

# Intent Classification
from app.core.intelligence.intent.types import Intent, IntentResult
from app.core.intelligence.intent.classifier import (
    IntentClassifier,
    get_intent_classifier,
)

# Session Management
from app.core.intelligence.session.state import (
    ConversationState,
    can_transition,
    is_terminal_state,
)
from app.core.intelligence.session.models import DialogueSession, Message
from app.core.intelligence.session.manager import SessionStore, get_session_store

__all__ = [
    # Extraction
    "Slot",
    "TimeOfDay",
    "TimePreference",
    "Topic",
    "TopicClassifier",
    "extract_slot_selection",
    "extract_time_preference",
    "extract_topic",
    "extract_topic_fuzzy",
    "is_cancellation",
    "is_confirmation",
    "parse_date",
    # Intent
    "Intent",
    "IntentResult",
    "IntentClassifier",
    "get_intent_classifier",
    # Session
    "ConversationState",
    "can_transition",
    "is_terminal_state",
    "DialogueSession",
    "Message",
    "SessionStore",
    "get_session_store",
]
