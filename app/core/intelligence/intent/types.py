"""Intent types for utterance classification."""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Intent(str, Enum):
    """Caller intent labels."""

    BOOK_NEW = "book_new"                      # Start a new booking
    RESCHEDULE = "reschedule"                  # Move an existing booking
    CANCEL = "cancel"                          # Cancel an existing booking
    CHECK_AVAILABILITY = "check_availability"  # Ask what slots are free
    WHAT_TO_PREPARE = "what_to_prepare"        # Ask what to bring
    GREETING = "greeting"                      # Hello, hi
    UNKNOWN = "unknown"                        # Anything else, incl. answers to the current question


# Intents that jump to a side branch from any non-terminal state
OVERRIDE_INTENTS: frozenset[Intent] = frozenset({
    Intent.RESCHEDULE,
    Intent.CANCEL,
    Intent.CHECK_AVAILABILITY,
    Intent.WHAT_TO_PREPARE,
})


@dataclass
class IntentResult:
    """Result of intent classification."""

    intent: Intent
    confidence: float  # 0.0 - 1.0

    # "remote" (Claude), "rules" (deterministic table) or "empty"
    source: str = "rules"

    # Raw LLM output for debugging
    raw_response: Optional[str] = None

    # Whether the rule-based tier answered in place of the remote one
    fallback_used: bool = False

    processing_time_ms: float = 0.0

    def __post_init__(self) -> None:
        confidence = float(self.confidence)
        # NaN would survive min/max clamping as 1.0
        if not math.isfinite(confidence):
            confidence = 0.5
        self.confidence = max(0.0, min(1.0, confidence))

    @property
    def is_override(self) -> bool:
        """Intent that can preempt the current dialogue state."""
        return self.intent in OVERRIDE_INTENTS

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "intent": self.intent.value,
            "confidence": self.confidence,
            "source": self.source,
            "fallback_used": self.fallback_used,
            "processing_time_ms": self.processing_time_ms,
        }
