"""
Session data models for the booking dialogue.

A DialogueSession is the whole conversational state for one caller: the
current state, what has been collected so far, the slots on offer, the
transcript, and the retry counters that keep re-prompts from looping.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from app.config import settings
from app.core.intelligence.extraction.types import Slot, TimePreference, Topic
from app.core.intelligence.intent.types import Intent
from .state import ConversationState


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass
class Message:
    """One transcript entry."""

    role: str  # "user", "assistant" or "system"
    content: str
    timestamp: datetime = field(default_factory=_utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        return cls(
            role=data["role"],
            content=data["content"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            metadata=data.get("metadata", {}),
        )


@dataclass
class DialogueSession:
    """
    Complete dialogue state, stored by a SessionStore.

    Invariants:
    - ``booking_code`` is written once (see record_booking_code)
    - ``messages`` only grows
    - ``selected_slot`` is one of the most recent ``offered_slots``
    """

    session_id: str = field(default_factory=lambda: str(uuid4()))
    state: ConversationState = ConversationState.GREETING
    current_intent: Optional[Intent] = None

    # Collected booking details
    topic: Optional[Topic] = None
    time_preference: Optional[TimePreference] = None
    offered_slots: list[Slot] = field(default_factory=list)
    selected_slot: Optional[Slot] = None
    booking_code: Optional[str] = None
    waitlist_code: Optional[str] = None

    messages: list[Message] = field(default_factory=list)
    time_zone: str = field(default_factory=lambda: settings.timezone_label)

    # Retry counters
    topic_failed_attempts: int = 0
    short_reply_streak: int = 0
    time_preference_failures: int = 0
    confirmation_reprompts: int = 0

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def add_message(
        self,
        role: str,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Message:
        """Append a transcript entry."""
        message = Message(role=role, content=content, metadata=metadata or {})
        self.messages.append(message)
        self.updated_at = _utcnow()
        return message

    def record_booking_code(self, code: str) -> None:
        """Store the booking code.

        Raises:
            ValueError: If a booking code was already recorded
        """
        if self.booking_code is not None:
            raise ValueError(
                f"Session {self.session_id} already has booking {self.booking_code}"
            )
        self.booking_code = code

    def offer(self, slots: list[Slot]) -> None:
        """Replace the slots on offer; any earlier selection no longer applies."""
        self.offered_slots = list(slots)
        self.selected_slot = None

    def select(self, slot: Slot) -> None:
        """Select one of the offered slots.

        Raises:
            ValueError: If the slot is not currently on offer
        """
        if slot.id not in {offered.id for offered in self.offered_slots}:
            raise ValueError(f"Slot {slot.id} is not among the offered slots")
        self.selected_slot = slot

    def alternative_slot(self) -> Optional[Slot]:
        """First offered slot other than the selected one."""
        for slot in self.offered_slots:
            if self.selected_slot is None or slot.id != self.selected_slot.id:
                return slot
        return None

    def reset_booking_progress(self) -> None:
        """Forget collected details after an explicit restart."""
        self.topic = None
        self.time_preference = None
        self.offered_slots = []
        self.selected_slot = None
        self.topic_failed_attempts = 0
        self.short_reply_streak = 0
        self.time_preference_failures = 0
        self.confirmation_reprompts = 0

    @property
    def last_assistant_message(self) -> Optional[str]:
        for message in reversed(self.messages):
            if message.role == "assistant":
                return message.content
        return None

    def to_json(self) -> str:
        """Convert to JSON string for Redis storage."""
        return json.dumps(self.to_dict())

    def to_dict(self) -> dict:
        """Convert to a JSON-safe dictionary."""
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "current_intent": self.current_intent.value if self.current_intent else None,
            "topic": self.topic.value if self.topic else None,
            "time_preference": self.time_preference.to_dict() if self.time_preference else None,
            "offered_slots": [slot.to_dict() for slot in self.offered_slots],
            "selected_slot": self.selected_slot.to_dict() if self.selected_slot else None,
            "booking_code": self.booking_code,
            "waitlist_code": self.waitlist_code,
            "messages": [message.to_dict() for message in self.messages],
            "time_zone": self.time_zone,
            "topic_failed_attempts": self.topic_failed_attempts,
            "short_reply_streak": self.short_reply_streak,
            "time_preference_failures": self.time_preference_failures,
            "confirmation_reprompts": self.confirmation_reprompts,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_json(cls, json_str: str) -> "DialogueSession":
        """Create from JSON string."""
        data = json.loads(json_str)
        return cls(
            session_id=data["session_id"],
            state=ConversationState(data["state"]),
            current_intent=Intent(data["current_intent"]) if data.get("current_intent") else None,
            topic=Topic(data["topic"]) if data.get("topic") else None,
            time_preference=(
                TimePreference.from_dict(data["time_preference"])
                if data.get("time_preference")
                else None
            ),
            offered_slots=[Slot.from_dict(s) for s in data.get("offered_slots", [])],
            selected_slot=(
                Slot.from_dict(data["selected_slot"]) if data.get("selected_slot") else None
            ),
            booking_code=data.get("booking_code"),
            waitlist_code=data.get("waitlist_code"),
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
            time_zone=data.get("time_zone", settings.timezone_label),
            topic_failed_attempts=data.get("topic_failed_attempts", 0),
            short_reply_streak=data.get("short_reply_streak", 0),
            time_preference_failures=data.get("time_preference_failures", 0),
            confirmation_reprompts=data.get("confirmation_reprompts", 0),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )

    def debug_snapshot(self) -> dict:
        """Session details for the debug endpoint (transcript excluded)."""
        data = self.to_dict()
        data.pop("messages")
        data["messages_count"] = len(self.messages)
        return data
