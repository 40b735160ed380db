"""
Session management for the booking dialogue.

- ConversationState and the transition table
- DialogueSession / Message models with JSON round-tripping
- SessionStore implementations (in-memory, Redis with fallback)
"""

from .state import (
    ConversationState,
    SIDE_BRANCH_STATES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    can_transition,
    is_terminal_state,
)
from .models import DialogueSession, Message
from .manager import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionStore,
    create_session_store,
    get_session_store,
)

__all__ = [
    # State
    "ConversationState",
    "SIDE_BRANCH_STATES",
    "TERMINAL_STATES",
    "VALID_TRANSITIONS",
    "can_transition",
    "is_terminal_state",
    # Models
    "DialogueSession",
    "Message",
    # Stores
    "InMemorySessionStore",
    "RedisSessionStore",
    "SessionStore",
    "create_session_store",
    "get_session_store",
]
