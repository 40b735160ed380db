"""Dialogue state machine states and transition table."""

from enum import Enum
from typing import Set


class ConversationState(str, Enum):
    """States in the advisor booking dialogue."""

    # Main booking path
    GREETING = "GREETING"
    DISCLAIMER = "DISCLAIMER"
    COLLECTING_TOPIC = "COLLECTING_TOPIC"
    COLLECTING_TIME_PREFERENCE = "COLLECTING_TIME_PREFERENCE"
    OFFERING_SLOTS = "OFFERING_SLOTS"
    CONFIRMING_BOOKING = "CONFIRMING_BOOKING"
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"

    # Side branches (entered by intent override)
    RESCHEDULING = "RESCHEDULING"
    CANCELLING = "CANCELLING"
    CHECKING_AVAILABILITY = "CHECKING_AVAILABILITY"
    PROVIDING_PREPARATION_INFO = "PROVIDING_PREPARATION_INFO"

    # Terminal / recovery
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


SIDE_BRANCH_STATES: frozenset[ConversationState] = frozenset({
    ConversationState.RESCHEDULING,
    ConversationState.CANCELLING,
    ConversationState.CHECKING_AVAILABILITY,
    ConversationState.PROVIDING_PREPARATION_INFO,
})

TERMINAL_STATES: frozenset[ConversationState] = frozenset({
    ConversationState.BOOKING_CONFIRMED,
    ConversationState.COMPLETED,
})


# Forward edges per state; staying put and side-branch overrides are added below
_FORWARD: dict[ConversationState, Set[ConversationState]] = {
    ConversationState.GREETING: {ConversationState.DISCLAIMER},
    ConversationState.DISCLAIMER: {ConversationState.COLLECTING_TOPIC},
    ConversationState.COLLECTING_TOPIC: {ConversationState.COLLECTING_TIME_PREFERENCE},
    ConversationState.COLLECTING_TIME_PREFERENCE: {
        ConversationState.OFFERING_SLOTS,
        ConversationState.COMPLETED,  # Waitlisted, nothing to offer
    },
    ConversationState.OFFERING_SLOTS: {
        ConversationState.CONFIRMING_BOOKING,
        ConversationState.COLLECTING_TIME_PREFERENCE,  # No offers held
    },
    ConversationState.CONFIRMING_BOOKING: {
        ConversationState.BOOKING_CONFIRMED,
        ConversationState.ERROR,
        ConversationState.OFFERING_SLOTS,
        ConversationState.COLLECTING_TIME_PREFERENCE,
        ConversationState.COLLECTING_TOPIC,  # Start over
    },
    ConversationState.ERROR: {
        ConversationState.OFFERING_SLOTS,
        ConversationState.COLLECTING_TIME_PREFERENCE,
    },
    ConversationState.RESCHEDULING: {ConversationState.DISCLAIMER},
    ConversationState.CANCELLING: {ConversationState.DISCLAIMER},
    ConversationState.CHECKING_AVAILABILITY: {ConversationState.DISCLAIMER},
    ConversationState.PROVIDING_PREPARATION_INFO: {ConversationState.DISCLAIMER},
    ConversationState.BOOKING_CONFIRMED: {ConversationState.COMPLETED},
    ConversationState.COMPLETED: set(),
}


def _build_transitions() -> dict[ConversationState, Set[ConversationState]]:
    transitions: dict[ConversationState, Set[ConversationState]] = {}
    for state in ConversationState:
        allowed = {state} | _FORWARD[state]
        if state not in TERMINAL_STATES:
            allowed |= SIDE_BRANCH_STATES
        transitions[state] = allowed
    return transitions


VALID_TRANSITIONS: dict[ConversationState, Set[ConversationState]] = _build_transitions()


def can_transition(from_state: ConversationState, to_state: ConversationState) -> bool:
    """Check if a state transition is valid."""
    return to_state in VALID_TRANSITIONS.get(from_state, set())


def is_terminal_state(state: ConversationState) -> bool:
    """Check if the booking is finished (no overrides, no re-entry)."""
    return state in TERMINAL_STATES
