"""
Scheduling Module

Provides the conversation engine, dialogue state machine, slot provider,
booking trigger and reply templates for the advisor scheduler.

Usage:
    from app.core.scheduling import get_conversation_engine

    engine = get_conversation_engine()
    started = await engine.start_session()
    response = await engine.process_turn(started.session_id, "I want to book an appointment")
    print(response.reply)        # Disclaimer
    print(response.state)        # ConversationState.DISCLAIMER
"""

# Booking
from app.core.scheduling.booking import (
    BookingError,
    BookingOutcome,
    BookingRecord,
    BookingService,
    BookingStatus,
    BookingTrigger,
    DayNotAvailableError,
    InMemoryBookingService,
    SlotAlreadyBookedError,
    generate_booking_code,
    is_valid_booking_code,
)

# Calendar
from app.core.scheduling.calendar import (
    CalendarSlotProvider,
    MockCalendar,
    SlotProvider,
)

# Response Generator
from app.core.scheduling.response import (
    ResponseGenerator,
    get_response_generator,
)

# Dialogue State Machine
from app.core.scheduling.flow import (
    DialogueStateMachine,
    TurnResult,
)

# Conversation Engine (main orchestrator)
from app.core.scheduling.engine import (
    ConversationEngine,
    SessionNotFoundError,
    StartSessionResult,
    TurnResponse,
    VoiceMetadata,
    build_state_machine,
    get_conversation_engine,
)

__all__ = [
    # Booking
    "BookingError",
    "BookingOutcome",
    "BookingRecord",
    "BookingService",
    "BookingStatus",
    "BookingTrigger",
    "DayNotAvailableError",
    "InMemoryBookingService",
    "SlotAlreadyBookedError",
    "generate_booking_code",
    "is_valid_booking_code",
    # Calendar
    "CalendarSlotProvider",
    "MockCalendar",
    "SlotProvider",
    # Response Generator
    "ResponseGenerator",
    "get_response_generator",
    # Dialogue State Machine
    "DialogueStateMachine",
    "TurnResult",
    # Conversation Engine
    "ConversationEngine",
    "SessionNotFoundError",
    "StartSessionResult",
    "TurnResponse",
    "VoiceMetadata",
    "build_state_machine",
    "get_conversation_engine",
]
