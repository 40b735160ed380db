"""
Advisor Voice Scheduler Tests

Unit tests for the booking dialogue: extraction, intent classification,
session storage, the dialogue state machine, the conversation engine,
the conversation log and the HTTP routes.

Running Tests:
    pytest tests/unit -v
"""
