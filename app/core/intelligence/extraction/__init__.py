"""Extraction library: topics, dates, slot choice and confirmations."""

from .types import Slot, TimeOfDay, TimePreference, Topic
from .text import (
    find_booking_code,
    has_word_characters,
    is_short_reply,
    looks_like_language,
    normalize_text,
)
from .topics import (
    TopicClassifier,
    extract_topic,
    extract_topic_by_keywords,
    extract_topic_by_ordinal,
    extract_topic_fuzzy,
)
from .dates import (
    extract_time_preference,
    format_date,
    format_time,
    get_display_timezone,
    local_now,
    parse_date,
)
from .selection import (
    extract_slot_selection,
    is_cancellation,
    is_confirmation,
    is_slot_decline,
)

__all__ = [
    # Types
    "Slot",
    "TimeOfDay",
    "TimePreference",
    "Topic",
    # Text
    "find_booking_code",
    "has_word_characters",
    "is_short_reply",
    "looks_like_language",
    "normalize_text",
    # Topics
    "TopicClassifier",
    "extract_topic",
    "extract_topic_by_keywords",
    "extract_topic_by_ordinal",
    "extract_topic_fuzzy",
    # Dates
    "extract_time_preference",
    "format_date",
    "format_time",
    "get_display_timezone",
    "local_now",
    "parse_date",
    # Selection
    "extract_slot_selection",
    "is_cancellation",
    "is_confirmation",
    "is_slot_decline",
]
