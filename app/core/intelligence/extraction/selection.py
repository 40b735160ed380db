"""Slot choice and yes/no extraction for offer and confirmation turns."""

import re
from datetime import date
from typing import Optional

from .dates import parse_date
from .text import normalize_text, strip_edge_punctuation
from .types import Slot

CONFIRMATION_PHRASES = frozenset({
    "yes", "y", "confirm", "ok", "okay", "sure", "proceed", "book it",
})

CANCELLATION_PHRASES = frozenset({
    "no", "n", "cancel", "don't", "dont", "not", "stop", "nevermind", "never mind",
})

_FIRST_ORDINAL = re.compile(r"\b(first|1st)\b")
_SECOND_ORDINAL = re.compile(r"\b(second|2nd)\b")
_FIRST_CARDINAL = re.compile(r"\bone\b")
_SECOND_CARDINAL = re.compile(r"\btwo\b")
_FIRST_DIGIT = re.compile(r"(?<![\d:/-])\b1\b(?![:/-]?\d)")
_SECOND_DIGIT = re.compile(r"(?<![\d:/-])\b2\b(?![:/-]?\d)")

# Rejection of the offer as a whole, not a negation anywhere in a pick
SLOT_DECLINE = re.compile(
    r"\b(no|none|neither|nope)\b.*\b(slots?|that|these|those|them)\b"
    r"|\b(don'?t|doesn'?t|do not|does not|won'?t|will not)\s+(work|suit)\b"
)


def is_confirmation(text: Optional[str]) -> bool:
    """Affirmative reply from the closed confirmation set."""
    return strip_edge_punctuation(text or "") in CONFIRMATION_PHRASES


def is_cancellation(text: Optional[str]) -> bool:
    """Negative reply from the closed cancellation set."""
    return strip_edge_punctuation(text or "") in CANCELLATION_PHRASES


def is_slot_decline(text: Optional[str]) -> bool:
    """Caller rejects the slots on offer ("no, none of those work")."""
    normalized = normalize_text(text)
    if not normalized:
        return False
    return is_cancellation(normalized) or bool(SLOT_DECLINE.search(normalized))


def _by_position(slots: list[Slot], index: int) -> Optional[Slot]:
    return slots[index] if index < len(slots) else None


def extract_slot_selection(
    text: str,
    slots: list[Slot],
    today: Optional[date] = None,
) -> Optional[Slot]:
    """Pick one of the offered slots from the caller's reply.

    Order:
    1. Ordinal then cardinal words ("first", "the second one", "two")
    2. Bare digits 1 / 2, unless the reply contains a date literal
    3. A parsed calendar date matching an offered slot's date
    4. An ISO date (YYYY-MM-DD) matching an offered slot's date

    Returns:
        The chosen Slot, or None if nothing matched
    """
    normalized = normalize_text(text)
    if not normalized or not slots:
        return None

    # "the second one" is an ordinal, not "one"
    if _FIRST_ORDINAL.search(normalized):
        return _by_position(slots, 0)
    if _SECOND_ORDINAL.search(normalized):
        return _by_position(slots, 1)
    if _FIRST_CARDINAL.search(normalized):
        return _by_position(slots, 0)
    if _SECOND_CARDINAL.search(normalized):
        return _by_position(slots, 1)

    parsed = parse_date(normalized, today=today)

    if parsed is None:
        if _FIRST_DIGIT.search(normalized):
            return _by_position(slots, 0)
        if _SECOND_DIGIT.search(normalized):
            return _by_position(slots, 1)
    else:
        for slot in slots:
            if slot.local_date == parsed:
                return slot

    for slot in slots:
        if slot.local_date.isoformat() in normalized:
            return slot

    return None
