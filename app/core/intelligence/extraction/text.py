"""Text normalization and input-quality heuristics."""

import re
from typing import Optional

# ASCII semantics: transcription garbage such as "ԾԾԾԾ" must not count as words
_LANGUAGE_CHARS = re.compile(r"[\w.,!?;:'\"()-]", re.ASCII)
_WORD_CHARS = re.compile(r"[a-z0-9]", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_EDGE_PUNCTUATION = ".,!?;:'\"()[]"

BOOKING_CODE_PATTERN = re.compile(r"\b(NL)\s*-\s*([A-Z0-9]{4})\b", re.IGNORECASE)


def normalize_text(text: Optional[str]) -> str:
    """Lower-case, trim and collapse whitespace."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text.strip().lower())


def strip_edge_punctuation(text: str) -> str:
    """Drop punctuation around a short reply ("Yes!" -> "yes")."""
    return normalize_text(text).strip(_EDGE_PUNCTUATION).strip()


def looks_like_language(text: Optional[str]) -> bool:
    """Heuristic check that an utterance is usable text.

    Fails when the input has no ASCII word or punctuation character at all,
    or is two characters or fewer once trimmed.
    """
    if not text:
        return False
    stripped = text.strip()
    if len(stripped) <= 2:
        return False
    return bool(_LANGUAGE_CHARS.search(stripped))


def has_word_characters(text: Optional[str]) -> bool:
    """True if the text contains at least one ASCII letter or digit."""
    return bool(text and _WORD_CHARS.search(text))


def is_short_reply(text: Optional[str], max_length: int = 3) -> bool:
    """Very short, low-information reply such as "ok", "hm" or "yes"."""
    return len(normalize_text(text)) <= max_length


def find_booking_code(text: Optional[str]) -> Optional[str]:
    """Find a booking code (NL-XXXX) in free text.

    Returns:
        The code upper-cased and without spaces, or None
    """
    if not text:
        return None
    match = BOOKING_CODE_PATTERN.search(text)
    if not match:
        return None
    return f"{match.group(1)}-{match.group(2)}".upper()
