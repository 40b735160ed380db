"""
Date and time-preference extraction.

Recognised date forms:
    7 January 2026, 7th of Jan 2026
    January 7, 2026 / Jan 7th 2026
    07/01/2026, 7-1-2026 (day-first, month-first when day-first is impossible)
    7 January (this year, or next year once the date has passed)

Dates rendered by format_date() parse back to the same calendar date.
"""

import re
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from app.config import settings
from .text import normalize_text
from .types import TimeOfDay, TimePreference


MONTHS: dict[str, int] = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sept": 9, "sep": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}

DAY_NAMES = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

_MONTH = "|".join(sorted(MONTHS, key=len, reverse=True))
_SUFFIX = r"(?:st|nd|rd|th)?"

_DAY_MONTH_YEAR = re.compile(
    rf"\b(\d{{1,2}}){_SUFFIX}\s+(?:of\s+)?({_MONTH})\b\.?,?\s+(\d{{4}})\b"
)
_MONTH_DAY_YEAR = re.compile(
    rf"\b({_MONTH})\b\.?\s+(\d{{1,2}}){_SUFFIX},?\s+(\d{{4}})\b"
)
_NUMERIC = re.compile(r"\b(\d{1,2})[/-](\d{1,2})[/-](\d{4})\b")
_DAY_MONTH = re.compile(rf"\b(\d{{1,2}}){_SUFFIX}\s+(?:of\s+)?({_MONTH})\b")

_DAY_PATTERNS = {day: re.compile(rf"\b{day}\b") for day in DAY_NAMES}
_TIME_OF_DAY_PATTERNS = {tod: re.compile(rf"\b{tod.value}\b") for tod in TimeOfDay}


def get_display_timezone() -> ZoneInfo:
    """Zone that slots are generated and rendered in."""
    return ZoneInfo(settings.display_timezone)


def local_now() -> datetime:
    return datetime.now(get_display_timezone())


def _build_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(text: str, today: Optional[date] = None) -> Optional[date]:
    """Parse the first recognisable calendar date in ``text``.

    Args:
        text: Free text, possibly a transcription
        today: Reference date for year-less dates (defaults to local today)

    Returns:
        date or None if no valid date is present
    """
    normalized = normalize_text(text)
    if not normalized:
        return None
    today = today or local_now().date()

    match = _DAY_MONTH_YEAR.search(normalized)
    if match:
        parsed = _build_date(int(match.group(3)), MONTHS[match.group(2)], int(match.group(1)))
        if parsed:
            return parsed

    match = _MONTH_DAY_YEAR.search(normalized)
    if match:
        parsed = _build_date(int(match.group(3)), MONTHS[match.group(1)], int(match.group(2)))
        if parsed:
            return parsed

    match = _NUMERIC.search(normalized)
    if match:
        first, second, year = int(match.group(1)), int(match.group(2)), int(match.group(3))
        parsed = None
        if first <= 31 and second <= 12:
            parsed = _build_date(year, second, first)
        if parsed is None and first <= 12:
            parsed = _build_date(year, first, second)
        if parsed:
            return parsed

    match = _DAY_MONTH.search(normalized)
    if match:
        day, month = int(match.group(1)), MONTHS[match.group(2)]
        parsed = _build_date(today.year, month, day)
        if parsed and parsed < today:
            parsed = _build_date(today.year + 1, month, day)
        if parsed:
            return parsed

    return None


def extract_day(text: str) -> Optional[str]:
    """First weekday name mentioned, lower-cased."""
    normalized = normalize_text(text)
    for day, pattern in _DAY_PATTERNS.items():
        if pattern.search(normalized):
            return day
    return None


def extract_time_of_day(text: str) -> Optional[TimeOfDay]:
    normalized = normalize_text(text)
    for tod, pattern in _TIME_OF_DAY_PATTERNS.items():
        if pattern.search(normalized):
            return tod
    return None


def extract_time_preference(
    text: str,
    today: Optional[date] = None,
) -> Optional[TimePreference]:
    """Extract day, time-of-day and specific date from free text.

    A specific date wins over a weekday name mentioned in the same text
    (rendered slots read "Wednesday, 7 January 2026 ...").

    Returns:
        TimePreference or None if nothing usable was found
    """
    specific_date = parse_date(text, today=today)
    preference = TimePreference(
        day=None if specific_date else extract_day(text),
        time_of_day=extract_time_of_day(text),
        specific_date=specific_date,
    )
    return preference if preference.has_any() else None


def format_date(value: date) -> str:
    """Render a date as "7 January 2026"."""
    return f"{value.day} {value:%B %Y}"


def format_time(value: datetime) -> str:
    """Render a time as "10:30 AM"."""
    return value.strftime("%I:%M %p").lstrip("0")
