"""Domain types shared by extraction, sessions and scheduling."""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional


class Topic(str, Enum):
    """Advisor consultation topics, in the order they are read out to callers."""

    KYC_ONBOARDING = "KYC/Onboarding"
    SIP_MANDATES = "SIP/Mandates"
    STATEMENTS_TAX_DOCS = "Statements/Tax Docs"
    WITHDRAWALS_TIMELINES = "Withdrawals & Timelines"
    ACCOUNT_CHANGES_NOMINEE = "Account Changes/Nominee"

    @classmethod
    def ordered(cls) -> list["Topic"]:
        """Topics in their spoken ordinal order (1-5)."""
        return list(cls)

    @classmethod
    def from_position(cls, position: int) -> Optional["Topic"]:
        """Map a 1-based menu position to a topic."""
        topics = cls.ordered()
        if 1 <= position <= len(topics):
            return topics[position - 1]
        return None


class TimeOfDay(str, Enum):
    """Coarse time-of-day bands within business hours."""

    MORNING = "morning"        # 09:00 - 12:00
    AFTERNOON = "afternoon"    # 12:00 - 17:00
    EVENING = "evening"        # 17:00 - 18:00

    @property
    def hour_range(self) -> tuple[int, int]:
        """Start (inclusive) and end (exclusive) local hour of the band."""
        return {
            TimeOfDay.MORNING: (9, 12),
            TimeOfDay.AFTERNOON: (12, 17),
            TimeOfDay.EVENING: (17, 18),
        }[self]

    def contains(self, hour: int) -> bool:
        start, end = self.hour_range
        return start <= hour < end


@dataclass
class TimePreference:
    """When the caller would like to meet."""

    day: Optional[str] = None                 # lower-case weekday name
    time_of_day: Optional[TimeOfDay] = None
    specific_date: Optional[date] = None

    def has_any(self) -> bool:
        """Check if anything usable was extracted."""
        return bool(self.day or self.time_of_day or self.specific_date)

    @property
    def is_revision(self) -> bool:
        """A day or time-of-day revision (as opposed to a bare calendar date)."""
        return bool(self.day or self.time_of_day)

    def revised(self, update: "TimePreference") -> "TimePreference":
        """Apply a partial revision ("afternoon instead") on top of this preference.

        A new weekday drops an old calendar date and vice versa.
        """
        if update.specific_date:
            day, specific_date = None, update.specific_date
        elif update.day:
            day, specific_date = update.day, None
        else:
            day, specific_date = self.day, self.specific_date
        return TimePreference(
            day=day,
            time_of_day=update.time_of_day or self.time_of_day,
            specific_date=specific_date,
        )

    def describe(self) -> str:
        """Human readable summary, e.g. 'Monday morning'."""
        parts = []
        if self.specific_date:
            parts.append(f"{self.specific_date.day} {self.specific_date:%B %Y}")
        elif self.day:
            parts.append(self.day.capitalize())
        if self.time_of_day:
            parts.append(self.time_of_day.value)
        return " ".join(parts) if parts else "any time"

    def to_dict(self) -> dict:
        return {
            "day": self.day,
            "time_of_day": self.time_of_day.value if self.time_of_day else None,
            "specific_date": self.specific_date.isoformat() if self.specific_date else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TimePreference":
        return cls(
            day=data.get("day"),
            time_of_day=TimeOfDay(data["time_of_day"]) if data.get("time_of_day") else None,
            specific_date=(
                date.fromisoformat(data["specific_date"])
                if data.get("specific_date")
                else None
            ),
        )


@dataclass
class Slot:
    """A bookable advisor slot.

    ``id`` is stable for a given start time so repeated offers of the same
    slot within a session compare equal.
    """

    id: str
    start_time: datetime
    end_time: datetime
    is_available: bool = True

    @property
    def local_date(self) -> date:
        return self.start_time.date()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "is_available": self.is_available,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Slot":
        return cls(
            id=data["id"],
            start_time=datetime.fromisoformat(data["start_time"]),
            end_time=datetime.fromisoformat(data["end_time"]),
            is_available=data.get("is_available", True),
        )
