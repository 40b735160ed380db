"""
Booking collaborator and the Booking Trigger.

The booking service owns booking records and their validation. The
trigger is the only caller the dialogue uses: it turns a confirmed
session into a booking, records the code on the session exactly once,
and converts every failure into a human-readable reason instead of
raising.
"""

import asyncio
import logging
import re
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from app.core.intelligence.extraction.types import Slot, Topic
from app.core.intelligence.session.models import DialogueSession

logger = logging.getLogger(__name__)


BOOKING_CODE_PREFIX = "NL"
BOOKING_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # No 0/O, 1/I
BOOKING_CODE_LENGTH = 4
BOOKING_CODE_RE = re.compile(r"^NL-[A-Z0-9]{4}$")

GENERIC_FAILURE_REASON = "Something went wrong while saving your booking."


def generate_booking_code() -> str:
    """Generate a booking code such as NL-A7K2."""
    suffix = "".join(secrets.choice(BOOKING_CODE_ALPHABET) for _ in range(BOOKING_CODE_LENGTH))
    return f"{BOOKING_CODE_PREFIX}-{suffix}"


def is_valid_booking_code(code: Optional[str]) -> bool:
    """Check booking code format."""
    return bool(code and BOOKING_CODE_RE.match(code))


class BookingStatus(str, Enum):
    """Booking lifecycle status."""

    TENTATIVE = "TENTATIVE"
    WAITLISTED = "WAITLISTED"


class BookingError(Exception):
    """Booking rejected; the message is safe to read out to the caller."""

    @property
    def reason(self) -> str:
        return str(self)


class SlotAlreadyBookedError(BookingError):
    """The requested slot was taken in the meantime."""
    pass


class DayNotAvailableError(BookingError):
    """Bookings are not taken on the requested day."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BookingRecord:
    """A booking or waitlist entry."""

    booking_code: str
    topic: Topic
    status: BookingStatus
    preferred_slot: Optional[Slot] = None
    alternative_slot: Optional[Slot] = None
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return {
            "booking_code": self.booking_code,
            "topic": self.topic.value,
            "status": self.status.value,
            "preferred_slot": self.preferred_slot.to_dict() if self.preferred_slot else None,
            "alternative_slot": self.alternative_slot.to_dict() if self.alternative_slot else None,
            "created_at": self.created_at.isoformat(),
        }


class BookingService(ABC):
    """Booking persistence consumed by the dialogue."""

    @abstractmethod
    async def create_booking(
        self,
        topic: Topic,
        preferred_slot: Slot,
        alternative_slot: Optional[Slot] = None,
    ) -> BookingRecord:
        """Create a tentative booking.

        Raises:
            BookingError: If the booking is rejected
        """

    @abstractmethod
    async def create_waitlist(self, topic: Topic) -> BookingRecord:
        """Add the caller to the waitlist for a topic."""

    @abstractmethod
    async def booked_slot_ids(self) -> set[str]:
        """Ids of slots held by active bookings."""

    @abstractmethod
    async def get_booking(self, booking_code: str) -> Optional[BookingRecord]:
        """Look up a booking by code."""


class InMemoryBookingService(BookingService):
    """Process-local booking service with the production validation rules."""

    def __init__(self):
        self._bookings: dict[str, BookingRecord] = {}
        self._lock = asyncio.Lock()

    def _new_code(self) -> str:
        code = generate_booking_code()
        while code in self._bookings:
            code = generate_booking_code()
        return code

    def _held_slot_ids(self) -> set[str]:
        held: set[str] = set()
        for record in self._bookings.values():
            if record.status == BookingStatus.WAITLISTED:
                continue
            if record.preferred_slot:
                held.add(record.preferred_slot.id)
            if record.alternative_slot:
                held.add(record.alternative_slot.id)
        return held

    async def create_booking(
        self,
        topic: Topic,
        preferred_slot: Slot,
        alternative_slot: Optional[Slot] = None,
    ) -> BookingRecord:
        async with self._lock:
            held = self._held_slot_ids()
            if preferred_slot.id in held:
                raise SlotAlreadyBookedError("That slot has just been booked by someone else.")
            if alternative_slot and alternative_slot.id in held:
                raise SlotAlreadyBookedError("Your alternative slot has just been booked by someone else.")
            if preferred_slot.start_time.weekday() == 6:
                raise DayNotAvailableError("Bookings are not available on Sundays.")

            record = BookingRecord(
                booking_code=self._new_code(),
                topic=topic,
                status=BookingStatus.TENTATIVE,
                preferred_slot=preferred_slot,
                alternative_slot=alternative_slot,
            )
            self._bookings[record.booking_code] = record

        logger.info(f"Booking created: {record.booking_code} ({topic.value})")
        return record

    async def create_waitlist(self, topic: Topic) -> BookingRecord:
        async with self._lock:
            record = BookingRecord(
                booking_code=self._new_code(),
                topic=topic,
                status=BookingStatus.WAITLISTED,
            )
            self._bookings[record.booking_code] = record

        logger.info(f"Waitlist entry created: {record.booking_code} ({topic.value})")
        return record

    async def booked_slot_ids(self) -> set[str]:
        return self._held_slot_ids()

    async def get_booking(self, booking_code: str) -> Optional[BookingRecord]:
        return self._bookings.get(booking_code.upper())


@dataclass
class BookingOutcome:
    """Result of asking the trigger to book."""

    success: bool
    booking_code: Optional[str] = None
    reason: Optional[str] = None
    record: Optional[BookingRecord] = None


class BookingTrigger:
    """Turns a confirmed dialogue session into a booking. Never raises."""

    def __init__(self, booking_service: BookingService):
        self._service = booking_service

    async def trigger(self, session: DialogueSession) -> BookingOutcome:
        """
        Create the booking for the session's topic and selected slot.

        The other offered slot (if any) is passed as the alternative.

        Args:
            session: Session in CONFIRMING_BOOKING after an affirmative reply

        Returns:
            BookingOutcome; on success the code is also recorded on the session
        """
        if session.booking_code:
            logger.warning(
                f"Booking already recorded for session {session.session_id}: {session.booking_code}"
            )
            return BookingOutcome(success=True, booking_code=session.booking_code)

        if session.topic is None or session.selected_slot is None:
            return BookingOutcome(
                success=False,
                reason="Some booking details are missing.",
            )

        try:
            record = await self._service.create_booking(
                topic=session.topic,
                preferred_slot=session.selected_slot,
                alternative_slot=session.alternative_slot(),
            )
        except BookingError as e:
            logger.warning(f"Booking rejected for session {session.session_id}: {e}")
            return BookingOutcome(success=False, reason=e.reason)
        except Exception as e:
            logger.error(f"Booking failed for session {session.session_id}: {e}", exc_info=True)
            return BookingOutcome(success=False, reason=GENERIC_FAILURE_REASON)

        session.record_booking_code(record.booking_code)
        return BookingOutcome(success=True, booking_code=record.booking_code, record=record)

    async def waitlist(self, session: DialogueSession) -> BookingOutcome:
        """Put the caller on the waitlist for their topic. Never raises."""
        if session.topic is None:
            return BookingOutcome(success=False, reason="No topic selected.")

        try:
            record = await self._service.create_waitlist(session.topic)
        except Exception as e:
            logger.error(f"Waitlist failed for session {session.session_id}: {e}", exc_info=True)
            return BookingOutcome(success=False, reason=GENERIC_FAILURE_REASON)

        session.waitlist_code = record.booking_code
        return BookingOutcome(success=True, booking_code=record.booking_code, record=record)
