"""
Database Models

SQLAlchemy ORM models for the advisor scheduler. Only the conversation
log is persisted here; sessions live in the session store and bookings
belong to the booking service.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, DateTime, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class ConversationLog(Base):
    """
    One row per logged conversation event.

    Roles:
    - user: utterance as received (plus voice metadata)
    - assistant: reply text with the resulting state
    - system: intent classifications, state changes and booking actions
    """

    __tablename__ = "conversation_logs"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    session_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    intent: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    booking_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    # "metadata" is reserved on declarative classes
    details: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("idx_conversation_logs_session", "session_id", "timestamp"),
        Index("idx_conversation_logs_timestamp", "timestamp"),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "role": self.role,
            "content": self.content,
            "intent": self.intent,
            "state": self.state,
            "booking_code": self.booking_code,
            "metadata": self.details or {},
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self) -> str:
        return f"<ConversationLog(session_id={self.session_id}, role={self.role})>"
