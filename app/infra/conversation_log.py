"""
Conversation Log

Writes one ConversationLog row per conversation event (user input,
assistant reply, intent, state change, booking action) and reads them
back for the log endpoints.

Writes never raise: a logging failure must not break a caller's turn.
Reads propagate errors to the API layer.
"""

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.infra.database import get_session_factory
from app.models.database import ConversationLog

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 10_000


class ConversationLogger:
    """Persists conversation events to the conversation_logs table."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        """Initialize logger.

        Args:
            session_factory: SQLAlchemy session factory (defaults to the app database)
        """
        self._session_factory = session_factory

    def _factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    async def log_user_input(
        self,
        session_id: str,
        text: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log a caller utterance (metadata may carry voice flags)."""
        await self._write(session_id, "user", text, metadata)

    async def log_assistant_response(
        self,
        session_id: str,
        text: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log a reply with its intent, state and booking code."""
        await self._write(session_id, "assistant", text, metadata)

    async def log_intent(
        self,
        session_id: str,
        intent: str,
        confidence: float,
        user_input: str,
    ) -> None:
        await self._write(
            session_id,
            "system",
            f"Intent recognized: {intent} (confidence: {confidence:.2f})",
            {"intent": intent, "confidence": confidence, "user_input": user_input},
        )

    async def log_state_change(
        self,
        session_id: str,
        old_state: str,
        new_state: str,
        reason: Optional[str] = None,
    ) -> None:
        suffix = f" ({reason})" if reason else ""
        await self._write(
            session_id,
            "system",
            f"State changed: {old_state} -> {new_state}{suffix}",
            {"old_state": old_state, "new_state": new_state, "reason": reason, "state": new_state},
        )

    async def log_booking_action(
        self,
        session_id: str,
        action: str,
        booking_code: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        await self._write(
            session_id,
            "system",
            f"Booking action: {action} ({booking_code})",
            {"action": action, "booking_code": booking_code, "details": details},
        )

    async def get_logs_by_session(self, session_id: str) -> list[dict]:
        """All rows for a session, oldest first."""
        async with self._factory()() as db:
            result = await db.execute(
                select(ConversationLog)
                .where(ConversationLog.session_id == session_id)
                .order_by(ConversationLog.timestamp.asc())
            )
            return [row.to_dict() for row in result.scalars().all()]

    async def get_all_logs(self, limit: int = 100) -> list[dict]:
        """Most recent rows across all sessions, newest first."""
        async with self._factory()() as db:
            result = await db.execute(
                select(ConversationLog)
                .order_by(ConversationLog.timestamp.desc())
                .limit(limit)
            )
            return [row.to_dict() for row in result.scalars().all()]

    async def _write(
        self,
        session_id: str,
        role: str,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        if not content or not content.strip():
            logger.warning(f"Skipping empty {role} log for session {session_id}")
            return

        metadata = metadata or {}
        row = ConversationLog(
            session_id=session_id,
            role=role,
            content=content[:MAX_CONTENT_LENGTH],
            intent=metadata.get("intent"),
            state=metadata.get("state"),
            booking_code=metadata.get("booking_code"),
            details=metadata or None,
        )

        try:
            async with self._factory()() as db:
                db.add(row)
                await db.commit()
        except Exception as e:
            logger.error(f"Failed to log {role} message for session {session_id}: {e}")
            return

        logger.debug(f"Logged {role} message for session {session_id}")


# Singleton
_conversation_logger: Optional[ConversationLogger] = None


def get_conversation_logger() -> ConversationLogger:
    """Get singleton ConversationLogger bound to the app database."""
    global _conversation_logger
    if _conversation_logger is None:
        _conversation_logger = ConversationLogger()
    return _conversation_logger
