"""Session stores for dialogue sessions (in-memory and Redis)."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from redis.exceptions import RedisError

from app.config import settings
from app.infra.redis import get_redis, APP_PREFIX
from .models import DialogueSession

logger = logging.getLogger(__name__)

SESSION_PREFIX = f"{APP_PREFIX}dialogue:session:"


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class SessionStore(ABC):
    """Keyed storage for DialogueSession objects.

    Stores are injected into the engine; callers never reach for a global.
    """

    @abstractmethod
    async def get(self, session_id: str) -> Optional[DialogueSession]:
        """Load a session, or None if it does not exist."""

    @abstractmethod
    async def save(self, session: DialogueSession) -> None:
        """Insert or replace a session."""

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """Remove a session. Returns True if one was removed."""

    async def create(self) -> DialogueSession:
        """Create and persist a fresh session in GREETING."""
        session = DialogueSession()
        await self.save(session)
        logger.debug(f"Session created: {session.session_id}")
        return session


class InMemorySessionStore(SessionStore):
    """Process-local store keyed by session id."""

    def __init__(self):
        self._sessions: dict[str, DialogueSession] = {}

    async def get(self, session_id: str) -> Optional[DialogueSession]:
        return self._sessions.get(session_id)

    async def save(self, session: DialogueSession) -> None:
        session.updated_at = _utcnow()
        self._sessions[session.session_id] = session

    async def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)


class RedisSessionStore(SessionStore):
    """
    Redis-backed session store.

    Key pattern: advisor-scheduler:v1:dialogue:session:{session_id}

    Falls back to an in-memory store while Redis is unreachable so a Redis
    outage degrades to single-process sessions instead of failing turns.
    """

    def __init__(self, ttl: Optional[int] = None):
        self._ttl = ttl or settings.redis_session_ttl
        self._in_memory_fallback = InMemorySessionStore()

    def _key(self, session_id: str) -> str:
        return f"{SESSION_PREFIX}{session_id}"

    async def get(self, session_id: str) -> Optional[DialogueSession]:
        redis = await get_redis()

        if redis is None:
            return await self._in_memory_fallback.get(session_id)

        try:
            data = await redis.get(self._key(session_id))
        except RedisError as e:
            logger.error(f"Failed to load session {session_id}: {e}")
            return await self._in_memory_fallback.get(session_id)

        if data:
            return DialogueSession.from_json(data)
        return await self._in_memory_fallback.get(session_id)

    async def save(self, session: DialogueSession) -> None:
        session.updated_at = _utcnow()
        redis = await get_redis()

        if redis is None:
            logger.warning(
                f"Redis unavailable, using in-memory fallback for session {session.session_id}"
            )
            await self._in_memory_fallback.save(session)
            return

        try:
            await redis.setex(self._key(session.session_id), self._ttl, session.to_json())
            logger.debug(f"Session saved: {session.session_id}")
        except RedisError as e:
            logger.error(f"Failed to save session {session.session_id}: {e}")
            await self._in_memory_fallback.save(session)

    async def delete(self, session_id: str) -> bool:
        removed_locally = await self._in_memory_fallback.delete(session_id)
        redis = await get_redis()

        if redis is None:
            return removed_locally

        try:
            deleted = await redis.delete(self._key(session_id))
        except RedisError as e:
            logger.error(f"Failed to delete session {session_id}: {e}")
            return removed_locally

        return bool(deleted) or removed_locally


def create_session_store(backend: Optional[str] = None) -> SessionStore:
    """Build the store selected by configuration."""
    backend = backend or settings.session_backend
    if backend == "redis":
        return RedisSessionStore()
    return InMemorySessionStore()


# Singleton
_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    """Get singleton SessionStore for the configured backend."""
    global _store
    if _store is None:
        _store = create_session_store()
    return _store
