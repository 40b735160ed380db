"""
Voice Conversation Endpoints.

Text-in/text-out surface for the advisor booking dialogue. Speech-to-text
and text-to-speech happen in the client; the flags on each message are
recorded in the transcript and the conversation log.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from app.core.scheduling.engine import (
    ConversationEngine,
    SessionNotFoundError,
    VoiceMetadata,
    get_conversation_engine,
)
from app.infra.conversation_log import ConversationLogger, get_conversation_logger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/voice", tags=["Voice"])


class StartSessionResponse(BaseModel):
    """New session with its greeting."""

    session_id: str = Field(..., description="Session ID for continuing the conversation")
    greeting: str = Field(..., description="Opening message to read out")
    state: str = Field(..., description="Initial conversation state")


class MessageRequest(BaseModel):
    """One caller utterance."""

    message: str = Field(
        default="",
        max_length=2000,
        description="Caller text (typed, or transcribed from speech)",
        examples=["I want to book an appointment"],
    )
    is_voice_input: bool = Field(default=False, description="Whether the text came from STT")
    transcribed_text: Optional[str] = Field(
        default=None,
        description="Raw STT transcription, if different from message",
    )
    tts_model: Optional[str] = Field(default=None, description="TTS model used for the reply")
    tts_voice: Optional[str] = Field(default=None, description="TTS voice used for the reply")


class MessageResponse(BaseModel):
    """Reply for one turn."""

    reply: str = Field(..., description="Assistant reply")
    session_id: str
    state: str = Field(..., description="Conversation state after the turn")
    intent: Optional[str] = Field(default=None, description="Classified intent")
    confidence: Optional[float] = Field(default=None, description="Intent confidence")
    booking_code: Optional[str] = Field(default=None, description="Booking code, once booked")
    processing_time_ms: Optional[float] = None


class HistoryMessage(BaseModel):
    """Transcript entry."""

    role: str
    content: str
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class HistoryResponse(BaseModel):
    session_id: str
    messages: list[HistoryMessage]


class StateResponse(BaseModel):
    session_id: str
    state: str


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: Optional[str] = None


def _not_found(e: SessionNotFoundError) -> HTTPException:
    logger.info(f"Unknown session requested: {e.session_id}")
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Session not found",
    )


@router.post(
    "/session/start",
    response_model=StartSessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Start a conversation",
    description="Create a session in GREETING and return the greeting.",
)
async def start_session(
    engine: ConversationEngine = Depends(get_conversation_engine),
) -> StartSessionResponse:
    """Start a new booking conversation."""
    result = await engine.start_session()
    return StartSessionResponse(**result.to_dict())


@router.post(
    "/session/{session_id}/message",
    response_model=MessageResponse,
    summary="Send a caller message",
    description="Process one utterance and return the reply and new state.",
    responses={
        200: {"description": "Successful response"},
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
async def send_message(
    session_id: str,
    request: MessageRequest,
    engine: ConversationEngine = Depends(get_conversation_engine),
) -> MessageResponse:
    """
    Process a caller message.

    Any text is accepted, including empty or garbled transcriptions; the
    dialogue re-prompts instead of failing.
    """
    voice = VoiceMetadata(
        is_voice_input=request.is_voice_input,
        transcribed_text=request.transcribed_text,
        is_tts_response=bool(request.tts_model or request.tts_voice),
        tts_model=request.tts_model,
        tts_voice=request.tts_voice,
    )

    try:
        response = await engine.process_turn(session_id, request.message, voice)
    except SessionNotFoundError as e:
        raise _not_found(e)

    return MessageResponse(**response.to_dict())


@router.get(
    "/session/{session_id}/history",
    response_model=HistoryResponse,
    summary="Get conversation transcript",
    responses={404: {"model": ErrorResponse, "description": "Session not found"}},
)
async def get_history(
    session_id: str,
    engine: ConversationEngine = Depends(get_conversation_engine),
) -> HistoryResponse:
    try:
        messages = await engine.get_history(session_id)
    except SessionNotFoundError as e:
        raise _not_found(e)

    return HistoryResponse(
        session_id=session_id,
        messages=[HistoryMessage(**message.to_dict()) for message in messages],
    )


@router.get(
    "/session/{session_id}/state",
    response_model=StateResponse,
    summary="Get conversation state",
    responses={404: {"model": ErrorResponse, "description": "Session not found"}},
)
async def get_state(
    session_id: str,
    engine: ConversationEngine = Depends(get_conversation_engine),
) -> StateResponse:
    try:
        state = await engine.get_state(session_id)
    except SessionNotFoundError as e:
        raise _not_found(e)

    return StateResponse(session_id=session_id, state=state.value)


@router.get(
    "/session/{session_id}/debug",
    response_model=dict,
    summary="Get session details",
    description="Collected details, offers and retry counters (transcript excluded).",
    responses={404: {"model": ErrorResponse, "description": "Session not found"}},
)
async def get_session_debug(
    session_id: str,
    engine: ConversationEngine = Depends(get_conversation_engine),
) -> dict:
    try:
        return await engine.get_session_debug(session_id)
    except SessionNotFoundError as e:
        raise _not_found(e)


@router.get(
    "/logs/all",
    response_model=list[dict],
    summary="Recent conversation log rows",
)
async def get_all_logs(
    limit: int = Query(default=100, ge=1, le=1000),
    conversation_logger: ConversationLogger = Depends(get_conversation_logger),
) -> list[dict]:
    """Most recent conversation log rows across sessions, newest first."""
    return await conversation_logger.get_all_logs(limit=limit)


@router.get(
    "/logs/session/{session_id}",
    response_model=list[dict],
    summary="Conversation log rows for a session",
)
async def get_session_logs(
    session_id: str,
    conversation_logger: ConversationLogger = Depends(get_conversation_logger),
) -> list[dict]:
    """Conversation log rows for one session, oldest first."""
    return await conversation_logger.get_logs_by_session(session_id)
