"""Chat API endpoints.

Routes:
- POST /chat - Send a message (creates a session on the first message)
- POST /chat/stream - Same turn streamed as Server-Sent Events (SSE)
- POST /sessions/{session_id}/chat/stop - Stop generating

Dependencies: chatsync.application.services.chat_service
System role: Chat messaging HTTP API with streaming support
"""

import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from chatsync.api.deps import (
    get_chat_service,
    get_owner_id,
    get_session_registry,
    get_settings_dependency,
)
from chatsync.api.routers.router_utils import http_error, internal_error
from chatsync.application.services import ChatService, SessionRegistry
from chatsync.configs import Settings
from chatsync.core.exceptions import ChatSyncError
from chatsync.models.chat import ChatRequest, ChatTurnResponse, StopResponse
from chatsync.models.streaming import StreamEvent, StreamEventType

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


@router.post("/chat", response_model=ChatTurnResponse)
async def chat(
    request: ChatRequest,
    owner_id: str = Depends(get_owner_id),
    chat_service: ChatService = Depends(get_chat_service),
    settings: Settings = Depends(get_settings_dependency),
) -> ChatTurnResponse:
    """Send one message and wait for the full reply.

    Gateway failures do not fail the request: the reply is a friendly
    assistant message and `error_code` is set.

    Args:
        request: ChatRequest with message and optional session_id
        owner_id: Owner from the X-User-Id header
        chat_service: Injected ChatService
        settings: Decides whether a 500 carries the exception text

    Returns:
        ChatTurnResponse: User message and assistant reply

    Raises:
        HTTPException(400): Empty message
        HTTPException(404): Session not found
        HTTPException(409): A turn is already running in the session
        HTTPException(500): Processing error
    """
    try:
        return await chat_service.send_message(
            owner_id,
            request.message,
            session_id=request.session_id,
        )
    except ChatSyncError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"{__name__}:chat - unexpected failure")
        raise internal_error("Chat processing", e, settings) from e


@router.post("/chat/stream")
async def chat_stream(
    request: ChatRequest,
    owner_id: str = Depends(get_owner_id),
    chat_service: ChatService = Depends(get_chat_service),
    settings: Settings = Depends(get_settings_dependency),
) -> StreamingResponse:
    """Stream one turn using Server-Sent Events (SSE).

    SSE Format:
        event: user_message
        data: {...optimistic user message...}

        event: thinking
        data: {"session_id": "..."}

        event: token
        data: {"text": "<revealed prefix>", "index": 0}

        event: complete
        data: {...ChatTurnResponse...}

        event: error
        data: {"code": "...", "message": "..."}

    Args:
        request: ChatRequest with message and optional session_id
        owner_id: Owner from the X-User-Id header
        chat_service: Injected ChatService
        settings: Decides whether an error frame carries the exception text

    Returns:
        StreamingResponse: SSE stream of chat events
    """
    logger.info(f"{__name__}:chat_stream - START session_id={request.session_id}")

    async def event_generator() -> AsyncGenerator[str, None]:
        """Generate SSE frames from the turn's events."""
        try:
            async for event in chat_service.stream_message(
                owner_id,
                request.message,
                session_id=request.session_id,
            ):
                yield event.to_sse()
            logger.info(f"{__name__}:chat_stream - stream completed")
        except Exception as e:
            logger.error(f"{__name__}:chat_stream - {type(e).__name__}: {e}")
            message = str(e) if settings.expose_error_details else "Chat processing failed"
            yield StreamEvent(
                event=StreamEventType.ERROR,
                data={"code": "PROCESSING_ERROR", "message": message},
            ).to_sse()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/sessions/{session_id}/chat/stop", response_model=StopResponse)
async def stop_generating(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    registry: SessionRegistry = Depends(get_session_registry),
    chat_service: ChatService = Depends(get_chat_service),
) -> StopResponse:
    """Stop the reveal (or pending reply) of the session's current turn."""
    try:
        await registry.get(owner_id, session_id)
    except ChatSyncError as e:
        raise http_error(e) from e
    return StopResponse(session_id=session_id, stopped=chat_service.stop(session_id))
