"""
Message API endpoints.

Routes (all under /sessions/{session_id}):
- GET /messages - Page backwards through history
- GET /messages/unread-count - Unread assistant messages
- GET /feedback/stats - Like/dislike totals
- PATCH /messages/{message_id}/feedback - Set or clear feedback
- POST /messages/{message_id}/retry - Re-persist a failed message
- POST /messages/read - Mark messages read in one batch
- GET /messages/search - Find messages by text
- GET /messages/stats - Per-sender totals and mean reply latency
- DELETE /messages/{message_id} - Soft-delete a message

Dependencies: chatsync.application.services.message_ledger
System role: Message history HTTP API
"""

import logging

from fastapi import APIRouter, Depends, Query, status

from chatsync.api.deps import get_chat_service, get_message_ledger, get_owner_id, get_session_registry
from chatsync.api.routers.router_utils import http_error
from chatsync.application.services import ChatService, MessageLedger, SessionRegistry
from chatsync.core.exceptions import ChatSyncError
from chatsync.models.message import (
    ChatMessage,
    FeedbackRequest,
    FeedbackStats,
    MarkReadRequest,
    MarkReadResponse,
    MessagePage,
    MessageStats,
    UnreadCountResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions/{session_id}", tags=["messages"])


async def get_owned_session_id(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    registry: SessionRegistry = Depends(get_session_registry),
) -> str:
    """Path session id, verified to belong to the caller."""
    try:
        await registry.get(owner_id, session_id)
    except ChatSyncError as e:
        raise http_error(e) from e
    return session_id


@router.get("/messages", response_model=MessagePage)
async def list_messages(
    cursor: str | None = None,
    limit: int | None = Query(default=None, ge=1, le=500),
    session_id: str = Depends(get_owned_session_id),
    ledger: MessageLedger = Depends(get_message_ledger),
) -> MessagePage:
    """
    Fetch one page of messages, newest page first.

    Args:
        cursor: `cursor` of the previous page to load older messages
        limit: Page size (default from settings)
        session_id: Verified session id
        ledger: Injected MessageLedger

    Returns:
        MessagePage: Messages in chronological order with has_more and cursor

    Raises:
        HTTPException(400): Unknown cursor
        HTTPException(404): Session not found
    """
    try:
        return await ledger.page(session_id, cursor=cursor, limit=limit)
    except ChatSyncError as e:
        raise http_error(e) from e


@router.get("/messages/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    session_id: str = Depends(get_owned_session_id),
    ledger: MessageLedger = Depends(get_message_ledger),
) -> UnreadCountResponse:
    return UnreadCountResponse(session_id=session_id, unread=await ledger.unread_count(session_id))


@router.get("/feedback/stats", response_model=FeedbackStats)
async def feedback_stats(
    session_id: str = Depends(get_owned_session_id),
    ledger: MessageLedger = Depends(get_message_ledger),
) -> FeedbackStats:
    return await ledger.feedback_stats(session_id)


@router.patch("/messages/{message_id}/feedback", response_model=ChatMessage)
async def set_feedback(
    message_id: str,
    request: FeedbackRequest,
    session_id: str = Depends(get_owned_session_id),
    ledger: MessageLedger = Depends(get_message_ledger),
) -> ChatMessage:
    """
    Set like/dislike on an assistant reply, or clear it with null.

    Raises:
        HTTPException(400): Not an assistant reply
        HTTPException(404): Message not found
    """
    try:
        return await ledger.set_feedback(session_id, message_id, request.feedback)
    except ChatSyncError as e:
        raise http_error(e) from e


@router.post(
    "/messages/{message_id}/retry",
    response_model=ChatMessage,
    status_code=status.HTTP_202_ACCEPTED,
)
async def retry_message(
    message_id: str,
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    chat_service: ChatService = Depends(get_chat_service),
) -> ChatMessage:
    """
    Queue a failed message for persistence again.

    Returns:
        ChatMessage: The message, back in `sending` state

    Raises:
        HTTPException(400): Message is not in the error state
        HTTPException(404): Session or message not found
    """
    try:
        return await chat_service.retry_message(owner_id, session_id, message_id)
    except ChatSyncError as e:
        raise http_error(e) from e


@router.post("/messages/read", response_model=MarkReadResponse)
async def mark_read(
    request: MarkReadRequest,
    session_id: str = Depends(get_owned_session_id),
    ledger: MessageLedger = Depends(get_message_ledger),
) -> MarkReadResponse:
    try:
        updated = await ledger.mark_read(session_id, request.message_ids)
    except ChatSyncError as e:
        raise http_error(e) from e
    return MarkReadResponse(session_id=session_id, updated=updated)


@router.get("/messages/search", response_model=list[ChatMessage])
async def search_messages(
    q: str = Query(min_length=1, max_length=200),
    limit: int | None = Query(default=None, ge=1, le=500),
    session_id: str = Depends(get_owned_session_id),
    ledger: MessageLedger = Depends(get_message_ledger),
) -> list[ChatMessage]:
    """Messages whose text contains q, oldest first."""
    try:
        return await ledger.search(session_id, q, limit=limit)
    except ChatSyncError as e:
        raise http_error(e) from e


@router.get("/messages/stats", response_model=MessageStats)
async def message_stats(
    session_id: str = Depends(get_owned_session_id),
    ledger: MessageLedger = Depends(get_message_ledger),
) -> MessageStats:
    return await ledger.message_stats(session_id)


@router.delete("/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: str,
    session_id: str = Depends(get_owned_session_id),
    ledger: MessageLedger = Depends(get_message_ledger),
) -> None:
    """
    Soft-delete a message.

    Raises:
        HTTPException(400): Message is still being sent
        HTTPException(404): Message not found
        HTTPException(503): Store unavailable
    """
    try:
        await ledger.delete_message(session_id, message_id)
    except ChatSyncError as e:
        raise http_error(e) from e
