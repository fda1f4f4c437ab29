"""
Session API endpoints.

Routes:
- POST /sessions - Create new session
- GET /sessions - List the owner's sessions
- DELETE /sessions - Delete all of the owner's sessions
- GET /sessions/search - Find sessions by title
- GET /sessions/stats - Session and message totals
- GET /sessions/{id} - Get one session
- PATCH /sessions/{id} - Rename, pin, archive or re-categorize
- DELETE /sessions/{id} - Delete session and its messages

Dependencies: chatsync.application.services.session_registry, chatsync.models
System role: Session management HTTP API
"""

import logging

from fastapi import APIRouter, Depends, Query, status

from chatsync.api.deps import get_owner_id, get_session_registry, get_settings_dependency
from chatsync.api.routers.router_utils import http_error, internal_error
from chatsync.application.services import SessionRegistry
from chatsync.configs import Settings
from chatsync.core.exceptions import ChatSyncError
from chatsync.models.session import (
    ChatSession,
    CreateSessionRequest,
    DeleteSessionsResponse,
    SessionStats,
    UpdateSessionRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", response_model=ChatSession, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: CreateSessionRequest,
    owner_id: str = Depends(get_owner_id),
    registry: SessionRegistry = Depends(get_session_registry),
) -> ChatSession:
    """
    Create new session ("new chat").

    Args:
        request: CreateSessionRequest with optional title, category, metadata
        owner_id: Owner from the X-User-Id header
        registry: Injected SessionRegistry

    Returns:
        ChatSession: Created session

    Raises:
        HTTPException(400): Invalid request
        HTTPException(503): Store unavailable
    """
    try:
        return await registry.create(
            owner_id,
            title=request.title,
            category=request.category,
            metadata=request.metadata,
        )
    except ChatSyncError as e:
        raise http_error(e) from e


@router.get("", response_model=list[ChatSession])
async def list_sessions(
    archived: bool = False,
    include_archived: bool = False,
    owner_id: str = Depends(get_owner_id),
    registry: SessionRegistry = Depends(get_session_registry),
    settings: Settings = Depends(get_settings_dependency),
) -> list[ChatSession]:
    """
    List the owner's sessions, most recently updated first.

    Args:
        archived: Return archived sessions instead of active ones
        include_archived: Return both (overrides `archived`)
        owner_id: Owner from the X-User-Id header
        registry: Injected SessionRegistry
        settings: Decides whether a 500 carries the exception text
    """
    try:
        return await registry.list(owner_id, archived=None if include_archived else archived)
    except Exception as e:
        raise internal_error("Retrieving sessions", e, settings) from e


@router.delete("", response_model=DeleteSessionsResponse)
async def delete_all_sessions(
    owner_id: str = Depends(get_owner_id),
    registry: SessionRegistry = Depends(get_session_registry),
) -> DeleteSessionsResponse:
    """Delete every session (and message) of the owner."""
    try:
        deleted = await registry.delete_all_for_owner(owner_id)
    except ChatSyncError as e:
        raise http_error(e) from e
    return DeleteSessionsResponse(deleted=deleted)


@router.get("/search", response_model=list[ChatSession])
async def search_sessions(
    q: str = Query(min_length=1, max_length=200),
    owner_id: str = Depends(get_owner_id),
    registry: SessionRegistry = Depends(get_session_registry),
) -> list[ChatSession]:
    """Find the owner's sessions by title, archived ones included."""
    try:
        return await registry.search(owner_id, q)
    except ChatSyncError as e:
        raise http_error(e) from e


@router.get("/stats", response_model=SessionStats)
async def session_stats(
    owner_id: str = Depends(get_owner_id),
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionStats:
    return await registry.stats(owner_id)


@router.get("/{session_id}", response_model=ChatSession)
async def get_session(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    registry: SessionRegistry = Depends(get_session_registry),
) -> ChatSession:
    try:
        return await registry.get(owner_id, session_id)
    except ChatSyncError as e:
        raise http_error(e) from e


@router.patch("/{session_id}", response_model=ChatSession)
async def update_session(
    session_id: str,
    request: UpdateSessionRequest,
    owner_id: str = Depends(get_owner_id),
    registry: SessionRegistry = Depends(get_session_registry),
) -> ChatSession:
    """
    Partially update a session. Omitted fields are left untouched.

    Raises:
        HTTPException(400): Invalid title
        HTTPException(404): Session not found
        HTTPException(503): Store unavailable
    """
    try:
        return await registry.update(owner_id, session_id, request)
    except ChatSyncError as e:
        raise http_error(e) from e


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    registry: SessionRegistry = Depends(get_session_registry),
) -> None:
    """
    Delete session and all of its messages.

    Returns:
        204 No Content on success

    Raises:
        HTTPException(404): Session not found
        HTTPException(503): Deletion failed, nothing was deleted
    """
    try:
        await registry.delete(owner_id, session_id)
    except ChatSyncError as e:
        raise http_error(e) from e
