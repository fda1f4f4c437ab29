"""
WebSocket sync endpoint.

Pushes the reconciled message view of one session and feeds viewport
visibility reports to a read tracker.

Routes: WS /ws/sessions/{session_id}/sync

Client sends:
    {"event": "ping"}
    {"event": "visibility", "data": {"message_id": "...", "ratio": 0.8}}
    {"event": "stop"}

Server sends:
    {"event": "connected", "data": {"session_id": "..."}}
    {"event": "snapshot", "data": {"messages": [...]}}
    {"event": "pong"}
    {"event": "error", "data": {"code": "...", "message": "..."}}

Dependencies: chatsync.application.services.sync_reconciler, chatsync.core.read_tracker
System role: Real-time sync HTTP API
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError as PydanticValidationError

from chatsync.api.deps import ServiceContainer, get_container, get_ws_owner_id
from chatsync.core.exceptions import ChatSyncError, SessionNotFoundError
from chatsync.models.message import ChatMessage
from chatsync.models.streaming import (
    ClientEventType,
    StreamEvent,
    StreamEventType,
    VisibilityEvent,
)
from chatsync.observability.log_utils import log_exception_with_context

logger = logging.getLogger(__name__)
router = APIRouter(tags=["sync"])


def _error(code: str, message: str) -> dict:
    return StreamEvent(event=StreamEventType.ERROR, data={"code": code, "message": message}).to_dict()


@router.websocket("/ws/sessions/{session_id}/sync")
async def websocket_sync(
    websocket: WebSocket,
    session_id: str,
    owner_id: str = Depends(get_ws_owner_id),
    container: ServiceContainer = Depends(get_container),
) -> None:
    """
    WebSocket endpoint for real-time session sync.

    The reconciler subscription and the read tracker live exactly as long
    as the connection.

    Args:
        websocket: WebSocket connection
        session_id: Session id from path
        owner_id: Owner from header or ?user_id=
        container: Service container
    """
    await websocket.accept()

    try:
        await container.registry.get(owner_id, session_id)
    except SessionNotFoundError as e:
        await websocket.send_json(_error("SESSION_NOT_FOUND", e.message))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    logger.info(
        "WebSocket sync connection established",
        extra={"session_id": session_id, "client_host": websocket.client},
    )
    await websocket.send_json(
        StreamEvent(event=StreamEventType.CONNECTED, data={"session_id": session_id}).to_dict()
    )

    views: asyncio.Queue[list[ChatMessage]] = asyncio.Queue()
    tracker = container.read_tracker(session_id)

    async def push_views() -> None:
        while True:
            view = await views.get()
            for message in view:
                tracker.observe(message)
            await websocket.send_json(
                StreamEvent(
                    event=StreamEventType.SNAPSHOT,
                    data={"messages": [m.model_dump(mode="json") for m in view]},
                ).to_dict()
            )

    pusher: asyncio.Task | None = None
    try:
        async with container.reconciler.subscription(session_id, views.put_nowait) as subscription:
            # initial view, also sent when the session is still empty
            views.put_nowait(subscription.view())
            pusher = asyncio.create_task(push_views())
            while True:
                raw_data = await websocket.receive_text()
                try:
                    data = json.loads(raw_data)
                except json.JSONDecodeError:
                    await websocket.send_json(_error("INVALID_JSON", "Invalid JSON format"))
                    continue
                if not isinstance(data, dict):
                    await websocket.send_json(_error("INVALID_EVENT", "Expected a JSON object"))
                    continue

                event_type = data.get("event")
                if event_type == ClientEventType.PING.value:
                    await websocket.send_json({"event": "pong"})
                elif event_type == ClientEventType.VISIBILITY.value:
                    try:
                        visibility = VisibilityEvent.model_validate(data.get("data") or {})
                    except PydanticValidationError:
                        await websocket.send_json(_error("INVALID_EVENT", "Malformed visibility event"))
                        continue
                    tracker.set_visibility(visibility.message_id, visibility.ratio)
                elif event_type == ClientEventType.STOP.value:
                    container.chat_service.stop(session_id)
                else:
                    await websocket.send_json(
                        _error("UNKNOWN_EVENT", f"Unknown event type: {event_type}")
                    )
    except WebSocketDisconnect:
        logger.info("WebSocket sync disconnected", extra={"session_id": session_id})
    finally:
        if pusher is not None:
            pusher.cancel()
        try:
            await tracker.close()
        except ChatSyncError as e:
            log_exception_with_context(
                logger, "Final read-receipt flush failed", e, session_id=session_id
            )
