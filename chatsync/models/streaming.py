"""
Streaming event schemas for SSE chat and the WebSocket sync channel.

Defines event types and payloads for real-time delivery.

Dependencies: pydantic
System role: Streaming protocol schemas
"""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel


class StreamEventType(str, Enum):
    """Server-to-client event types."""

    CONNECTED = "connected"
    USER_MESSAGE = "user_message"
    THINKING = "thinking"
    TOKEN = "token"
    COMPLETE = "complete"
    SNAPSHOT = "snapshot"
    ERROR = "error"


class ClientEventType(str, Enum):
    """Client-to-server event types on the sync channel."""

    PING = "ping"
    VISIBILITY = "visibility"
    STOP = "stop"


class StreamEvent(BaseModel):
    """
    Base streaming event model.

    Attributes:
        event: Event type identifier
        data: Event-specific payload
    """

    event: StreamEventType
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {"event": self.event.value, "data": self.data}

    def to_sse(self) -> str:
        """Format as a Server-Sent Events frame."""
        return f"event: {self.event.value}\ndata: {json.dumps(self.data)}\n\n"


class VisibilityEvent(BaseModel):
    """
    Viewport visibility signal for one rendered message.

    Attributes:
        message_id: Rendered message id
        ratio: Fraction of the message area inside the viewport (0.0 - 1.0)
    """

    message_id: str
    ratio: float
