"""Domain models and API schemas."""

from chatsync.models.chat import Answer, ChatRequest, ChatTurnResponse, StopResponse
from chatsync.models.message import (
    ChatMessage,
    Feedback,
    MessageMetadata,
    MessagePage,
    MessageSender,
    MessageStatus,
    SourceRef,
)
from chatsync.models.session import ChatSession, SessionCategory

__all__ = [
    "Answer",
    "ChatMessage",
    "ChatRequest",
    "ChatSession",
    "ChatTurnResponse",
    "Feedback",
    "MessageMetadata",
    "MessagePage",
    "MessageSender",
    "MessageStatus",
    "SessionCategory",
    "SourceRef",
    "StopResponse",
]
