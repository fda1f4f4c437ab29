"""
Core business logic module.

Contains the exception hierarchy, the typed event channel, the pure
reconciliation reducer, the response cache, the streaming revealer and
the read tracker. Nothing here performs I/O.
"""

from chatsync.core.exceptions import (
    ChatSyncError,
    ConcurrentStreamError,
    GatewayError,
    GatewayTimeoutError,
    InferenceError,
    MessageNotFoundError,
    PersistenceError,
    SessionNotFoundError,
    SyncConflictError,
    TransientError,
    ValidationError,
)
from chatsync.core.events import EventChannel
from chatsync.core.read_tracker import ReadTracker
from chatsync.core.reconciliation import ConversationState, reduce
from chatsync.core.response_cache import ResponseCache
from chatsync.core.streaming_revealer import RevealTask, StreamingRevealer

__all__ = [
    # Exceptions
    "ChatSyncError",
    "ConcurrentStreamError",
    "GatewayError",
    "GatewayTimeoutError",
    "InferenceError",
    "MessageNotFoundError",
    "PersistenceError",
    "SessionNotFoundError",
    "SyncConflictError",
    "TransientError",
    "ValidationError",
    # Business logic
    "ConversationState",
    "EventChannel",
    "ReadTracker",
    "ResponseCache",
    "RevealTask",
    "StreamingRevealer",
    "reduce",
]
