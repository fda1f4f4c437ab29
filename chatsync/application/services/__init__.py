"""Service orchestrators."""

from .chat_service import ChatService
from .message_ledger import MessageLedger
from .session_registry import SessionRegistry
from .sync_reconciler import SyncReconciler, SyncSubscription

__all__ = [
    "ChatService",
    "MessageLedger",
    "SessionRegistry",
    "SyncReconciler",
    "SyncSubscription",
]
