"""API-specific dependencies."""

# Re-export common dependencies
from .dependencies import (
    ServiceContainer,
    get_chat_service,
    get_container,
    get_message_ledger,
    get_owner_id,
    get_session_registry,
    get_settings_dependency,
    get_sync_reconciler,
    get_ws_owner_id,
)

__all__ = [
    "ServiceContainer",
    "get_chat_service",
    "get_container",
    "get_message_ledger",
    "get_owner_id",
    "get_session_registry",
    "get_settings_dependency",
    "get_sync_reconciler",
    "get_ws_owner_id",
]
