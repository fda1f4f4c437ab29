"""
Exception hierarchy for the chat sync engine.

Provides layered exception structure for domain-specific errors.
All exceptions include context for observability and debugging.

Dependencies: None (pure domain layer)
System role: Centralized exception handling across the application
"""

from typing import Any


class ChatSyncError(Exception):
    """Base exception for all chat sync engine errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize base exception with message and optional context.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional context for debugging
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation including details."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ValidationError(ChatSyncError):
    """Raised when input validation fails. Never retried."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize validation error.

        Args:
            message: Error message
            field: Field name that failed validation
            details: Additional context
        """
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class SessionNotFoundError(ChatSyncError):
    """Raised when a chat session cannot be found for the owner."""

    def __init__(self, session_id: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize session not found error.

        Args:
            session_id: ID of the missing session
            details: Additional context
        """
        details = details or {}
        details["session_id"] = session_id
        super().__init__(f"Session not found: {session_id}", details)


class MessageNotFoundError(ChatSyncError):
    """Raised when a message cannot be found in a session."""

    def __init__(
        self,
        message_id: str,
        session_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["message_id"] = message_id
        if session_id:
            details["session_id"] = session_id
        super().__init__(f"Message not found: {message_id}", details)


class GatewayError(ChatSyncError):
    """Base exception for inference gateway failures."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize gateway error.

        Args:
            message: Error message
            status_code: HTTP status returned by the inference endpoint, if any
            details: Additional context
        """
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        self.status_code = status_code
        super().__init__(message, details)


class GatewayTimeoutError(GatewayError):
    """Raised when an inference request exceeds the hard timeout. Never retried."""

    pass


class TransientError(GatewayError):
    """Raised on network or 5xx failures once the retry bound is exhausted."""

    pass


class InferenceError(GatewayError):
    """Raised when the endpoint reports an error or returns a malformed body."""

    pass


class PersistenceError(ChatSyncError):
    """Raised when a write to the durable store fails."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize persistence error.

        Args:
            message: Error message
            operation: Store operation that failed (create, update, delete)
            details: Additional context
        """
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details)


class ConcurrentStreamError(ChatSyncError):
    """Raised when a reveal is started while another is active on the same surface."""

    pass


class SyncConflictError(ChatSyncError):
    """Raised (and logged) when reconciliation cannot confidently merge records."""

    def __init__(
        self,
        message: str,
        authoritative_id: str | None = None,
        candidate_ids: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if authoritative_id:
            details["authoritative_id"] = authoritative_id
        if candidate_ids:
            details["candidate_ids"] = candidate_ids
        super().__init__(message, details)
