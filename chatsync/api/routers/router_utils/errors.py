"""
Domain error to HTTP error translation.

Dependencies: fastapi, chatsync.configs, chatsync.core.exceptions
System role: Router error mapping
"""

from fastapi import HTTPException, status

from chatsync.configs import Settings
from chatsync.core.exceptions import (
    ChatSyncError,
    ConcurrentStreamError,
    MessageNotFoundError,
    PersistenceError,
    SessionNotFoundError,
    ValidationError,
)

_STATUS_BY_ERROR: list[tuple[type[ChatSyncError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (SessionNotFoundError, status.HTTP_404_NOT_FOUND),
    (MessageNotFoundError, status.HTTP_404_NOT_FOUND),
    (ConcurrentStreamError, status.HTTP_409_CONFLICT),
    (PersistenceError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def http_error(error: ChatSyncError) -> HTTPException:
    """
    Build the HTTPException for a domain error.

    Args:
        error: Domain exception raised by a service

    Returns:
        HTTPException: 400, 404, 409, 503, or 500 for anything unmapped
    """
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=error.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error.message)


def internal_error(action: str, error: Exception, settings: Settings) -> HTTPException:
    """500 for an unexpected failure. The exception text is shown only in debug mode."""
    detail = f"{action} failed"
    if settings.expose_error_details:
        detail = f"{detail}: {error}"
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
