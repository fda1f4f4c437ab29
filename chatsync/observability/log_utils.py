"""
Logging utilities for structured chat logging.

Log lines never carry full message bodies: content is reduced to a short
single-line preview, messages to their id/sender/status, and domain errors
contribute their `details` as structured fields.

Dependencies: logging (stdlib), chatsync.models.message
System role: Logging helper functions
"""

import logging
from enum import Enum
from typing import Any

from chatsync.models.message import ChatMessage

MAX_FIELD_LENGTH = 300


def preview_text(text: str, max_length: int = 40) -> str:
    """Single-line excerpt of user content for log lines."""
    flat = " ".join(text.split())
    if len(flat) <= max_length:
        return flat
    return flat[: max_length - 3] + "..."


def safe_log_value(value: Any, max_length: int = MAX_FIELD_LENGTH) -> str:
    """
    Convert a context value to a bounded string for `extra=`.

    Messages are summarized, enums logged by value, collections by size.

    Args:
        value: Value to convert
        max_length: Length after which the string is cut

    Returns:
        str: Log-safe representation
    """
    if value is None:
        return "None"
    if isinstance(value, ChatMessage):
        text = f"{value.id} {value.sender.value}/{value.status.value}"
    elif isinstance(value, Enum):
        text = str(value.value)
    elif isinstance(value, (list, tuple, set, frozenset)):
        text = f"{type(value).__name__}({len(value)} items)"
    elif isinstance(value, dict):
        text = f"dict({len(value)} keys)"
    else:
        text = str(value)

    if len(text) > max_length:
        return text[:max_length] + f"... ({len(text)} chars)"
    return text


def message_context(message: ChatMessage) -> dict[str, str]:
    """Standard structured fields for a log line about one message."""
    return {
        "message_id": message.id,
        "session_id": message.session_id,
        "sender": message.sender.value,
        "status": message.status.value,
    }


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    **context,
) -> None:
    """
    Log a message with structured context.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        message: Log message
        **context: Structured fields, converted with safe_log_value
    """
    logger.log(level, message, extra={key: safe_log_value(val) for key, val in context.items()})


def log_exception_with_context(
    logger: logging.Logger,
    message: str,
    exc: BaseException,
    **context,
) -> None:
    """
    Log an exception with its type, text and domain details.

    Domain errors (anything with a `details` dict, i.e. ChatSyncError)
    contribute those details. Explicit context wins on key clashes.

    Args:
        logger: Logger instance
        message: Log message
        exc: Exception instance
        **context: Additional structured fields
    """
    fields: dict[str, Any] = {}
    details = getattr(exc, "details", None)
    if isinstance(details, dict):
        fields.update(details)
    error_text = getattr(exc, "message", None) or str(exc)
    fields.update(context)

    extra = {key: safe_log_value(val) for key, val in fields.items()}
    extra["error_type"] = type(exc).__name__
    extra["error_msg"] = safe_log_value(error_text)
    logger.error(message, exc_info=exc, extra=extra)
