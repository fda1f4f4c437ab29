"""
Message domain models and schemas.

Defines the chat message record shared by the ledger, the reconciler and the
API layer, plus its status/sender/feedback enums and source attributions.

Dependencies: pydantic
System role: Message data structures
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Attach UTC to naive datetimes.

    SQLite drops tzinfo on round trip; every timestamp in the engine is UTC,
    so naive values are interpreted as UTC rather than local time.

    Args:
        value: Datetime that may or may not carry tzinfo

    Returns:
        datetime: Timezone-aware UTC datetime
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_message_id() -> str:
    """Generate a client-side message id."""
    return uuid.uuid4().hex


class MessageSender(str, Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"


class MessageStatus(str, Enum):
    """Delivery status of a message."""

    SENDING = "sending"
    SENT = "sent"
    ERROR = "error"
    READ = "read"


class Feedback(str, Enum):
    """User feedback on an assistant message."""

    LIKE = "like"
    DISLIKE = "dislike"


class SourceRef(BaseModel):
    """Source attribution returned by the inference endpoint."""

    title: str = Field(default="Unknown", description="Source title")
    url: str | None = Field(default=None, description="Source URL")
    relevance: float = Field(default=0.0, description="Relevance score")


class MessageMetadata(BaseModel):
    """Optional metadata attached to a message."""

    processing_time_ms: float | None = Field(
        default=None, description="Inference latency for assistant replies"
    )
    sources: list[SourceRef] = Field(default_factory=list)
    from_cache: bool = Field(default=False, description="Reply served from cache")
    error_code: str | None = Field(
        default=None, description="Set on friendly error replies"
    )
    partial: bool = Field(
        default=False, description="Reply was stopped mid-reveal"
    )


class ChatMessage(BaseModel):
    """
    One turn (user or assistant) within a session.

    Local optimistic records and authoritative store records share this
    model. The ledger mutates a local record in place (status, error) when
    persistence resolves; content and created_at never change once sent.

    Attributes:
        id: Message id (client-generated, kept as primary key by the store)
        session_id: Owning session id
        sender: user or assistant
        content: Message text
        status: sending, sent, error or read
        feedback: like, dislike or None
        metadata: Processing time, sources and reply flags
        created_at: Creation time (UTC), defines order within a session
        updated_at: Last status/feedback change (UTC)
        error: Local-only persistence failure detail
    """

    id: str = Field(default_factory=new_message_id)
    session_id: str
    sender: MessageSender
    content: str
    status: MessageStatus = MessageStatus.SENDING
    feedback: Feedback | None = None
    metadata: MessageMetadata = Field(default_factory=MessageMetadata)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    error: str | None = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def _normalize_timestamps(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @classmethod
    def from_row(cls, row: Any) -> "ChatMessage":
        """
        Build a message from a MessageModel row.

        Args:
            row: MessageModel ORM instance

        Returns:
            ChatMessage: Authoritative record
        """
        return cls(
            id=row.id,
            session_id=row.session_id,
            sender=MessageSender(row.sender),
            content=row.content,
            status=MessageStatus(row.status),
            feedback=Feedback(row.feedback) if row.feedback else None,
            metadata=MessageMetadata.model_validate(row.message_metadata or {}),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @property
    def is_persisted(self) -> bool:
        """True once the store has acknowledged the record."""
        return self.status in (MessageStatus.SENT, MessageStatus.READ)


class MessagePage(BaseModel):
    """One page of messages in chronological order."""

    messages: list[ChatMessage]
    has_more: bool = False
    cursor: str | None = Field(
        default=None, description="Id of the oldest message, pass back to fetch older"
    )


class FeedbackRequest(BaseModel):
    """Request schema for setting feedback on a message."""

    feedback: Feedback | None = Field(description="like, dislike or null to clear")


class MarkReadRequest(BaseModel):
    """Request schema for marking messages read."""

    message_ids: list[str] = Field(min_length=1)


class FeedbackStats(BaseModel):
    """Aggregated feedback counts."""

    total: int = 0
    positive: int = 0
    negative: int = 0
    positive_rate: float = 0.0


class UnreadCountResponse(BaseModel):
    """Unread assistant message count for a session."""

    session_id: str
    unread: int


class MarkReadResponse(BaseModel):
    """Result of a batched mark-read."""

    session_id: str
    updated: int


class MessageStats(BaseModel):
    """Message totals for one session."""

    total: int = 0
    user_messages: int = 0
    assistant_messages: int = 0
    avg_processing_ms: float | None = Field(
        default=None, description="Mean inference latency of assistant replies"
    )
