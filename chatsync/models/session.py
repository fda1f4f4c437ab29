"""
Session domain models and schemas.

Request/response schemas for chat session operations.

Dependencies: pydantic
System role: Session API contracts
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from chatsync.models.message import MessageSender, ensure_utc


PREVIEW_LENGTH = 200


class SessionCategory(str, Enum):
    """Category tag for a chat session."""

    STUDY = "study"
    PRACTICE = "practice"
    GENERAL = "general"
    EXAM_PREP = "exam-prep"


class LastMessagePreview(BaseModel):
    """Excerpt of the latest message in a session."""

    content: str
    sender: MessageSender
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class ChatSession(BaseModel):
    """
    Persistent, named conversation thread owned by one user.

    Attributes:
        id: Opaque session id
        owner_id: Opaque user id from the identity provider
        title: Display title
        category: Category tag
        is_pinned: Pinned to the top of the list by the UI
        is_archived: Soft-archived
        message_count: Number of persisted messages
        last_message: Preview of the most recent message
        metadata: Free-form session metadata
        created_at: Creation time (UTC)
        updated_at: Last modification time (UTC), never decreases
    """

    id: str
    owner_id: str
    title: str
    category: SessionCategory = SessionCategory.GENERAL
    is_pinned: bool = False
    is_archived: bool = False
    message_count: int = 0
    last_message: LastMessagePreview | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def _normalize_timestamps(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @classmethod
    def from_row(cls, row: Any) -> "ChatSession":
        """
        Build a session from a SessionModel row.

        Args:
            row: SessionModel ORM instance

        Returns:
            ChatSession: Session summary
        """
        last_message = None
        if row.last_message_content is not None and row.last_message_at is not None:
            last_message = LastMessagePreview(
                content=row.last_message_content,
                sender=MessageSender(row.last_message_sender),
                timestamp=row.last_message_at,
            )
        return cls(
            id=row.id,
            owner_id=row.owner_id,
            title=row.title,
            category=SessionCategory(row.category),
            is_pinned=row.is_pinned,
            is_archived=row.is_archived,
            message_count=row.message_count,
            last_message=last_message,
            metadata=row.session_metadata or {},
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


class CreateSessionRequest(BaseModel):
    """Request schema for creating a new session."""

    title: str | None = Field(default=None, max_length=200)
    category: SessionCategory = SessionCategory.GENERAL
    metadata: dict[str, Any] = Field(default_factory=dict, description="Optional session metadata")


class UpdateSessionRequest(BaseModel):
    """Partial update of a session. Omitted fields are left untouched."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    is_pinned: bool | None = None
    is_archived: bool | None = None
    category: SessionCategory | None = None


class DeleteSessionsResponse(BaseModel):
    """Result of deleting all of an owner's sessions."""

    deleted: int


class SessionStats(BaseModel):
    """Aggregate figures over all of an owner's sessions."""

    total: int = 0
    active: int = 0
    archived: int = 0
    total_messages: int = 0
    average_messages_per_session: int = 0
