"""
Chat session ORM model.

Represents one conversation owned by a user, with denormalized
last-message preview and message count for session lists.

Dependencies: sqlalchemy, chatsync.boundary.db.base
System role: Session persistence
"""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chatsync.boundary.db.base import Base, StringIdMixin, TimestampMixin


class SessionModel(Base, StringIdMixin, TimestampMixin):
    """
    Session ORM model.

    Messages cascade on delete, so removing a session removes its whole
    transcript in the same transaction.

    Attributes:
        id: Session id
        owner_id: Owning user id
        title: Display title
        category: study, practice, general or exam-prep
        is_pinned: Pinned to the top of lists
        is_archived: Hidden from the default list
        message_count: Number of messages in the session
        last_message_content: Preview of the last message (<= 200 chars)
        last_message_sender: Sender of the last message
        last_message_at: Timestamp of the last message
        session_metadata: Free-form JSON metadata
    """

    __tablename__ = "chat_sessions"

    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="general")
    is_pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    last_message_content: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    last_message_sender: Mapped[str | None] = mapped_column(String(16), nullable=True, default=None)
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    session_metadata: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        doc="Flexible session metadata",
    )

    messages = relationship(
        "MessageModel",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
