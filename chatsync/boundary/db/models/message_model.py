"""
Chat message ORM model.

Dependencies: sqlalchemy, chatsync.boundary.db.base
System role: Message persistence
"""

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chatsync.boundary.db.base import Base, StringIdMixin, TimestampMixin


class MessageModel(Base, StringIdMixin, TimestampMixin):
    """
    One turn within a session.

    The id is the client-generated id of the optimistic record. Ordering
    within a session is (created_at, id).

    Attributes:
        session_id: Owning session (cascade delete)
        sender: user or assistant
        content: Message text
        status: sent or read once stored
        feedback: like, dislike or NULL
        is_deleted: Soft-deleted rows are kept but hidden from every read
        message_metadata: Processing time, sources and reply flags
    """

    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_messages_session_created", "session_id", "created_at", "id"),
    )

    session_id: Mapped[str] = mapped_column(
        ForeignKey("chat_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="sent")
    feedback: Mapped[str | None] = mapped_column(String(16), nullable=True, default=None)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    message_metadata: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    session = relationship("SessionModel", back_populates="messages")
