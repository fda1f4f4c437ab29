"""
Database boundary layer: ORM models, CRUD operations, and connection management.

Exports:
  - Base, StringIdMixin, TimestampMixin: Model building blocks
  - get_async_engine(), get_async_session_factory(): Async connection management
  - SessionModel, MessageModel: Core domain entities
  - session_crud, message_crud: CRUD operation singletons

Dependencies: sqlalchemy, chatsync.configs
System role: Durable store for chat sessions and messages
"""

from chatsync.boundary.db.base import Base, StringIdMixin, TimestampMixin
from chatsync.boundary.db.connection import (
    get_async_engine,
    get_async_session_factory,
)
from chatsync.boundary.db.models import MessageModel, SessionModel
from chatsync.boundary.db.CRUD import (
    BaseCRUD,
    MessageCRUD,
    SessionCRUD,
    message_crud,
    session_crud,
)

__all__ = [
    # Base classes
    "Base",
    "StringIdMixin",
    "TimestampMixin",
    # Connection
    "get_async_engine",
    "get_async_session_factory",
    # Models
    "SessionModel",
    "MessageModel",
    # CRUD classes
    "BaseCRUD",
    "SessionCRUD",
    "MessageCRUD",
    # CRUD singletons
    "session_crud",
    "message_crud",
]
