"""
Database models package.

Exports:
  - SessionModel: Chat session ORM model
  - MessageModel: Chat message ORM model

Dependencies: sqlalchemy, chatsync.boundary.db.base
System role: Database model definitions for domain entities
"""

from chatsync.boundary.db.models.session_model import SessionModel
from chatsync.boundary.db.models.message_model import MessageModel

__all__ = [
    "SessionModel",
    "MessageModel",
]
