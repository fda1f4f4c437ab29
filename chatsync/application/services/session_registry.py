"""
Session registry.

Owner-scoped CRUD and listing of chat sessions. Every mutation commits
before returning, publishes a typed event and refreshes the owner's
session feed.

Dependencies: sqlalchemy, chatsync.boundary.db, chatsync.boundary.feed, chatsync.core.events
System role: Session Registry
"""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from chatsync.boundary.db.CRUD.session_crud import session_crud
from chatsync.boundary.feed import RealtimeFeed
from chatsync.core.events import EventChannel, SessionCreated, SessionDeleted, SessionUpdated
from chatsync.core.exceptions import PersistenceError, SessionNotFoundError, ValidationError
from chatsync.models.message import ensure_utc, new_message_id, utc_now
from chatsync.models.session import ChatSession, SessionCategory, SessionStats, UpdateSessionRequest
from chatsync.observability.log_utils import log_exception_with_context

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200
MAX_SEARCH_RESULTS = 100


def default_title(now: datetime | None = None) -> str:
    """Title given to sessions created without one, e.g. "New Chat Oct 18, 2026"."""
    now = now or utc_now()
    return f"New Chat {now:%b %d, %Y}"


def _clean_title(title: str) -> str:
    cleaned = " ".join(title.split())
    if not cleaned:
        raise ValidationError("Title must not be empty", field="title")
    if len(cleaned) > MAX_TITLE_LENGTH:
        raise ValidationError(
            f"Title must be at most {MAX_TITLE_LENGTH} characters", field="title"
        )
    return cleaned


class SessionRegistry:
    """
    Session registry service.

    Attributes:
        session_factory: async_sessionmaker for store access
        events: Typed event channel
        feed: Real-time feed refreshed after each mutation
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        events: EventChannel,
        feed: RealtimeFeed,
    ) -> None:
        self.session_factory = session_factory
        self.events = events
        self.feed = feed

    async def create(
        self,
        owner_id: str,
        title: str | None = None,
        category: SessionCategory = SessionCategory.GENERAL,
        metadata: dict[str, Any] | None = None,
    ) -> ChatSession:
        """
        Create a session and commit it before returning.

        Args:
            owner_id: Owning user id
            title: Display title (defaults to "New Chat <Mon DD, YYYY>")
            category: Category tag
            metadata: Free-form metadata

        Returns:
            ChatSession: Created session with zero messages

        Raises:
            ValidationError: Missing owner or invalid title
            PersistenceError: Store write failed (no session exists)
        """
        if not owner_id:
            raise ValidationError("Owner id is required", field="owner_id")
        title = _clean_title(title) if title is not None else default_title()

        async with self.session_factory() as db:
            try:
                row = await session_crud.create(
                    db,
                    id=new_message_id(),
                    owner_id=owner_id,
                    title=title,
                    category=category.value,
                    session_metadata=metadata or {},
                )
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                log_exception_with_context(logger, "Session create failed", e, owner_id=owner_id)
                raise PersistenceError("Failed to create session", operation="create") from e
            session = ChatSession.from_row(row)

        logger.info(f"{__name__}:create - session {session.id} created")
        self.events.publish(SessionCreated(session=session))
        await self.feed.publish_sessions(owner_id)
        return session

    async def search(self, owner_id: str, term: str, limit: int = MAX_SEARCH_RESULTS) -> list[ChatSession]:
        """
        Find the owner's sessions by title, case-insensitive.

        Archived sessions are included; results are ordered like list().

        Raises:
            ValidationError: Blank search term
        """
        term = term.strip()
        if not term:
            raise ValidationError("Search term must not be empty", field="q")
        async with self.session_factory() as db:
            rows = await session_crud.search_for_owner(db, owner_id, term, limit)
            return [ChatSession.from_row(row) for row in rows]

    async def stats(self, owner_id: str) -> SessionStats:
        """Session and message totals over all of the owner's sessions."""
        async with self.session_factory() as db:
            counts = await session_crud.stats_for_owner(db, owner_id)
        total = counts["total"]
        return SessionStats(
            total=total,
            active=total - counts["archived"],
            archived=counts["archived"],
            total_messages=counts["messages"],
            average_messages_per_session=round(counts["messages"] / total) if total else 0,
        )

    async def list(self, owner_id: str, archived: bool | None = False) -> list[ChatSession]:
        """
        List an owner's sessions, most recently updated first.

        Args:
            owner_id: Owning user id
            archived: False active only (default), True archived only, None both

        Returns:
            list[ChatSession]: Sessions ordered by updated_at desc
        """
        async with self.session_factory() as db:
            rows = await session_crud.list_for_owner(db, owner_id, archived=archived)
            return [ChatSession.from_row(row) for row in rows]

    async def get(self, owner_id: str, session_id: str) -> ChatSession:
        """
        Fetch one of the owner's sessions.

        Raises:
            SessionNotFoundError: Unknown session or owned by someone else
        """
        async with self.session_factory() as db:
            row = await session_crud.get_for_owner(db, session_id, owner_id)
            if row is None:
                raise SessionNotFoundError(session_id)
            return ChatSession.from_row(row)

    async def rename(self, owner_id: str, session_id: str, title: str) -> ChatSession:
        return await self._update(owner_id, session_id, title=_clean_title(title))

    async def archive(self, owner_id: str, session_id: str, archived: bool = True) -> ChatSession:
        return await self._update(owner_id, session_id, is_archived=archived)

    async def set_pinned(self, owner_id: str, session_id: str, pinned: bool) -> ChatSession:
        return await self._update(owner_id, session_id, is_pinned=pinned)

    async def set_category(
        self,
        owner_id: str,
        session_id: str,
        category: SessionCategory,
    ) -> ChatSession:
        return await self._update(owner_id, session_id, category=category.value)

    async def update(
        self,
        owner_id: str,
        session_id: str,
        request: UpdateSessionRequest,
    ) -> ChatSession:
        """
        Apply a partial update in one write.

        Args:
            owner_id: Owning user id
            session_id: Session id
            request: Fields to change (None fields untouched)

        Returns:
            ChatSession: Updated session
        """
        fields: dict[str, Any] = {}
        if request.title is not None:
            fields["title"] = _clean_title(request.title)
        if request.is_pinned is not None:
            fields["is_pinned"] = request.is_pinned
        if request.is_archived is not None:
            fields["is_archived"] = request.is_archived
        if request.category is not None:
            fields["category"] = request.category.value
        return await self._update(owner_id, session_id, **fields)

    async def _update(self, owner_id: str, session_id: str, **fields: Any) -> ChatSession:
        async with self.session_factory() as db:
            row = await session_crud.get_for_owner(db, session_id, owner_id)
            if row is None:
                raise SessionNotFoundError(session_id)

            changes = {k: v for k, v in fields.items() if getattr(row, k) != v}
            if not changes:
                return ChatSession.from_row(row)

            try:
                for key, value in changes.items():
                    setattr(row, key, value)
                row.updated_at = max(ensure_utc(row.updated_at), datetime.now(timezone.utc))
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                log_exception_with_context(
                    logger, "Session update failed", e, session_id=session_id
                )
                raise PersistenceError("Failed to update session", operation="update") from e
            session = ChatSession.from_row(row)

        self.events.publish(SessionUpdated(session=session))
        await self.feed.publish_sessions(owner_id)
        return session

    async def delete(self, owner_id: str, session_id: str) -> None:
        """
        Delete a session and all of its messages in one transaction.

        Raises:
            SessionNotFoundError: Unknown session or owned by someone else
            PersistenceError: Store write failed (nothing deleted)
        """
        async with self.session_factory() as db:
            row = await session_crud.get_for_owner(db, session_id, owner_id)
            if row is None:
                raise SessionNotFoundError(session_id)
            try:
                await session_crud.delete_cascade(db, session_id)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                log_exception_with_context(
                    logger, "Session delete failed", e, session_id=session_id
                )
                raise PersistenceError("Failed to delete session", operation="delete") from e

        logger.info(f"{__name__}:delete - session {session_id} deleted")
        self.events.publish(SessionDeleted(owner_id=owner_id, session_id=session_id))
        await self.feed.publish_sessions(owner_id)
        await self.feed.publish_messages(session_id)

    async def delete_all_for_owner(self, owner_id: str) -> int:
        """
        Delete every session of an owner (account cleanup).

        Returns:
            int: Number of sessions deleted
        """
        async with self.session_factory() as db:
            session_ids = await session_crud.list_ids_for_owner(db, owner_id)
            try:
                for session_id in session_ids:
                    await session_crud.delete_cascade(db, session_id)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                log_exception_with_context(
                    logger, "Owner cleanup failed", e, owner_id=owner_id
                )
                raise PersistenceError("Failed to delete sessions", operation="delete") from e

        logger.info(f"{__name__}:delete_all_for_owner - {len(session_ids)} sessions deleted")
        for session_id in session_ids:
            self.events.publish(SessionDeleted(owner_id=owner_id, session_id=session_id))
            await self.feed.publish_messages(session_id)
        await self.feed.publish_sessions(owner_id)
        return len(session_ids)
