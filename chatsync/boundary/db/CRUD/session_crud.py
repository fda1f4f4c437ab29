"""
Session CRUD operations.

Provides Create, Read, Update, Delete operations for SessionModel
with owner-scoped listing and search, message summary bookkeeping and
cascading deletes.

Dependencies: sqlalchemy, chatsync.boundary.db.models
System role: Session persistence operations
"""

from datetime import datetime, timezone
from typing import Any, Sequence

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chatsync.boundary.db.CRUD.base_crud import BaseCRUD
from chatsync.boundary.db.CRUD.message_crud import message_crud
from chatsync.boundary.db.models.session_model import SessionModel
from chatsync.models.session import PREVIEW_LENGTH


def _not_before_now():
    """updated_at expression that never moves backwards."""
    now = datetime.now(timezone.utc)
    return case((SessionModel.updated_at > now, SessionModel.updated_at), else_=now)


class SessionCRUD(BaseCRUD[SessionModel]):
    """
    CRUD operations for SessionModel.

    Extends BaseCRUD with owner-scoped queries and summary maintenance.
    Summary counters are changed with in-database arithmetic so concurrent
    writers to one session never overwrite each other's increments.
    """

    def __init__(self) -> None:
        """Initialize SessionCRUD with SessionModel."""
        super().__init__(SessionModel)

    async def get_for_owner(
        self,
        session: AsyncSession,
        id: str,
        owner_id: str,
    ) -> SessionModel | None:
        """
        Retrieve a session only if it belongs to owner_id.

        Args:
            session: Async database session
            id: Session id
            owner_id: Expected owner

        Returns:
            SessionModel if found and owned, None otherwise
        """
        return await self.get_scoped(session, id, owner_id=owner_id)

    async def list_for_owner(
        self,
        session: AsyncSession,
        owner_id: str,
        archived: bool | None = False,
    ) -> Sequence[SessionModel]:
        """
        List an owner's sessions, most recently updated first.

        Args:
            session: Async database session
            owner_id: Owner id
            archived: False for active only, True for archived only, None for both

        Returns:
            Sequence of SessionModels ordered by updated_at desc
        """
        stmt = select(SessionModel).where(SessionModel.owner_id == owner_id)
        if archived is not None:
            stmt = stmt.where(SessionModel.is_archived == archived)
        stmt = stmt.order_by(SessionModel.updated_at.desc(), SessionModel.id.desc())
        result = await session.execute(stmt)
        return result.scalars().all()

    async def search_for_owner(
        self,
        session: AsyncSession,
        owner_id: str,
        term: str,
        limit: int,
    ) -> Sequence[SessionModel]:
        """Sessions whose title contains term (case-insensitive), archived included."""
        stmt = (
            select(SessionModel)
            .where(
                SessionModel.owner_id == owner_id,
                func.lower(SessionModel.title).contains(term.lower(), autoescape=True),
            )
            .order_by(SessionModel.updated_at.desc(), SessionModel.id.desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def stats_for_owner(self, session: AsyncSession, owner_id: str) -> dict[str, int]:
        """
        Aggregate an owner's sessions in one query.

        Returns:
            dict: total, archived and messages (sum of message_count)
        """
        stmt = select(
            func.count(SessionModel.id),
            func.coalesce(func.sum(case((SessionModel.is_archived.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(SessionModel.message_count), 0),
        ).where(SessionModel.owner_id == owner_id)
        total, archived, messages = (await session.execute(stmt)).one()
        return {"total": int(total), "archived": int(archived), "messages": int(messages)}

    async def list_ids_for_owner(self, session: AsyncSession, owner_id: str) -> list[str]:
        stmt = select(SessionModel.id).where(SessionModel.owner_id == owner_id)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def _apply_summary(
        self,
        session: AsyncSession,
        id: str,
        **values: Any,
    ) -> SessionModel | None:
        stmt = (
            update(SessionModel)
            .where(SessionModel.id == id)
            .values(updated_at=_not_before_now(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await session.get(SessionModel, id, populate_existing=True)

    async def record_message(
        self,
        session: AsyncSession,
        id: str,
        content: str,
        sender: str,
        at: datetime,
    ) -> SessionModel | None:
        """
        Bump message_count and the last-message preview for a new message.

        Runs inside the caller's transaction so the count moves together with
        the message insert. updated_at never decreases.

        Args:
            session: Async database session
            id: Session id
            content: Message text (truncated to the preview length)
            sender: Message sender value
            at: Message created_at

        Returns:
            Updated SessionModel, None if the session does not exist
        """
        return await self._apply_summary(
            session,
            id,
            message_count=SessionModel.message_count + 1,
            last_message_content=content[:PREVIEW_LENGTH],
            last_message_sender=sender,
            last_message_at=at,
        )

    async def record_removal(self, session: AsyncSession, id: str) -> SessionModel | None:
        """
        Decrement message_count after a message was soft-deleted.

        The preview is rebuilt from the newest message still visible, so
        call this after the delete flag is written.

        Returns:
            Updated SessionModel, None if the session does not exist
        """
        latest = await message_crud.latest_in_session(session, id)
        return await self._apply_summary(
            session,
            id,
            message_count=case(
                (SessionModel.message_count > 0, SessionModel.message_count - 1),
                else_=0,
            ),
            last_message_content=latest.content[:PREVIEW_LENGTH] if latest else None,
            last_message_sender=latest.sender if latest else None,
            last_message_at=latest.created_at if latest else None,
        )

    async def delete_cascade(self, session: AsyncSession, id: str) -> bool:
        """
        Delete a session and all of its messages.

        Messages are deleted explicitly so the cascade does not depend on
        the backend enforcing foreign keys.

        Args:
            session: Async database session
            id: Session id

        Returns:
            True if the session existed
        """
        await message_crud.delete_where(session, session_id=id)
        return await self.delete_by_id(session, id)


session_crud = SessionCRUD()
