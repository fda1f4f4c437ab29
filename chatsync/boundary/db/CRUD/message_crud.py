"""
Message CRUD operations.

Cursor pagination, batched read receipts, unread counts, search and
aggregation for MessageModel. Soft-deleted rows are invisible to every
query except the cursor lookup, so a page cursor stays valid after the
message it names is deleted.

Dependencies: sqlalchemy, chatsync.boundary.db.models
System role: Message persistence operations
"""

from typing import Any, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chatsync.boundary.db.CRUD.base_crud import BaseCRUD
from chatsync.boundary.db.models.message_model import MessageModel

VISIBLE = MessageModel.is_deleted.is_(False)


class MessageCRUD(BaseCRUD[MessageModel]):
    """CRUD operations for MessageModel."""

    def __init__(self) -> None:
        """Initialize MessageCRUD with MessageModel."""
        super().__init__(MessageModel)

    async def get_in_session(
        self,
        session: AsyncSession,
        id: str,
        session_id: str,
    ) -> MessageModel | None:
        return await self.get_scoped(session, id, session_id=session_id, is_deleted=False)

    async def get_cursor(self, session: AsyncSession, id: str, session_id: str) -> MessageModel | None:
        """Cursor row for paging, deleted or not."""
        return await self.get_scoped(session, id, session_id=session_id)

    async def list_for_session(
        self,
        session: AsyncSession,
        session_id: str,
    ) -> Sequence[MessageModel]:
        """All messages of a session in (created_at, id) order."""
        stmt = (
            select(MessageModel)
            .where(MessageModel.session_id == session_id, VISIBLE)
            .order_by(MessageModel.created_at.asc(), MessageModel.id.asc())
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def latest_in_session(self, session: AsyncSession, session_id: str) -> MessageModel | None:
        stmt = (
            select(MessageModel)
            .where(MessageModel.session_id == session_id, VISIBLE)
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def page_before(
        self,
        session: AsyncSession,
        session_id: str,
        limit: int,
        before: MessageModel | None = None,
    ) -> tuple[list[MessageModel], bool]:
        """
        Fetch the `limit` newest messages older than `before`.

        Reads limit + 1 rows newest-first; the extra row only signals that
        older messages exist.

        Args:
            session: Async database session
            session_id: Session id
            limit: Page size
            before: Cursor row (exclusive), None for the newest page

        Returns:
            tuple: (messages in chronological order, has_more)
        """
        stmt = select(MessageModel).where(MessageModel.session_id == session_id, VISIBLE)
        if before is not None:
            stmt = stmt.where(
                or_(
                    MessageModel.created_at < before.created_at,
                    and_(
                        MessageModel.created_at == before.created_at,
                        MessageModel.id < before.id,
                    ),
                )
            )
        stmt = stmt.order_by(MessageModel.created_at.desc(), MessageModel.id.desc()).limit(limit + 1)
        result = await session.execute(stmt)
        rows = list(result.scalars().all())
        has_more = len(rows) > limit
        rows = rows[:limit]
        rows.reverse()
        return rows, has_more

    async def search_in_session(
        self,
        session: AsyncSession,
        session_id: str,
        term: str,
        limit: int,
    ) -> Sequence[MessageModel]:
        """Messages whose content contains term (case-insensitive), oldest first."""
        stmt = (
            select(MessageModel)
            .where(
                MessageModel.session_id == session_id,
                VISIBLE,
                func.lower(MessageModel.content).contains(term.lower(), autoescape=True),
            )
            .order_by(MessageModel.created_at.asc(), MessageModel.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def soft_delete(self, session: AsyncSession, id: str, session_id: str) -> bool:
        """
        Flag a message deleted.

        Returns:
            bool: True if a visible message was flagged
        """
        stmt = (
            update(MessageModel)
            .where(MessageModel.id == id, MessageModel.session_id == session_id, VISIBLE)
            .values(is_deleted=True)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount > 0

    async def mark_read_batch(
        self,
        session: AsyncSession,
        session_id: str,
        message_ids: list[str],
    ) -> int:
        """
        Mark assistant messages read in one statement.

        Args:
            session: Async database session
            session_id: Session id
            message_ids: Candidate ids (user or already-read ids are skipped)

        Returns:
            int: Number of rows updated
        """
        if not message_ids:
            return 0
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.session_id == session_id,
                MessageModel.id.in_(message_ids),
                MessageModel.sender == "assistant",
                MessageModel.status != "read",
                VISIBLE,
            )
            .values(status="read")
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount

    async def unread_count(self, session: AsyncSession, session_id: str) -> int:
        stmt = select(func.count()).select_from(MessageModel).where(
            MessageModel.session_id == session_id,
            MessageModel.sender == "assistant",
            MessageModel.status == "sent",
            VISIBLE,
        )
        result = await session.execute(stmt)
        return int(result.scalar_one())

    async def feedback_counts(self, session: AsyncSession, session_id: str) -> dict[str, int]:
        """
        Count assistant messages per feedback value.

        Returns:
            dict: feedback value -> count (messages without feedback omitted)
        """
        stmt = (
            select(MessageModel.feedback, func.count())
            .where(
                MessageModel.session_id == session_id,
                MessageModel.feedback.is_not(None),
                VISIBLE,
            )
            .group_by(MessageModel.feedback)
        )
        result = await session.execute(stmt)
        return {feedback: int(count) for feedback, count in result.all()}

    async def sender_stats(self, session: AsyncSession, session_id: str) -> dict[str, Any]:
        """
        Per-sender counts and the mean assistant processing time.

        Returns:
            dict: counts (sender -> count) and avg_processing_ms (None if no
            reply carries a processing time)
        """
        counts_stmt = (
            select(MessageModel.sender, func.count())
            .where(MessageModel.session_id == session_id, VISIBLE)
            .group_by(MessageModel.sender)
        )
        counts = {sender: int(n) for sender, n in (await session.execute(counts_stmt)).all()}

        avg_stmt = select(
            func.avg(MessageModel.message_metadata["processing_time_ms"].as_float())
        ).where(
            MessageModel.session_id == session_id,
            MessageModel.sender == "assistant",
            VISIBLE,
        )
        avg_processing_ms = (await session.execute(avg_stmt)).scalar_one_or_none()
        return {
            "counts": counts,
            "avg_processing_ms": float(avg_processing_ms) if avg_processing_ms is not None else None,
        }


message_crud = MessageCRUD()
