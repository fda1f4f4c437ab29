"""
Message ledger.

Append-only, time-ordered message log per session with optimistic
insert-then-reconcile semantics.

append() makes a `sending` record visible synchronously and persists it on
a background task; the returned object is updated in place to `sent` or
`error` when the store answers. Persistence failures never escape the
task: they are logged, the record turns `error`, and MessageFailed is
published so the UI can offer a retry.

Dependencies: sqlalchemy, chatsync.boundary.db, chatsync.boundary.feed, chatsync.core.events
System role: Message Ledger
"""

import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from chatsync.boundary.db.CRUD.message_crud import message_crud
from chatsync.boundary.db.CRUD.session_crud import session_crud
from chatsync.boundary.feed import RealtimeFeed
from chatsync.core.events import (
    EventChannel,
    MessageAppended,
    MessageDeleted,
    MessageFailed,
    MessagePersisted,
    MessageRetried,
    MessagesRead,
    SessionDeleted,
)
from chatsync.core.exceptions import (
    ChatSyncError,
    MessageNotFoundError,
    PersistenceError,
    SessionNotFoundError,
    ValidationError,
)
from chatsync.models.message import (
    ChatMessage,
    Feedback,
    FeedbackStats,
    MessageMetadata,
    MessagePage,
    MessageSender,
    MessageStats,
    MessageStatus,
    utc_now,
)
from chatsync.observability.log_utils import (
    log_exception_with_context,
    log_with_context,
    message_context,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 500


class MessageLedger:
    """
    Message ledger service.

    Only unconfirmed local records (`sending` or `error`) are held in
    memory, grouped by session: a record is released as soon as the store
    acknowledges it, and a failed one stays until it is retried, deleted or
    its session is deleted.

    Attributes:
        session_factory: async_sessionmaker for store access
        events: Typed event channel
        feed: Real-time feed refreshed after each committed change
        page_size: Default page size
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        events: EventChannel,
        feed: RealtimeFeed,
        page_size: int = 50,
    ) -> None:
        self.session_factory = session_factory
        self.events = events
        self.feed = feed
        self.page_size = page_size
        self._local: dict[str, dict[str, ChatMessage]] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._unsubscribe = events.subscribe(SessionDeleted, self._forget_session)

    def append(
        self,
        session_id: str,
        content: str,
        sender: MessageSender,
        metadata: MessageMetadata | None = None,
    ) -> ChatMessage:
        """
        Add a message optimistically and persist it in the background.

        Must be called from a running event loop.

        Args:
            session_id: Owning session
            content: Message text
            sender: user or assistant
            metadata: Optional reply metadata

        Returns:
            ChatMessage: Local record in `sending` state, updated in place later

        Raises:
            ValidationError: Empty content
        """
        if not content or not content.strip():
            raise ValidationError("Message content must not be empty", field="content")

        now = utc_now()
        message = ChatMessage(
            session_id=session_id,
            sender=sender,
            content=content,
            status=MessageStatus.SENDING,
            metadata=metadata or MessageMetadata(),
            created_at=now,
            updated_at=now,
        )
        self._local.setdefault(session_id, {})[message.id] = message
        self.events.publish(MessageAppended(message=message))
        self._schedule(message)
        return message

    def _schedule(self, message: ChatMessage) -> None:
        task = asyncio.get_running_loop().create_task(self._persist(message))
        self._tasks[message.id] = task
        task.add_done_callback(lambda _t, mid=message.id: self._tasks.pop(mid, None))

    def _release(self, message: ChatMessage) -> None:
        records = self._local.get(message.session_id)
        if records is None:
            return
        records.pop(message.id, None)
        if not records:
            del self._local[message.session_id]

    async def _persist(self, message: ChatMessage) -> ChatMessage:
        try:
            owner_id = await self._write(message)
        except (SQLAlchemyError, ChatSyncError) as e:
            message.status = MessageStatus.ERROR
            message.error = str(e)
            log_exception_with_context(
                logger, "Message persistence failed", e, **message_context(message)
            )
            self.events.publish(MessageFailed(message=message, error=message.error))
            return message

        message.status = MessageStatus.SENT
        message.error = None
        self._release(message)
        log_with_context(logger, logging.DEBUG, "Message persisted", **message_context(message))
        self.events.publish(MessagePersisted(message=message))
        await self._refresh_feeds(message.session_id, owner_id)
        return message

    async def _refresh_feeds(self, session_id: str, owner_id: str) -> None:
        try:
            await self.feed.publish_messages(session_id)
            await self.feed.publish_sessions(owner_id)
        except SQLAlchemyError as e:
            log_exception_with_context(logger, "Feed refresh failed", e, session_id=session_id)

    async def _write(self, message: ChatMessage) -> str:
        async with self.session_factory() as db:
            try:
                session_row = await session_crud.record_message(
                    db,
                    message.session_id,
                    content=message.content,
                    sender=message.sender.value,
                    at=message.created_at,
                )
                if session_row is None:
                    raise SessionNotFoundError(message.session_id)
                await message_crud.create(
                    db,
                    id=message.id,
                    session_id=message.session_id,
                    sender=message.sender.value,
                    content=message.content,
                    status=MessageStatus.SENT.value,
                    feedback=message.feedback.value if message.feedback else None,
                    message_metadata=message.metadata.model_dump(mode="json"),
                    created_at=message.created_at,
                    updated_at=message.updated_at,
                )
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                raise PersistenceError(
                    "Failed to store message", operation="create", details={"message_id": message.id}
                ) from e
            except ChatSyncError:
                await db.rollback()
                raise
            return session_row.owner_id

    async def wait_persisted(self, message: ChatMessage) -> ChatMessage:
        """
        Wait for the pending write of a local record, if any.

        Returns:
            ChatMessage: The same record in its resolved state
        """
        task = self._tasks.get(message.id)
        if task is not None:
            await asyncio.shield(task)
        return message

    async def drain(self) -> None:
        """Wait for every pending write (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    def local_messages(self, session_id: str) -> list[ChatMessage]:
        """Local records of a session that the store has not confirmed."""
        return list(self._local.get(session_id, {}).values())

    def get_local(self, session_id: str, message_id: str) -> ChatMessage | None:
        return self._local.get(session_id, {}).get(message_id)

    async def page(
        self,
        session_id: str,
        cursor: str | None = None,
        limit: int | None = None,
    ) -> MessagePage:
        """
        Fetch one page of history, newest page first.

        Args:
            session_id: Session id
            cursor: Id of the oldest message already loaded, None for the newest page
            limit: Page size (defaults to page_size)

        Returns:
            MessagePage: Messages in chronological order, has_more, next cursor

        Raises:
            ValidationError: Invalid limit or unknown cursor
        """
        limit = limit or self.page_size
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit")

        async with self.session_factory() as db:
            before = None
            if cursor is not None:
                before = await message_crud.get_cursor(db, cursor, session_id)
                if before is None:
                    raise ValidationError("Unknown cursor", field="cursor")
            rows, has_more = await message_crud.page_before(db, session_id, limit, before=before)
            messages = [ChatMessage.from_row(row) for row in rows]

        return MessagePage(
            messages=messages,
            has_more=has_more,
            cursor=messages[0].id if messages else None,
        )

    async def search(self, session_id: str, term: str, limit: int | None = None) -> list[ChatMessage]:
        """
        Find stored messages whose text contains term, case-insensitive.

        Raises:
            ValidationError: Blank term or invalid limit
        """
        term = term.strip()
        if not term:
            raise ValidationError("Search term must not be empty", field="q")
        limit = limit or self.page_size
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit")
        async with self.session_factory() as db:
            rows = await message_crud.search_in_session(db, session_id, term, limit)
            return [ChatMessage.from_row(row) for row in rows]

    def retry(self, session_id: str, message_id: str) -> ChatMessage:
        """
        Re-persist a message whose write failed.

        Raises:
            MessageNotFoundError: No unconfirmed local record with this id in the session
            ValidationError: The message is still being sent
        """
        message = self.get_local(session_id, message_id)
        if message is None:
            raise MessageNotFoundError(message_id, session_id)
        if message.status is not MessageStatus.ERROR:
            raise ValidationError(
                "Only failed messages can be retried",
                field="status",
                details={"status": message.status.value},
            )
        message.status = MessageStatus.SENDING
        message.error = None
        logger.info(f"{__name__}:retry - retrying message {message_id}")
        self.events.publish(MessageRetried(message=message))
        self._schedule(message)
        return message

    async def delete_message(self, session_id: str, message_id: str) -> None:
        """
        Soft-delete a message and decrement the session's message count.

        A failed local record that never reached the store is simply
        discarded.

        Raises:
            MessageNotFoundError: Unknown or already deleted message
            ValidationError: The message is still being sent
            PersistenceError: Store write failed (nothing changed)
        """
        local = self.get_local(session_id, message_id)
        if local is not None:
            if local.status is MessageStatus.SENDING:
                raise ValidationError("Message is still being sent", field="message_id")
            self._release(local)
            logger.info(f"{__name__}:delete_message - discarded unsent message {message_id}")
            self.events.publish(MessageDeleted(session_id=session_id, message_id=message_id))
            return

        async with self.session_factory() as db:
            try:
                if not await message_crud.soft_delete(db, message_id, session_id):
                    raise MessageNotFoundError(message_id, session_id)
                session_row = await session_crud.record_removal(db, session_id)
                if session_row is None:
                    raise SessionNotFoundError(session_id)
                owner_id = session_row.owner_id
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                log_exception_with_context(
                    logger, "Message delete failed", e, session_id=session_id, message_id=message_id
                )
                raise PersistenceError("Failed to delete message", operation="delete") from e
            except ChatSyncError:
                await db.rollback()
                raise

        logger.info(f"{__name__}:delete_message - message {message_id} deleted")
        self.events.publish(MessageDeleted(session_id=session_id, message_id=message_id))
        await self._refresh_feeds(session_id, owner_id)

    async def set_feedback(
        self,
        session_id: str,
        message_id: str,
        feedback: Feedback | None,
    ) -> ChatMessage:
        """
        Set or clear feedback on an assistant message.

        Raises:
            MessageNotFoundError: Unknown message
            ValidationError: Message is not an assistant reply
            PersistenceError: Store write failed
        """
        async with self.session_factory() as db:
            row = await message_crud.get_in_session(db, message_id, session_id)
            if row is None:
                raise MessageNotFoundError(message_id, session_id)
            if row.sender != MessageSender.ASSISTANT.value:
                raise ValidationError("Feedback is only accepted on assistant replies", field="message_id")
            try:
                row.feedback = feedback.value if feedback else None
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                raise PersistenceError("Failed to store feedback", operation="update") from e
            message = ChatMessage.from_row(row)

        await self.feed.publish_messages(session_id)
        return message

    async def mark_read(self, session_id: str, message_ids: list[str]) -> int:
        """
        Mark assistant messages read in one batched write.

        User messages and already-read ids are skipped.

        Returns:
            int: Number of messages that changed to read
        """
        ids = list(dict.fromkeys(message_ids))
        if not ids:
            return 0
        async with self.session_factory() as db:
            try:
                updated = await message_crud.mark_read_batch(db, session_id, ids)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                raise PersistenceError("Failed to mark messages read", operation="update") from e

        if updated:
            self.events.publish(MessagesRead(session_id=session_id, message_ids=tuple(ids)))
            await self.feed.publish_messages(session_id)
        return updated

    async def unread_count(self, session_id: str) -> int:
        """Assistant messages delivered but not yet read."""
        async with self.session_factory() as db:
            return await message_crud.unread_count(db, session_id)

    async def feedback_stats(self, session_id: str) -> FeedbackStats:
        """Like/dislike totals for a session."""
        async with self.session_factory() as db:
            counts = await message_crud.feedback_counts(db, session_id)
        positive = counts.get(Feedback.LIKE.value, 0)
        negative = counts.get(Feedback.DISLIKE.value, 0)
        total = positive + negative
        return FeedbackStats(
            total=total,
            positive=positive,
            negative=negative,
            positive_rate=round(positive / total, 4) if total else 0.0,
        )

    async def message_stats(self, session_id: str) -> MessageStats:
        async with self.session_factory() as db:
            stats = await message_crud.sender_stats(db, session_id)
        counts = stats["counts"]
        avg_ms = stats["avg_processing_ms"]
        return MessageStats(
            total=sum(counts.values()),
            user_messages=counts.get(MessageSender.USER.value, 0),
            assistant_messages=counts.get(MessageSender.ASSISTANT.value, 0),
            avg_processing_ms=round(avg_ms, 1) if avg_ms is not None else None,
        )

    def _forget_session(self, event: SessionDeleted) -> None:
        self._local.pop(event.session_id, None)

    def close(self) -> None:
        self._unsubscribe()
