"""
Test suite for MessageLedger.

Runs against in-memory SQLite. Tests optimistic append, background
persistence with failure and retry, cursor paging, feedback and batched
read receipts.

System role: Verification of the message log
"""

import pytest

from chatsync.boundary.db.CRUD.session_crud import session_crud
from chatsync.core.events import (
    MessageAppended,
    MessageDeleted,
    MessageFailed,
    MessagePersisted,
    MessageRetried,
    MessagesRead,
)
from chatsync.core.exceptions import MessageNotFoundError, ValidationError
from chatsync.models.message import Feedback, MessageMetadata, MessageSender, MessageStatus


@pytest.fixture
async def session_id(registry) -> str:
    session = await registry.create("u1", title="Biology")
    return session.id


class TestMessageLedgerAppend:
    """Test suite for append() and persistence."""

    @pytest.mark.asyncio
    async def test_append_should_be_visible_before_persisting(
        self, ledger, events, session_id
    ) -> None:
        """Test the record is returned as sending and published synchronously."""
        # Arrange
        appended: list[MessageAppended] = []
        persisted: list[MessagePersisted] = []
        events.subscribe(MessageAppended, appended.append)
        events.subscribe(MessagePersisted, persisted.append)

        # Act
        message = ledger.append(session_id, "Hello", MessageSender.USER)

        # Assert
        assert message.status is MessageStatus.SENDING
        assert appended[0].message is message
        assert persisted == []
        assert ledger.local_messages(session_id) == [message]

        await ledger.wait_persisted(message)
        assert message.status is MessageStatus.SENT
        assert persisted[0].message.id == message.id
        assert ledger.local_messages(session_id) == []

    @pytest.mark.asyncio
    async def test_append_should_store_metadata(self, ledger, session_id) -> None:
        # Arrange
        metadata = MessageMetadata(processing_time_ms=120.0, from_cache=True)

        # Act
        message = ledger.append(session_id, "Answer", MessageSender.ASSISTANT, metadata=metadata)
        await ledger.wait_persisted(message)
        page = await ledger.page(session_id)

        # Assert
        stored = page.messages[0]
        assert stored.id == message.id
        assert stored.metadata.processing_time_ms == 120.0
        assert stored.metadata.from_cache is True

    @pytest.mark.asyncio
    async def test_append_empty_content_should_raise(self, ledger, session_id) -> None:
        # Act & Assert
        with pytest.raises(ValidationError):
            ledger.append(session_id, "   ", MessageSender.USER)

    @pytest.mark.asyncio
    async def test_failed_write_should_mark_error_and_publish(self, ledger, events) -> None:
        """Test a failed write never raises to the caller."""
        # Arrange
        failed: list[MessageFailed] = []
        events.subscribe(MessageFailed, failed.append)

        # Act
        message = ledger.append("missing-session", "Hello", MessageSender.USER)
        await ledger.wait_persisted(message)

        # Assert
        assert message.status is MessageStatus.ERROR
        assert "missing-session" in message.error
        assert failed[0].message.id == message.id

    @pytest.mark.asyncio
    async def test_retry_should_persist_failed_message(
        self, ledger, events, session_factory
    ) -> None:
        # Arrange
        retried: list[MessageRetried] = []
        events.subscribe(MessageRetried, retried.append)
        message = ledger.append("late-session", "Hello", MessageSender.USER)
        await ledger.wait_persisted(message)
        async with session_factory() as db:
            await session_crud.create(db, id="late-session", owner_id="u1", title="Late")
            await db.commit()

        # Act
        again = ledger.retry("late-session", message.id)
        await ledger.wait_persisted(message)

        # Assert
        assert again is message
        assert retried[0].message.id == message.id
        assert message.status is MessageStatus.SENT
        assert message.error is None

    @pytest.mark.asyncio
    async def test_retry_sent_message_should_raise(self, ledger, session_id) -> None:
        # Arrange
        message = ledger.append(session_id, "Hello", MessageSender.USER)
        await ledger.wait_persisted(message)

        # Act & Assert
        with pytest.raises(MessageNotFoundError):
            ledger.retry(session_id, message.id)

    @pytest.mark.asyncio
    async def test_retry_while_sending_should_raise(self, ledger, session_id) -> None:
        # Arrange
        message = ledger.append(session_id, "Hello", MessageSender.USER)

        # Act & Assert
        with pytest.raises(ValidationError):
            ledger.retry(session_id, message.id)
        await ledger.wait_persisted(message)

    @pytest.mark.asyncio
    async def test_persisted_records_should_not_stay_in_memory(self, ledger, session_id) -> None:
        """Test only unconfirmed records are kept locally."""
        # Act
        for i in range(20):
            message = ledger.append(session_id, f"message {i}", MessageSender.USER)
            await ledger.wait_persisted(message)
        failed = ledger.append("missing-session", "lost", MessageSender.USER)
        await ledger.wait_persisted(failed)

        # Assert
        assert ledger.local_messages(session_id) == []
        assert ledger.get_local(session_id, message.id) is None
        assert ledger.local_messages("missing-session") == [failed]

    @pytest.mark.asyncio
    async def test_concurrent_appends_should_keep_count_exact(
        self, ledger, registry, session_id
    ) -> None:
        """Test appends persisted side by side each bump the session count."""
        # Act
        messages = [
            ledger.append(session_id, f"message {i}", MessageSender.USER) for i in range(5)
        ]
        await ledger.drain()

        # Assert
        session = await registry.get("u1", session_id)
        page = await ledger.page(session_id)
        assert all(m.status is MessageStatus.SENT for m in messages)
        assert len(page.messages) == 5
        assert session.message_count == 5

    @pytest.mark.asyncio
    async def test_retry_unknown_message_should_raise(self, ledger, session_id) -> None:
        # Act & Assert
        with pytest.raises(MessageNotFoundError):
            ledger.retry(session_id, "nope")


class TestMessageLedgerPaging:
    """Test suite for page()."""

    @pytest.mark.asyncio
    async def test_page_should_walk_back_with_cursor(self, ledger, session_id) -> None:
        # Arrange
        sent = []
        for i in range(5):
            message = ledger.append(session_id, f"message {i}", MessageSender.USER)
            await ledger.wait_persisted(message)
            sent.append(message.id)

        # Act
        newest = await ledger.page(session_id, limit=2)
        middle = await ledger.page(session_id, cursor=newest.cursor, limit=2)
        oldest = await ledger.page(session_id, cursor=middle.cursor, limit=2)

        # Assert
        assert [m.id for m in newest.messages] == sent[3:]
        assert [m.id for m in middle.messages] == sent[1:3]
        assert [m.id for m in oldest.messages] == sent[:1]
        assert (newest.has_more, middle.has_more, oldest.has_more) == (True, True, False)

    @pytest.mark.asyncio
    async def test_same_cursor_should_return_same_page(self, ledger, session_id) -> None:
        # Arrange
        for i in range(4):
            await ledger.wait_persisted(ledger.append(session_id, f"message {i}", MessageSender.USER))
        newest = await ledger.page(session_id, limit=2)

        # Act
        first = await ledger.page(session_id, cursor=newest.cursor, limit=2)
        second = await ledger.page(session_id, cursor=newest.cursor, limit=2)

        # Assert
        assert first == second
        assert len(first.messages) == 2

    @pytest.mark.asyncio
    async def test_exactly_limit_messages_should_have_no_more(self, ledger, session_id) -> None:
        # Arrange
        for i in range(3):
            await ledger.wait_persisted(ledger.append(session_id, f"message {i}", MessageSender.USER))

        # Act
        page = await ledger.page(session_id, limit=3)

        # Assert
        assert len(page.messages) == 3
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_page_unknown_cursor_should_raise(self, ledger, session_id) -> None:
        # Act & Assert
        with pytest.raises(ValidationError):
            await ledger.page(session_id, cursor="unknown")

    @pytest.mark.asyncio
    async def test_page_limit_out_of_range_should_raise(self, ledger, session_id) -> None:
        # Act & Assert
        with pytest.raises(ValidationError):
            await ledger.page(session_id, limit=501)


class TestMessageLedgerFeedbackAndReads:
    """Test suite for feedback and read receipts."""

    @pytest.mark.asyncio
    async def test_feedback_on_user_message_should_raise(self, ledger, session_id) -> None:
        # Arrange
        message = ledger.append(session_id, "question", MessageSender.USER)
        await ledger.wait_persisted(message)

        # Act & Assert
        with pytest.raises(ValidationError):
            await ledger.set_feedback(session_id, message.id, Feedback.LIKE)

    @pytest.mark.asyncio
    async def test_feedback_should_feed_stats(self, ledger, session_id) -> None:
        # Arrange
        replies = []
        for text in ("one", "two", "three"):
            reply = ledger.append(session_id, text, MessageSender.ASSISTANT)
            await ledger.wait_persisted(reply)
            replies.append(reply)

        # Act
        await ledger.set_feedback(session_id, replies[0].id, Feedback.LIKE)
        await ledger.set_feedback(session_id, replies[1].id, Feedback.LIKE)
        updated = await ledger.set_feedback(session_id, replies[2].id, Feedback.DISLIKE)
        stats = await ledger.feedback_stats(session_id)

        # Assert
        assert updated.feedback is Feedback.DISLIKE
        assert (stats.total, stats.positive, stats.negative) == (3, 2, 1)
        assert stats.positive_rate == 0.6667

    @pytest.mark.asyncio
    async def test_feedback_unknown_message_should_raise(self, ledger, session_id) -> None:
        # Act & Assert
        with pytest.raises(MessageNotFoundError):
            await ledger.set_feedback(session_id, "nope", Feedback.LIKE)

    @pytest.mark.asyncio
    async def test_mark_read_should_update_assistant_messages_once(
        self, ledger, events, session_id
    ) -> None:
        # Arrange
        reads: list[MessagesRead] = []
        events.subscribe(MessagesRead, reads.append)
        question = ledger.append(session_id, "question", MessageSender.USER)
        await ledger.wait_persisted(question)
        reply = ledger.append(session_id, "answer", MessageSender.ASSISTANT)
        await ledger.wait_persisted(reply)
        assert await ledger.unread_count(session_id) == 1

        # Act
        updated = await ledger.mark_read(session_id, [reply.id, reply.id, question.id])
        repeated = await ledger.mark_read(session_id, [reply.id])

        # Assert
        assert updated == 1
        assert repeated == 0
        stored = {m.id: m.status for m in (await ledger.page(session_id)).messages}
        assert stored[reply.id] is MessageStatus.READ
        assert question.status is MessageStatus.SENT
        assert len(reads) == 1
        assert await ledger.unread_count(session_id) == 0


class TestMessageLedgerDeleteAndSearch:
    """Test suite for soft delete, search and message stats."""

    @pytest.mark.asyncio
    async def test_delete_should_hide_message_and_decrement_count(
        self, ledger, registry, events, session_id
    ) -> None:
        # Arrange
        deleted: list[MessageDeleted] = []
        events.subscribe(MessageDeleted, deleted.append)
        first = ledger.append(session_id, "first", MessageSender.USER)
        await ledger.wait_persisted(first)
        second = ledger.append(session_id, "second", MessageSender.ASSISTANT)
        await ledger.wait_persisted(second)

        # Act
        await ledger.delete_message(session_id, second.id)

        # Assert
        page = await ledger.page(session_id)
        session = await registry.get("u1", session_id)
        assert [m.id for m in page.messages] == [first.id]
        assert session.message_count == 1
        assert session.last_message.content == "first"
        assert deleted == [MessageDeleted(session_id=session_id, message_id=second.id)]

    @pytest.mark.asyncio
    async def test_delete_twice_should_raise(self, ledger, session_id) -> None:
        # Arrange
        message = ledger.append(session_id, "hello", MessageSender.USER)
        await ledger.wait_persisted(message)
        await ledger.delete_message(session_id, message.id)

        # Act & Assert
        with pytest.raises(MessageNotFoundError):
            await ledger.delete_message(session_id, message.id)

    @pytest.mark.asyncio
    async def test_delete_failed_local_record_should_discard_it(self, ledger) -> None:
        # Arrange
        message = ledger.append("missing-session", "lost", MessageSender.USER)
        await ledger.wait_persisted(message)

        # Act
        await ledger.delete_message("missing-session", message.id)

        # Assert
        assert ledger.local_messages("missing-session") == []

    @pytest.mark.asyncio
    async def test_delete_while_sending_should_raise(self, ledger, session_id) -> None:
        # Arrange
        message = ledger.append(session_id, "hello", MessageSender.USER)

        # Act & Assert
        with pytest.raises(ValidationError):
            await ledger.delete_message(session_id, message.id)
        await ledger.wait_persisted(message)

    @pytest.mark.asyncio
    async def test_deleted_cursor_should_still_page(self, ledger, session_id) -> None:
        # Arrange
        sent = []
        for i in range(3):
            message = ledger.append(session_id, f"message {i}", MessageSender.USER)
            await ledger.wait_persisted(message)
            sent.append(message.id)
        newest = await ledger.page(session_id, limit=1)
        await ledger.delete_message(session_id, newest.cursor)

        # Act
        older = await ledger.page(session_id, cursor=newest.cursor, limit=5)

        # Assert
        assert [m.id for m in older.messages] == sent[:2]

    @pytest.mark.asyncio
    async def test_search_should_match_case_insensitively(self, ledger, session_id) -> None:
        # Arrange
        for text in ("What is Teaching Aptitude?", "Explain photosynthesis", "teaching methods"):
            await ledger.wait_persisted(ledger.append(session_id, text, MessageSender.USER))

        # Act
        found = await ledger.search(session_id, "  TEACHING ")
        literal = await ledger.search(session_id, "%")

        # Assert
        assert [m.content for m in found] == ["What is Teaching Aptitude?", "teaching methods"]
        assert literal == []

    @pytest.mark.asyncio
    async def test_search_blank_term_should_raise(self, ledger, session_id) -> None:
        # Act & Assert
        with pytest.raises(ValidationError):
            await ledger.search(session_id, "   ")

    @pytest.mark.asyncio
    async def test_message_stats_should_count_senders_and_average_latency(
        self, ledger, session_id
    ) -> None:
        # Arrange
        await ledger.wait_persisted(ledger.append(session_id, "q1", MessageSender.USER))
        await ledger.wait_persisted(ledger.append(
            session_id, "a1", MessageSender.ASSISTANT,
            metadata=MessageMetadata(processing_time_ms=100.0),
        ))
        await ledger.wait_persisted(ledger.append(
            session_id, "a2", MessageSender.ASSISTANT,
            metadata=MessageMetadata(processing_time_ms=300.0),
        ))

        # Act
        stats = await ledger.message_stats(session_id)

        # Assert
        assert (stats.total, stats.user_messages, stats.assistant_messages) == (3, 1, 2)
        assert stats.avg_processing_ms == 200.0
