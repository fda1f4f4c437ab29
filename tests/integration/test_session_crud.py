"""
Integration tests for SessionCRUD against in-memory SQLite.

Tests owner scoping, archive filtering, list ordering, message summary
bookkeeping and cascading deletes.

System role: Verification of session persistence queries
"""

from datetime import timedelta

import pytest

from chatsync.boundary.db.CRUD.message_crud import message_crud
from chatsync.boundary.db.CRUD.session_crud import SessionCRUD, session_crud
from chatsync.boundary.db.models.session_model import SessionModel
from chatsync.models.message import ensure_utc
from chatsync.models.session import PREVIEW_LENGTH
from tests.conftest import BASE_TIME


class TestSessionCRUDInit:
    """Test suite for SessionCRUD initialization."""

    def test_init_should_set_model_to_session_model(self) -> None:
        # Act
        crud = SessionCRUD()

        # Assert
        assert crud.model == SessionModel


class TestSessionCRUDQueries:
    """Test suite for owner-scoped queries."""

    @pytest.mark.asyncio
    async def test_get_for_owner_should_hide_foreign_sessions(self, test_async_db) -> None:
        # Arrange
        await session_crud.create(test_async_db, id="s1", owner_id="alice", title="Mine")

        # Act
        own = await session_crud.get_for_owner(test_async_db, "s1", "alice")
        foreign = await session_crud.get_for_owner(test_async_db, "s1", "bob")

        # Assert
        assert own is not None
        assert foreign is None

    @pytest.mark.asyncio
    async def test_list_for_owner_should_filter_archived_and_order_by_update(
        self, test_async_db
    ) -> None:
        # Arrange
        for i, archived in enumerate([False, True, False]):
            at = BASE_TIME + timedelta(minutes=i)
            await session_crud.create(
                test_async_db,
                id=f"s{i}",
                owner_id="u1",
                title=f"Chat {i}",
                is_archived=archived,
                created_at=at,
                updated_at=at,
            )

        # Act
        active = await session_crud.list_for_owner(test_async_db, "u1")
        archived = await session_crud.list_for_owner(test_async_db, "u1", archived=True)
        both = await session_crud.list_for_owner(test_async_db, "u1", archived=None)

        # Assert
        assert [s.id for s in active] == ["s2", "s0"]
        assert [s.id for s in archived] == ["s1"]
        assert [s.id for s in both] == ["s2", "s1", "s0"]


class TestSessionCRUDSummary:
    """Test suite for record_message() and delete_cascade()."""

    @pytest.mark.asyncio
    async def test_record_message_should_bump_count_and_preview(self, test_async_db) -> None:
        # Arrange
        await session_crud.create(
            test_async_db, id="s1", owner_id="u1", title="Chat",
            created_at=BASE_TIME, updated_at=BASE_TIME,
        )
        long_text = "x" * (PREVIEW_LENGTH + 50)

        # Act
        row = await session_crud.record_message(
            test_async_db, "s1", content=long_text, sender="user", at=BASE_TIME
        )

        # Assert
        assert row.message_count == 1
        assert row.last_message_content == "x" * PREVIEW_LENGTH
        assert row.last_message_sender == "user"
        assert ensure_utc(row.updated_at) >= BASE_TIME

    @pytest.mark.asyncio
    async def test_record_message_for_missing_session_should_return_none(
        self, test_async_db
    ) -> None:
        # Act
        row = await session_crud.record_message(
            test_async_db, "missing", content="hi", sender="user", at=BASE_TIME
        )

        # Assert
        assert row is None

    @pytest.mark.asyncio
    async def test_record_removal_should_decrement_and_rebuild_preview(
        self, test_async_db
    ) -> None:
        # Arrange
        await session_crud.create(test_async_db, id="s1", owner_id="u1", title="Chat")
        for i, text in enumerate(["first", "second"]):
            at = BASE_TIME + timedelta(seconds=i)
            await message_crud.create(
                test_async_db, id=f"m{i}", session_id="s1", sender="user", content=text,
                created_at=at, updated_at=at,
            )
            await session_crud.record_message(test_async_db, "s1", content=text, sender="user", at=at)

        # Act
        await message_crud.soft_delete(test_async_db, "m1", "s1")
        row = await session_crud.record_removal(test_async_db, "s1")

        # Assert
        assert row.message_count == 1
        assert row.last_message_content == "first"

    @pytest.mark.asyncio
    async def test_record_removal_of_last_message_should_clear_preview(
        self, test_async_db
    ) -> None:
        # Arrange
        await session_crud.create(test_async_db, id="s1", owner_id="u1", title="Chat")
        await message_crud.create(
            test_async_db, id="m0", session_id="s1", sender="user", content="only"
        )
        await session_crud.record_message(test_async_db, "s1", content="only", sender="user", at=BASE_TIME)

        # Act
        await message_crud.soft_delete(test_async_db, "m0", "s1")
        row = await session_crud.record_removal(test_async_db, "s1")

        # Assert
        assert row.message_count == 0
        assert row.last_message_content is None
        assert row.last_message_at is None

    @pytest.mark.asyncio
    async def test_delete_cascade_should_remove_messages(self, test_async_db) -> None:
        # Arrange
        await session_crud.create(test_async_db, id="s1", owner_id="u1", title="Chat")
        await message_crud.create(
            test_async_db, id="m1", session_id="s1", sender="user", content="hi"
        )

        # Act
        deleted = await session_crud.delete_cascade(test_async_db, "s1")
        remaining = await message_crud.list_for_session(test_async_db, "s1")

        # Assert
        assert deleted is True
        assert list(remaining) == []
        assert await session_crud.exists(test_async_db, "s1") is False


class TestBaseCRUDScoping:
    """Test suite for scoped lookups and deletes inherited from BaseCRUD."""

    @pytest.mark.asyncio
    async def test_get_scoped_should_require_every_filter(self, test_async_db) -> None:
        # Arrange
        await session_crud.create(test_async_db, id="s1", owner_id="u1", title="Chat")
        await message_crud.create(
            test_async_db, id="m1", session_id="s1", sender="user", content="hi"
        )

        # Act
        found = await message_crud.get_scoped(test_async_db, "m1", session_id="s1")
        wrong_session = await message_crud.get_scoped(test_async_db, "m1", session_id="s2")

        # Assert
        assert found.id == "m1"
        assert wrong_session is None

    @pytest.mark.asyncio
    async def test_delete_where_without_filter_should_raise(self, test_async_db) -> None:
        # Act & Assert
        with pytest.raises(ValueError):
            await message_crud.delete_where(test_async_db)
