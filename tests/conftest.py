"""
Shared test fixtures and configuration for entire test suite.

Provides: in-memory SQLite engine and session factory, wired services,
controllable sleep functions, settings builders
Dependencies: pytest, pytest-asyncio, sqlalchemy, aiosqlite
System role: Test infrastructure and fixture management
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from chatsync.configs import ChatSettings, DatabaseSettings, InferenceSettings, Settings
from chatsync.models.message import ChatMessage, MessageSender, MessageStatus

SQLITE_MEMORY_URL = "sqlite+aiosqlite:///:memory:"

BASE_TIME = datetime(2026, 10, 18, 9, 0, 0, tzinfo=timezone.utc)


class RecordingSleep:
    """Sleep replacement that records delays and returns after one loop turn."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class ManualSleep:
    """
    Sleep replacement released one call at a time by tick().

    Waiters are released in the order their sleeps started.
    """

    def __init__(self) -> None:
        self.delays: list[float] = []
        self._waiters: list[asyncio.Future] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter

    @property
    def pending(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    async def settle(self, turns: int = 10) -> None:
        for _ in range(turns):
            await asyncio.sleep(0)

    async def tick(self) -> None:
        """Release the oldest pending sleep and let the woken task run."""
        # the sleeper may still be waiting on database I/O, so poll in real time
        for _ in range(2000):
            self._waiters = [w for w in self._waiters if not w.done()]
            if self._waiters:
                break
            await asyncio.sleep(0.001)
        else:
            raise AssertionError("no sleep is pending")
        self._waiters.pop(0).set_result(None)
        await self.settle()


def make_message(
    content: str = "Hello",
    session_id: str = "s1",
    sender: MessageSender = MessageSender.USER,
    status: MessageStatus = MessageStatus.SENDING,
    offset_seconds: float = 0.0,
    **kwargs,
) -> ChatMessage:
    """Build a message created offset_seconds after BASE_TIME."""
    at = BASE_TIME + timedelta(seconds=offset_seconds)
    return ChatMessage(
        session_id=session_id,
        sender=sender,
        content=content,
        status=status,
        created_at=at,
        updated_at=at,
        **kwargs,
    )


def make_settings(**chat_overrides) -> Settings:
    """Settings for tests: in-memory SQLite, fast retries, reveal without delay."""
    chat = {"reveal_interval_seconds": 0.0, **chat_overrides}
    return Settings(
        database=DatabaseSettings(url=SQLITE_MEMORY_URL, auto_create_tables=True),
        inference=InferenceSettings(
            endpoint="http://inference.test/predict",
            timeout_seconds=5.0,
            max_attempts=3,
            backoff_base_seconds=0.5,
        ),
        chat=ChatSettings(**chat),
    )


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def manual_sleep() -> ManualSleep:
    return ManualSleep()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
async def engine():
    """
    Create in-memory SQLite async engine with all tables.

    Yields:
        AsyncEngine: Engine sharing a single connection (StaticPool)
    """
    from chatsync.boundary.db.connection import get_async_engine
    from chatsync.boundary.db.create_tables import create_all_tables

    engine = get_async_engine(DatabaseSettings(url=SQLITE_MEMORY_URL))
    await create_all_tables(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    from chatsync.boundary.db.connection import get_async_session_factory

    return get_async_session_factory(engine)


@pytest.fixture
async def test_async_db(session_factory):
    """
    Async database session for CRUD tests.

    Yields:
        AsyncSession: Session rolled back after the test
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def events():
    from chatsync.core.events import EventChannel

    return EventChannel()


@pytest.fixture
def feed(session_factory):
    from chatsync.boundary.feed import RealtimeFeed

    return RealtimeFeed(session_factory)


@pytest.fixture
def registry(session_factory, events, feed):
    from chatsync.application.services import SessionRegistry

    return SessionRegistry(session_factory, events, feed)


@pytest.fixture
async def ledger(session_factory, events, feed):
    from chatsync.application.services import MessageLedger

    ledger = MessageLedger(session_factory, events, feed, page_size=50)
    yield ledger
    await ledger.drain()
    ledger.close()
