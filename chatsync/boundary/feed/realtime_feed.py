"""
In-process authoritative real-time feed.

Pushes the full current record set of a topic (one session's messages,
or one owner's active sessions) to every subscriber after each committed
change and once on subscribe. Only committed rows are ever pushed.

Delivery is at-least-once: a subscriber can receive the same snapshot
more than once and must treat snapshots idempotently.

Dependencies: sqlalchemy, chatsync.boundary.db
System role: Authoritative feed for the Sync Reconciler and session lists
"""

import logging
from collections import defaultdict
from collections.abc import Callable

from sqlalchemy.ext.asyncio import async_sessionmaker

from chatsync.boundary.db.CRUD.message_crud import message_crud
from chatsync.boundary.db.CRUD.session_crud import session_crud
from chatsync.models.message import ChatMessage
from chatsync.models.session import ChatSession
from chatsync.observability.log_utils import log_exception_with_context

logger = logging.getLogger(__name__)

MessagesHandler = Callable[[list[ChatMessage]], None]
SessionsHandler = Callable[[list[ChatSession]], None]


class RealtimeFeed:
    """
    Topic-keyed snapshot publisher backed by the durable store.

    Attributes:
        session_factory: async_sessionmaker used for snapshot reads
    """

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self.session_factory = session_factory
        self._message_subscribers: dict[str, list[MessagesHandler]] = defaultdict(list)
        self._session_subscribers: dict[str, list[SessionsHandler]] = defaultdict(list)

    def subscriber_count(self) -> int:
        return sum(len(h) for h in self._message_subscribers.values()) + sum(
            len(h) for h in self._session_subscribers.values()
        )

    async def load_messages(self, session_id: str) -> list[ChatMessage]:
        """Current committed messages of a session in store order."""
        async with self.session_factory() as db:
            rows = await message_crud.list_for_session(db, session_id)
            return [ChatMessage.from_row(row) for row in rows]

    async def load_sessions(self, owner_id: str) -> list[ChatSession]:
        """Current active (non-archived) sessions of an owner, newest first."""
        async with self.session_factory() as db:
            rows = await session_crud.list_for_owner(db, owner_id, archived=False)
            return [ChatSession.from_row(row) for row in rows]

    async def subscribe_messages(
        self,
        session_id: str,
        handler: MessagesHandler,
    ) -> Callable[[], None]:
        """
        Subscribe to a session's message set.

        The handler receives the current snapshot before this call returns.
        If that first read fails the handler is removed again and the error
        propagates.

        Args:
            session_id: Session to follow
            handler: Called with the full record list on every change

        Returns:
            Callable[[], None]: Unsubscribe function (idempotent)
        """
        self._message_subscribers[session_id].append(handler)
        unsubscribe = self._unsubscriber(self._message_subscribers, session_id, handler)
        try:
            snapshot = await self.load_messages(session_id)
        except Exception:
            unsubscribe()
            raise
        self._deliver(handler, snapshot, topic=f"messages:{session_id}")
        return unsubscribe

    async def subscribe_sessions(
        self,
        owner_id: str,
        handler: SessionsHandler,
    ) -> Callable[[], None]:
        """Subscribe to an owner's active session list. See subscribe_messages."""
        self._session_subscribers[owner_id].append(handler)
        unsubscribe = self._unsubscriber(self._session_subscribers, owner_id, handler)
        try:
            snapshot = await self.load_sessions(owner_id)
        except Exception:
            unsubscribe()
            raise
        self._deliver(handler, snapshot, topic=f"sessions:{owner_id}")
        return unsubscribe

    async def publish_messages(self, session_id: str) -> None:
        """Push the committed message set of a session to its subscribers."""
        handlers = list(self._message_subscribers.get(session_id, []))
        if not handlers:
            return
        snapshot = await self.load_messages(session_id)
        for handler in handlers:
            self._deliver(handler, snapshot, topic=f"messages:{session_id}")

    async def publish_sessions(self, owner_id: str) -> None:
        """Push the active session list of an owner to its subscribers."""
        handlers = list(self._session_subscribers.get(owner_id, []))
        if not handlers:
            return
        snapshot = await self.load_sessions(owner_id)
        for handler in handlers:
            self._deliver(handler, snapshot, topic=f"sessions:{owner_id}")

    @staticmethod
    def _deliver(handler: Callable[[list], None], snapshot: list, topic: str) -> None:
        try:
            handler(snapshot)
        except Exception as e:
            log_exception_with_context(logger, "Feed subscriber failed", e, topic=topic)

    @staticmethod
    def _unsubscriber(
        registry: dict[str, list],
        key: str,
        handler: Callable,
    ) -> Callable[[], None]:
        def unsubscribe() -> None:
            handlers = registry.get(key)
            if handlers and handler in handlers:
                handlers.remove(handler)
                if not handlers:
                    del registry[key]

        return unsubscribe
