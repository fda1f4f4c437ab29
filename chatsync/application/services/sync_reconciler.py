"""
Sync reconciler.

Follows one session on two inputs, the local ledger events and the
authoritative feed, and folds both through the pure reducer in
chatsync.core.reconciliation. Subscribers get the merged, ordered view
whenever it changes.

Dependencies: chatsync.boundary.feed, chatsync.core.events, chatsync.core.reconciliation
System role: Sync Reconciler
"""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from chatsync.boundary.feed import RealtimeFeed
from chatsync.core.events import (
    EventChannel,
    MessageAppended,
    MessageFailed,
    MessagePersisted,
    MessageRetried,
    MessagesRead,
)
from chatsync.core.reconciliation import (
    DEFAULT_DEDUP_WINDOW_SECONDS,
    ConversationState,
    ReconcileEvent,
    SnapshotReceived,
    reduce,
)
from chatsync.models.message import ChatMessage

logger = logging.getLogger(__name__)

ViewHandler = Callable[[list[ChatMessage]], None]
LocalSource = Callable[[str], list[ChatMessage]]

_LEDGER_EVENTS = (MessageAppended, MessagePersisted, MessageFailed, MessageRetried, MessagesRead)


class SyncSubscription:
    """
    One live reconciliation of a session.

    Calling the subscription (or close()) releases both the feed and the
    event-channel subscriptions; repeated calls are no-ops.
    """

    def __init__(
        self,
        session_id: str,
        on_change: ViewHandler,
        dedup_window_seconds: float,
    ) -> None:
        self.session_id = session_id
        self._on_change = on_change
        self._window = dedup_window_seconds
        self._state = ConversationState(session_id=session_id)
        self._releases: list[Callable[[], None]] = []
        self.closed = False

    @property
    def state(self) -> ConversationState:
        return self._state

    def view(self) -> list[ChatMessage]:
        """Current merged view, chronologically ordered."""
        return self._state.view()

    def apply(self, event: ReconcileEvent) -> None:
        if self.closed:
            return
        before = self._state.view()
        self._state = reduce(self._state, event, self._window)
        for conflict in self._state.conflicts:
            logger.warning(
                f"{__name__}:apply - {conflict.message}",
                extra={"session_id": self.session_id, "conflict": conflict.details},
            )
        after = self._state.view()
        if after != before:
            self._on_change(after)

    def on_snapshot(self, records: list[ChatMessage]) -> None:
        self.apply(SnapshotReceived(session_id=self.session_id, records=tuple(records)))

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        releases, self._releases = self._releases, []
        for release in releases:
            release()
        logger.debug(f"{__name__}:close - subscription for {self.session_id} released")

    __call__ = close


class SyncReconciler:
    """
    Factory for per-session reconciliation subscriptions.

    Attributes:
        feed: Authoritative feed
        events: Typed event channel carrying ledger events
        dedup_window_seconds: Window for merging records with different ids
    """

    def __init__(
        self,
        feed: RealtimeFeed,
        events: EventChannel,
        dedup_window_seconds: float = DEFAULT_DEDUP_WINDOW_SECONDS,
        local_source: LocalSource | None = None,
    ) -> None:
        """
        Initialize reconciler.

        Args:
            feed: Authoritative feed
            events: Event channel the ledger publishes on
            dedup_window_seconds: De-duplication window in seconds
            local_source: Returns unconfirmed local records of a session,
                used to seed new subscriptions
        """
        self.feed = feed
        self.events = events
        self.dedup_window_seconds = dedup_window_seconds
        self.local_source = local_source

    async def subscribe(self, session_id: str, on_change: ViewHandler) -> SyncSubscription:
        """
        Start reconciling a session.

        Local records are seeded first, then the feed delivers its initial
        snapshot before this call returns.

        Args:
            session_id: Session to follow
            on_change: Called with the merged view whenever it changes

        Returns:
            SyncSubscription: Callable unsubscribe handle
        """
        subscription = SyncSubscription(session_id, on_change, self.dedup_window_seconds)

        for event_type in _LEDGER_EVENTS:
            subscription._releases.append(self.events.subscribe(event_type, subscription.apply))

        if self.local_source is not None:
            for message in self.local_source(session_id):
                subscription.apply(MessageAppended(message=message))

        try:
            release_feed = await self.feed.subscribe_messages(session_id, subscription.on_snapshot)
        except Exception:
            subscription.close()
            raise
        subscription._releases.append(release_feed)
        return subscription

    @asynccontextmanager
    async def subscription(
        self,
        session_id: str,
        on_change: ViewHandler,
    ) -> AsyncIterator[SyncSubscription]:
        """Subscription released on exit, including on error or cancellation."""
        handle = await self.subscribe(session_id, on_change)
        try:
            yield handle
        finally:
            handle.close()
