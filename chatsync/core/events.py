"""
Typed internal event channel.

Replaces ad-hoc global events with explicit publishers and subscribers.
Publishers: SessionRegistry (session events), MessageLedger (message
events). Subscribers: SyncReconciler and any composition-root listeners.

Dispatch is synchronous on the calling task, in subscription order.

Dependencies: logging (stdlib), chatsync.models
System role: Cross-component signalling
"""

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from chatsync.models.message import ChatMessage
from chatsync.models.session import ChatSession
from chatsync.observability.log_utils import log_exception_with_context

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionCreated:
    session: ChatSession


@dataclass(frozen=True)
class SessionUpdated:
    session: ChatSession


@dataclass(frozen=True)
class SessionDeleted:
    owner_id: str
    session_id: str


@dataclass(frozen=True)
class MessageAppended:
    """A local optimistic record became visible."""

    message: ChatMessage


@dataclass(frozen=True)
class MessagePersisted:
    """The store acknowledged a local record."""

    message: ChatMessage


@dataclass(frozen=True)
class MessageFailed:
    """Local persistence of a record failed."""

    message: ChatMessage
    error: str


@dataclass(frozen=True)
class MessageRetried:
    """A failed local record was queued for persistence again."""

    message: ChatMessage


@dataclass(frozen=True)
class MessagesRead:
    session_id: str
    message_ids: tuple[str, ...]


@dataclass(frozen=True)
class MessageDeleted:
    session_id: str
    message_id: str


ChatEvent = (
    SessionCreated
    | SessionUpdated
    | SessionDeleted
    | MessageAppended
    | MessagePersisted
    | MessageFailed
    | MessageRetried
    | MessagesRead
    | MessageDeleted
)

EventT = TypeVar("EventT")


class EventChannel:
    """
    Publish/subscribe channel keyed by event type.

    A failing handler is logged and does not prevent delivery to the
    remaining handlers or fail the publisher.
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[Callable[[Any], None]]] = defaultdict(list)

    def subscribe(
        self,
        event_type: type[EventT],
        handler: Callable[[EventT], None],
    ) -> Callable[[], None]:
        """
        Register a handler for one event type.

        Args:
            event_type: Event dataclass to listen for
            handler: Callable invoked with each published event

        Returns:
            Callable[[], None]: Unsubscribe function (idempotent)
        """
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event: ChatEvent) -> None:
        """
        Deliver an event to every handler subscribed to its type.

        Args:
            event: Event instance
        """
        for handler in list(self._handlers.get(type(event), [])):
            try:
                handler(event)
            except Exception as e:
                log_exception_with_context(
                    logger,
                    "Event handler failed",
                    e,
                    event_type=type(event).__name__,
                )

    def subscriber_count(self, event_type: type | None = None) -> int:
        """Number of handlers for one type, or for all types."""
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())
