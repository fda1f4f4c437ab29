"""
Optimistic/authoritative message reconciliation.

Pure state-transition function: reduce(state, event) -> new state. Merges
local optimistic records with authoritative snapshots from the real-time
feed, de-duplicates, tracks status transitions and produces a view sorted
by created_at (ties broken by arrival order).

Per message id:
    local-only(sending) -> confirmed(sent)  when a snapshot carries the id
    local-only(sending) -> error            when local persistence fails
    error               -> sending          on explicit retry

Records with different ids are merged when session, sender and content are
equal and created_at lies within the de-duplication window. More than one
candidate is a conflict: the authoritative record wins over the nearest
candidate and the conflict is reported on the returned state.

Dependencies: chatsync.core.events, chatsync.models.message
System role: Merge/ordering/de-duplication rules of the Sync Reconciler
"""

from dataclasses import dataclass, field, replace
from enum import Enum

from chatsync.core.events import (
    MessageAppended,
    MessageFailed,
    MessagePersisted,
    MessageRetried,
    MessagesRead,
)
from chatsync.core.exceptions import SyncConflictError
from chatsync.models.message import ChatMessage, MessageSender, MessageStatus


DEFAULT_DEDUP_WINDOW_SECONDS = 5.0


class RecordOrigin(str, Enum):
    """Where a view entry came from."""

    LOCAL = "local"
    AUTHORITATIVE = "authoritative"


@dataclass(frozen=True)
class SnapshotReceived:
    """Full current record set for one session pushed by the feed."""

    session_id: str
    records: tuple[ChatMessage, ...]


ReconcileEvent = (
    MessageAppended
    | MessagePersisted
    | MessageFailed
    | MessageRetried
    | MessagesRead
    | SnapshotReceived
)


@dataclass(frozen=True)
class ViewEntry:
    """One message in the merged view."""

    message: ChatMessage
    origin: RecordOrigin
    arrival: int


@dataclass(frozen=True)
class ConversationState:
    """
    Merged per-session message state.

    Attributes:
        session_id: Session the state belongs to
        entries: Current entries (unordered, see view())
        next_arrival: Arrival counter for tie-breaking
        conflicts: Conflicts detected by the transition that produced this state
    """

    session_id: str
    entries: tuple[ViewEntry, ...] = ()
    next_arrival: int = 0
    conflicts: tuple[SyncConflictError, ...] = field(default=(), compare=False)

    def view(self) -> list[ChatMessage]:
        """Messages sorted by created_at ascending, ties by arrival order."""
        ordered = sorted(self.entries, key=lambda e: (e.message.created_at, e.arrival))
        return [entry.message for entry in ordered]

    def find(self, message_id: str) -> ViewEntry | None:
        for entry in self.entries:
            if entry.message.id == message_id:
                return entry
        return None


def reduce(
    state: ConversationState,
    event: ReconcileEvent,
    dedup_window_seconds: float = DEFAULT_DEDUP_WINDOW_SECONDS,
) -> ConversationState:
    """
    Apply one event to the conversation state.

    Events for other sessions leave the state unchanged.

    Args:
        state: Current state
        event: Local ledger event or feed snapshot
        dedup_window_seconds: Max created_at distance for id-less merges

    Returns:
        ConversationState: New state (conflicts reset unless this event produced some)
    """
    state = replace(state, conflicts=())
    if isinstance(event, SnapshotReceived):
        if event.session_id != state.session_id:
            return state
        return _apply_snapshot(state, event.records, dedup_window_seconds)
    if isinstance(event, MessagesRead):
        if event.session_id != state.session_id:
            return state
        return _apply_read(state, set(event.message_ids))

    message = event.message
    if message.session_id != state.session_id:
        return state
    if isinstance(event, MessageAppended):
        if state.find(message.id) is not None:
            return state
        return _append_local(state, message.model_copy())
    if isinstance(event, (MessagePersisted, MessageRetried)):
        return _update_local(state, message.model_copy())
    if isinstance(event, MessageFailed):
        failed = message.model_copy(update={"status": MessageStatus.ERROR, "error": event.error})
        return _update_local(state, failed)
    return state


def _append_local(state: ConversationState, message: ChatMessage) -> ConversationState:
    entry = ViewEntry(message=message, origin=RecordOrigin.LOCAL, arrival=state.next_arrival)
    return replace(
        state,
        entries=state.entries + (entry,),
        next_arrival=state.next_arrival + 1,
    )


def _update_local(state: ConversationState, message: ChatMessage) -> ConversationState:
    existing = state.find(message.id)
    if existing is None:
        return _append_local(state, message)
    if existing.origin is RecordOrigin.AUTHORITATIVE:
        # authoritative wins
        return state
    entries = tuple(
        replace(entry, message=message) if entry is existing else entry
        for entry in state.entries
    )
    return replace(state, entries=entries)


def _apply_read(state: ConversationState, message_ids: set[str]) -> ConversationState:
    entries = []
    for entry in state.entries:
        message = entry.message
        if (
            message.id in message_ids
            and message.sender is MessageSender.ASSISTANT
            and message.status is MessageStatus.SENT
        ):
            entry = replace(entry, message=message.model_copy(update={"status": MessageStatus.READ}))
        entries.append(entry)
    return replace(state, entries=tuple(entries))


def _is_candidate(local: ChatMessage, record: ChatMessage, window: float) -> bool:
    return (
        local.session_id == record.session_id
        and local.sender is record.sender
        and local.content == record.content
        and abs((local.created_at - record.created_at).total_seconds()) <= window
    )


def _apply_snapshot(
    state: ConversationState,
    records: tuple[ChatMessage, ...],
    window: float,
) -> ConversationState:
    locals_ = [e for e in state.entries if e.origin is RecordOrigin.LOCAL]
    local_by_id = {e.message.id: e for e in locals_}
    previous_authoritative = {
        e.message.id: e for e in state.entries if e.origin is RecordOrigin.AUTHORITATIVE
    }
    record_ids = {r.id for r in records if r.session_id == state.session_id}

    consumed: set[str] = set()
    conflicts: list[SyncConflictError] = []
    next_arrival = state.next_arrival
    merged: list[ViewEntry] = []

    for record in records:
        if record.session_id != state.session_id:
            continue

        if record.id in previous_authoritative:
            arrival = previous_authoritative[record.id].arrival
        elif record.id in local_by_id:
            arrival = local_by_id[record.id].arrival
            consumed.add(record.id)
        else:
            candidates = [
                e for e in locals_
                if e.message.id not in consumed
                and e.message.id not in record_ids
                and _is_candidate(e.message, record, window)
            ]
            if candidates:
                chosen = min(
                    candidates,
                    key=lambda e: (
                        abs((e.message.created_at - record.created_at).total_seconds()),
                        e.arrival,
                    ),
                )
                if len(candidates) > 1:
                    conflicts.append(
                        SyncConflictError(
                            "Ambiguous merge: several local records match one authoritative record",
                            authoritative_id=record.id,
                            candidate_ids=[e.message.id for e in candidates],
                            details={"session_id": state.session_id, "merged_with": chosen.message.id},
                        )
                    )
                consumed.add(chosen.message.id)
                arrival = chosen.arrival
            else:
                arrival = next_arrival
                next_arrival += 1

        merged.append(
            ViewEntry(message=record.model_copy(), origin=RecordOrigin.AUTHORITATIVE, arrival=arrival)
        )

    # unconfirmed local records stay visible until the feed catches up
    for entry in locals_:
        if entry.message.id not in consumed and entry.message.id not in record_ids:
            merged.append(entry)

    return ConversationState(
        session_id=state.session_id,
        entries=tuple(merged),
        next_arrival=next_arrival,
        conflicts=tuple(conflicts),
    )
