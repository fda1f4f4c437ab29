"""
Chat service.

Orchestrates one user turn: session bootstrap, optimistic user message,
inference call running alongside persistence, incremental reveal of the
answer and the assistant reply. Gateway failures become a visible,
friendly assistant message instead of an exception.

Dependencies: chatsync.application.services, chatsync.boundary.inference, chatsync.core
System role: Chat orchestration
"""

import asyncio
import logging
from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass

from chatsync.application.services.message_ledger import MessageLedger
from chatsync.application.services.session_registry import SessionRegistry
from chatsync.boundary.inference import ResponseGateway
from chatsync.configs import Settings
from chatsync.core.exceptions import (
    ChatSyncError,
    ConcurrentStreamError,
    GatewayError,
    GatewayTimeoutError,
    InferenceError,
    TransientError,
    ValidationError,
)
from chatsync.core.streaming_revealer import StreamingRevealer
from chatsync.models.chat import Answer, ChatTurnResponse
from chatsync.models.message import ChatMessage, MessageMetadata, MessageSender
from chatsync.models.streaming import StreamEvent, StreamEventType
from chatsync.observability.log_utils import log_exception_with_context, preview_text

logger = logging.getLogger(__name__)

DEFAULT_ERROR_TEXT = "Sorry, I encountered an error. Please try again."

UpdateCallback = Callable[[str], None]
MessageCallback = Callable[[ChatMessage], None]


def friendly_error(error: ChatSyncError) -> tuple[str, str]:
    """
    Map a gateway failure to (error_code, user-facing text).

    Args:
        error: Exception raised by the gateway

    Returns:
        tuple[str, str]: Stable error code and friendly reply text
    """
    if isinstance(error, GatewayTimeoutError):
        return "timeout", "Request timed out. Please try again."
    if isinstance(error, TransientError):
        return "unavailable", "Service temporarily unavailable. Please try again later."
    if isinstance(error, InferenceError):
        return "inference_error", DEFAULT_ERROR_TEXT
    if isinstance(error, ValidationError) and error.details.get("status_code") == 429:
        return "rate_limited", "Too many requests. Please wait a moment and try again."
    return "rejected", DEFAULT_ERROR_TEXT


@dataclass
class _PendingTurn:
    """A turn waiting on the gateway. A stop marks it discarded."""

    discarded: bool = False


class ChatService:
    """
    Chat orchestration service.

    A session gets its own StreamingRevealer (the "conversation surface")
    while a reply is being revealed; it is dropped when the reveal ends. A
    session can run one turn at a time.

    Attributes:
        registry: Session registry
        ledger: Message ledger
        gateway: Response gateway
        settings: Application settings
    """

    def __init__(
        self,
        registry: SessionRegistry,
        ledger: MessageLedger,
        gateway: ResponseGateway,
        settings: Settings,
        revealer_factory: Callable[[], StreamingRevealer] | None = None,
    ) -> None:
        """
        Initialize chat service.

        Args:
            registry: Session registry
            ledger: Message ledger
            gateway: Response gateway
            settings: Application settings (debug flag, reveal cadence)
            revealer_factory: Builds the per-session revealer
        """
        self.registry = registry
        self.ledger = ledger
        self.gateway = gateway
        self.settings = settings
        self._revealer_factory = revealer_factory or (
            lambda: StreamingRevealer(
                interval_seconds=settings.chat.reveal_interval_seconds,
                chars_per_tick=settings.chat.reveal_chars_per_tick,
            )
        )
        self._revealers: dict[str, StreamingRevealer] = {}
        self._pending: dict[str, _PendingTurn] = {}

    def revealer_for(self, session_id: str) -> StreamingRevealer:
        if session_id not in self._revealers:
            self._revealers[session_id] = self._revealer_factory()
        return self._revealers[session_id]

    def is_busy(self, session_id: str) -> bool:
        """True while a turn is waiting on the gateway or revealing."""
        revealer = self._revealers.get(session_id)
        return session_id in self._pending or (revealer is not None and revealer.is_active)

    async def send_message(
        self,
        owner_id: str,
        content: str,
        session_id: str | None = None,
        on_update: UpdateCallback | None = None,
        on_user_message: MessageCallback | None = None,
    ) -> ChatTurnResponse:
        """
        Run one user turn.

        Flow:
        1. Create a session if none is given (first message)
        2. Append the user message (visible before the gateway is called)
        3. Call the gateway while the user message persists
        4. Reveal the answer and append the assistant reply, or append a
           friendly error reply when the gateway failed

        Args:
            owner_id: Owning user id
            content: User message text
            session_id: Existing session, None to start a new chat
            on_update: Receives each revealed prefix
            on_user_message: Receives the optimistic user message

        Returns:
            ChatTurnResponse: User message, assistant reply (None if stopped
            before any text was shown), cache flag and error code

        Raises:
            ValidationError: Empty message
            SessionNotFoundError: Unknown or foreign session
            ConcurrentStreamError: A turn is already running in this session
        """
        text = content.strip()
        if not text:
            raise ValidationError("Message must not be empty", field="message")

        new_session = session_id is None
        if new_session:
            session = await self.registry.create(owner_id)
            session_id = session.id
        else:
            await self.registry.get(owner_id, session_id)

        if self.is_busy(session_id):
            raise ConcurrentStreamError(
                "Streaming already in progress", details={"session_id": session_id}
            )

        turn = _PendingTurn()
        self._pending[session_id] = turn
        try:
            user_message = self.ledger.append(session_id, text, MessageSender.USER)
            if on_user_message is not None:
                on_user_message(user_message)
            logger.info(
                f"{__name__}:send_message - asking '{preview_text(text)}'",
                extra={"session_id": session_id, "new_session": new_session},
            )
            answer, error = await self._ask(text, None if new_session else session_id)
            await self.ledger.wait_persisted(user_message)
        finally:
            self._pending.pop(session_id, None)

        if turn.discarded:
            logger.info(f"{__name__}:send_message - turn stopped before reply, result dropped")
            return ChatTurnResponse(session_id=session_id, user_message=user_message)

        if error is not None:
            return self._error_reply(session_id, user_message, error)

        displayed, partial = await self._reveal(session_id, answer.text, on_update)
        if not displayed:
            return ChatTurnResponse(
                session_id=session_id,
                user_message=user_message,
                from_cache=answer.from_cache,
            )

        assistant_message = self.ledger.append(
            session_id,
            displayed,
            MessageSender.ASSISTANT,
            metadata=MessageMetadata(
                processing_time_ms=answer.processing_time_ms,
                sources=answer.sources,
                from_cache=answer.from_cache,
                partial=partial,
            ),
        )
        return ChatTurnResponse(
            session_id=session_id,
            user_message=user_message,
            assistant_message=assistant_message,
            from_cache=answer.from_cache,
        )

    async def _ask(
        self,
        text: str,
        session_id: str | None,
    ) -> tuple[Answer | None, ChatSyncError | None]:
        try:
            return await self.gateway.send(text, session_id=session_id), None
        except (GatewayError, ValidationError) as e:
            log_exception_with_context(
                logger, "Inference request failed", e, session_id=session_id
            )
            return None, e

    async def _reveal(
        self,
        session_id: str,
        full_text: str,
        on_update: UpdateCallback | None,
    ) -> tuple[str, bool]:
        if not self.settings.chat.reveal_enabled:
            if on_update is not None:
                on_update(full_text)
            return full_text, False

        revealer = self.revealer_for(session_id)
        task = revealer.reveal(full_text, on_update=on_update or (lambda _text: None))
        try:
            displayed = await task.wait()
        finally:
            self._release_revealer(session_id, revealer)
        return displayed, task.cancelled

    def _release_revealer(self, session_id: str, revealer: StreamingRevealer) -> None:
        if self._revealers.get(session_id) is revealer:
            del self._revealers[session_id]

    def revealer_count(self) -> int:
        """Revealers currently held (one per session with a reveal in progress)."""
        return len(self._revealers)

    def _error_reply(
        self,
        session_id: str,
        user_message: ChatMessage,
        error: ChatSyncError,
    ) -> ChatTurnResponse:
        code, reply = friendly_error(error)
        if self.settings.expose_error_details:
            reply = f"{reply}\n\n(Details: {error})"
        assistant_message = self.ledger.append(
            session_id,
            reply,
            MessageSender.ASSISTANT,
            metadata=MessageMetadata(error_code=code),
        )
        return ChatTurnResponse(
            session_id=session_id,
            user_message=user_message,
            assistant_message=assistant_message,
            error_code=code,
        )

    def stop(self, session_id: str) -> bool:
        """
        Stop generating in a session.

        Cancels an active reveal (the partial text becomes the reply), or
        marks a turn still waiting on the gateway as discarded. The HTTP
        call itself is not aborted.

        Returns:
            bool: True if something was stopped
        """
        revealer = self._revealers.get(session_id)
        if revealer is not None and revealer.cancel():
            return True
        turn = self._pending.get(session_id)
        if turn is not None and not turn.discarded:
            turn.discarded = True
            return True
        return False

    async def retry_message(self, owner_id: str, session_id: str, message_id: str) -> ChatMessage:
        """Re-persist a failed message. The question is not re-sent to the gateway."""
        await self.registry.get(owner_id, session_id)
        return self.ledger.retry(session_id, message_id)

    async def stream_message(
        self,
        owner_id: str,
        content: str,
        session_id: str | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """
        Run one turn and yield its progress as stream events.

        Events: user_message, thinking, token (one per revealed prefix),
        then complete or error.

        Args:
            owner_id: Owning user id
            content: User message text
            session_id: Existing session, None to start a new chat

        Yields:
            StreamEvent: Progress events in order
        """
        queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue()
        token_index = 0

        def on_user_message(message: ChatMessage) -> None:
            queue.put_nowait(StreamEvent(
                event=StreamEventType.USER_MESSAGE,
                data=message.model_dump(mode="json"),
            ))
            queue.put_nowait(StreamEvent(
                event=StreamEventType.THINKING,
                data={"session_id": message.session_id},
            ))

        def on_update(prefix: str) -> None:
            nonlocal token_index
            queue.put_nowait(StreamEvent(
                event=StreamEventType.TOKEN,
                data={"text": prefix, "index": token_index},
            ))
            token_index += 1

        turn = asyncio.create_task(
            self.send_message(
                owner_id,
                content,
                session_id=session_id,
                on_update=on_update,
                on_user_message=on_user_message,
            )
        )
        turn.add_done_callback(lambda _t: queue.put_nowait(None))

        observed = False
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event

            observed = True
            try:
                result = await turn
            except ChatSyncError as e:
                yield StreamEvent(
                    event=StreamEventType.ERROR,
                    data={"code": type(e).__name__, "message": e.message},
                )
                return
            yield StreamEvent(event=StreamEventType.COMPLETE, data=result.model_dump(mode="json"))
        finally:
            if not observed:
                # consumer left early; the turn keeps running
                turn.add_done_callback(_report_unobserved_turn)


def _report_unobserved_turn(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        log_exception_with_context(logger, "Turn failed after the stream consumer left", error)
