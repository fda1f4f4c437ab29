"""
Viewport-driven read-receipt tracking.

A message counts as read once at least `threshold` of its area has been
visible for `dwell_seconds`. Qualifying ids are collected and written to
the store as one batch after `flush_delay_seconds`, so scrolling past many
messages produces a single mark-read call.

Only assistant messages that are not already read are eligible.

Dependencies: asyncio, chatsync.models.message
System role: Read Tracker
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from chatsync.models.message import ChatMessage, MessageSender, MessageStatus
from chatsync.observability.log_utils import log_exception_with_context

logger = logging.getLogger(__name__)

MarkReadFn = Callable[[list[str]], Awaitable[None]]
SleepFn = Callable[[float], Awaitable[None]]

DEFAULT_VISIBILITY_THRESHOLD = 0.5
MAX_FLUSH_BACKOFF_SECONDS = 30.0


class ReadTracker:
    """
    Tracks visibility of rendered messages and batches read receipts.

    Attributes:
        threshold: Minimum visible fraction that counts as "seen"
        dwell_seconds: How long a message must stay visible
        flush_delay_seconds: Batching delay before writing receipts
    """

    def __init__(
        self,
        mark_read: MarkReadFn,
        threshold: float = DEFAULT_VISIBILITY_THRESHOLD,
        dwell_seconds: float = 0.3,
        flush_delay_seconds: float = 1.0,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """
        Initialize tracker.

        Args:
            mark_read: Async callable receiving one batch of message ids
            threshold: Visible-area ratio at or above which a message is seen
            dwell_seconds: Continuous visibility required before queueing
            flush_delay_seconds: Delay before a queued batch is written
            sleep: Awaitable sleep (injectable for tests)
        """
        if not 0.0 < threshold <= 1.0:
            raise ValueError("threshold must be in (0, 1]")
        self.threshold = threshold
        self.dwell_seconds = dwell_seconds
        self.flush_delay_seconds = flush_delay_seconds
        self._mark_read = mark_read
        self._sleep = sleep
        self._observed: dict[str, ChatMessage] = {}
        self._dwell_tasks: dict[str, asyncio.Task] = {}
        self._pending: list[str] = []
        self._flush_task: asyncio.Task | None = None
        self._flush_failures = 0
        self._closed = False

    @staticmethod
    def is_eligible(message: ChatMessage) -> bool:
        """Assistant messages that are not already read."""
        return message.sender is MessageSender.ASSISTANT and message.status is not MessageStatus.READ

    @property
    def pending_ids(self) -> list[str]:
        return list(self._pending)

    def observe(self, message: ChatMessage) -> bool:
        """
        Start watching a rendered message.

        Returns:
            bool: True if the message is eligible and now observed
        """
        if self._closed or not self.is_eligible(message):
            return False
        self._observed[message.id] = message
        return True

    def unobserve(self, message_id: str) -> None:
        """Stop watching a message (unmounted or scrolled out of the list)."""
        self._observed.pop(message_id, None)
        self._cancel_dwell(message_id)

    def set_visibility(self, message_id: str, ratio: float) -> None:
        """
        Report the current visible ratio of an observed message.

        Crossing the threshold starts the dwell timer; dropping below it
        cancels the timer.

        Args:
            message_id: Observed message id
            ratio: Visible fraction of the message area (0.0 - 1.0)
        """
        if self._closed or message_id not in self._observed:
            return
        if ratio >= self.threshold:
            if message_id in self._dwell_tasks or message_id in self._pending:
                return
            self._dwell_tasks[message_id] = asyncio.get_running_loop().create_task(
                self._dwell(message_id)
            )
        else:
            self._cancel_dwell(message_id)

    def _cancel_dwell(self, message_id: str) -> None:
        task = self._dwell_tasks.pop(message_id, None)
        if task is not None and not task.done():
            task.cancel()

    async def _dwell(self, message_id: str) -> None:
        await self._sleep(self.dwell_seconds)
        self._dwell_tasks.pop(message_id, None)
        if message_id not in self._observed or message_id in self._pending:
            return
        self._pending.append(message_id)
        self._schedule_flush()

    def _schedule_flush(self) -> None:
        if self._flush_task is None or self._flush_task.done():
            self._flush_task = asyncio.get_running_loop().create_task(
                self._delayed_flush(self.flush_delay_seconds)
            )

    async def _delayed_flush(self, delay: float) -> None:
        await self._sleep(delay)
        try:
            await self.flush()
        except Exception as e:
            self._flush_failures += 1
            log_exception_with_context(
                logger, "Scheduled read-receipt flush failed", e, attempt=self._flush_failures
            )
        else:
            self._flush_failures = 0
        if self._closed or not self._pending:
            return
        # this task is still running, so _schedule_flush would skip
        next_delay = min(
            self.flush_delay_seconds * 2 ** self._flush_failures, MAX_FLUSH_BACKOFF_SECONDS
        )
        self._flush_task = asyncio.get_running_loop().create_task(self._delayed_flush(next_delay))

    async def flush(self) -> list[str]:
        """
        Write all queued ids as one batch.

        On failure the ids are re-queued and the error propagates. A failed
        scheduled flush is retried with exponential backoff.

        Returns:
            list[str]: Ids written (empty if nothing was queued)
        """
        if not self._pending:
            return []
        batch, self._pending = self._pending, []
        try:
            await self._mark_read(batch)
        except Exception:
            self._pending = batch + [i for i in self._pending if i not in batch]
            raise
        for message_id in batch:
            self._observed.pop(message_id, None)
        logger.info(f"{__name__}:flush - marked {len(batch)} messages read")
        return batch

    async def close(self) -> None:
        """Cancel timers and write any queued receipts."""
        self._closed = True
        for message_id in list(self._dwell_tasks):
            self._cancel_dwell(message_id)
        if self._flush_task is not None and not self._flush_task.done():
            self._flush_task.cancel()
        self._flush_task = None
        await self.flush()
        self._observed.clear()
