"""
Streaming reveal of an already-complete answer.

Plays a known answer out as increasing-length prefixes at a fixed cadence
to simulate token-by-token arrival. Each reveal runs as a RevealTask that
owns an asyncio task and an explicit cancellation path; one revealer
serves one conversation surface and allows a single active reveal.

Dependencies: asyncio, chatsync.core.exceptions
System role: Streaming Revealer
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator

from chatsync.core.exceptions import ConcurrentStreamError

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[str], None]
TextCallback = Callable[[str], None]
SleepFn = Callable[[float], Awaitable[None]]


def iter_prefixes(full_text: str, chars_per_tick: int) -> Iterator[str]:
    """
    Yield increasing-length prefixes of full_text ending with full_text.

    Args:
        full_text: Complete answer
        chars_per_tick: Characters added per step

    Yields:
        str: Next prefix
    """
    if chars_per_tick < 1:
        raise ValueError("chars_per_tick must be at least 1")
    for end in range(chars_per_tick, len(full_text), chars_per_tick):
        yield full_text[:end]
    if full_text:
        yield full_text


class RevealTask:
    """
    Handle for one running reveal.

    cancel() stops further updates at once and calls the finalize callback
    exactly once with the text displayed at that moment. Natural completion
    calls the complete callback exactly once. wait() returns the final
    displayed text on every exit path.
    """

    def __init__(
        self,
        full_text: str,
        on_update: UpdateCallback,
        on_complete: TextCallback | None,
        on_finalize: TextCallback | None,
        release: Callable[["RevealTask"], None],
    ) -> None:
        self.full_text = full_text
        self.displayed = ""
        self._on_update = on_update
        self._on_complete = on_complete
        self._on_finalize = on_finalize
        self._release = release
        self._cancelled = False
        self._completed = False
        self._task: asyncio.Task | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def completed(self) -> bool:
        return self._completed

    def done(self) -> bool:
        return self._cancelled or self._completed or (self._task is not None and self._task.done())

    def _start(self, interval_seconds: float, chars_per_tick: int, sleep: SleepFn) -> None:
        self._task = asyncio.get_running_loop().create_task(
            self._run(interval_seconds, chars_per_tick, sleep)
        )

    async def _run(self, interval_seconds: float, chars_per_tick: int, sleep: SleepFn) -> None:
        try:
            for prefix in iter_prefixes(self.full_text, chars_per_tick):
                await sleep(interval_seconds)
                if self._cancelled:
                    return
                self.displayed = prefix
                self._on_update(prefix)
            if self._cancelled:
                return
            self._completed = True
            if self._on_complete is not None:
                self._on_complete(self.full_text)
        finally:
            self._release(self)

    def cancel(self) -> bool:
        """
        Stop the reveal and finalize with the text displayed so far.

        Returns:
            bool: True if this call stopped a running reveal
        """
        if self.done():
            return False
        self._cancelled = True
        if self._task is not None:
            self._task.cancel()
        self._release(self)
        logger.info(
            f"{__name__}:cancel - reveal stopped at {len(self.displayed)}/{len(self.full_text)} chars"
        )
        if self._on_finalize is not None:
            self._on_finalize(self.displayed)
        return True

    async def wait(self) -> str:
        """
        Wait until the reveal completes or is cancelled.

        Returns:
            str: Text displayed when the reveal ended
        """
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                if not self._cancelled:
                    raise
        return self.displayed


class StreamingRevealer:
    """
    Incremental revealer for one conversation surface.

    Attributes:
        interval_seconds: Delay between prefix updates
        chars_per_tick: Characters added per update
    """

    def __init__(
        self,
        interval_seconds: float = 0.02,
        chars_per_tick: int = 3,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """
        Initialize revealer.

        Args:
            interval_seconds: Delay between updates (fixed cadence)
            chars_per_tick: Characters revealed per update
            sleep: Awaitable sleep (injectable for tests)
        """
        if chars_per_tick < 1:
            raise ValueError("chars_per_tick must be at least 1")
        self.interval_seconds = interval_seconds
        self.chars_per_tick = chars_per_tick
        self._sleep = sleep
        self._active: RevealTask | None = None

    @property
    def is_active(self) -> bool:
        """True while a reveal is running on this surface."""
        return self._active is not None

    @property
    def active_task(self) -> RevealTask | None:
        return self._active

    def reveal(
        self,
        full_text: str,
        on_update: UpdateCallback,
        on_complete: TextCallback | None = None,
        on_finalize: TextCallback | None = None,
    ) -> RevealTask:
        """
        Start revealing full_text.

        Args:
            full_text: Complete answer to reveal
            on_update: Called with each increasing prefix
            on_complete: Called once with full_text on natural completion
            on_finalize: Called once with the displayed text on cancellation

        Returns:
            RevealTask: Cancellable handle

        Raises:
            ConcurrentStreamError: If a reveal is already active on this surface
        """
        if self._active is not None:
            raise ConcurrentStreamError(
                "A reveal is already active on this conversation surface",
                details={"active_length": len(self._active.full_text)},
            )
        task = RevealTask(
            full_text=full_text,
            on_update=on_update,
            on_complete=on_complete,
            on_finalize=on_finalize,
            release=self._release,
        )
        self._active = task
        task._start(self.interval_seconds, self.chars_per_tick, self._sleep)
        return task

    def cancel(self) -> bool:
        """Cancel the active reveal, if any."""
        if self._active is None:
            return False
        return self._active.cancel()

    def _release(self, task: RevealTask) -> None:
        if self._active is task:
            self._active = None
