"""
Short-lived response cache for first-turn questions.

Maps normalized question text to the full inference answer for a fixed
TTL. Bounded by entry count; stale entries are evicted oldest-first before
any live entry is dropped.

Dependencies: chatsync.models.chat
System role: Response Gateway cache
"""

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from chatsync.models.chat import Answer


CacheKey = tuple[str, bool]


def normalize_question(question: str) -> str:
    """
    Normalize question text for cache lookups.

    Case-folds, trims and collapses inner whitespace so trivially different
    spellings of the same question share one entry.

    Args:
        question: Raw user question

    Returns:
        str: Normalized text
    """
    return " ".join(question.casefold().split())


def make_cache_key(question: str, new_session: bool = True) -> CacheKey:
    """Build the (normalized text, new-session scope) cache key."""
    return normalize_question(question), new_session


@dataclass(frozen=True)
class CacheEntry:
    """Immutable cached answer with its insertion time."""

    answer: Answer
    inserted_at: float


class ResponseCache:
    """
    TTL + size bounded answer cache.

    Entries are immutable once written and writes are last-writer-wins, so
    concurrent readers on the event loop need no locking.

    Attributes:
        ttl_seconds: Maximum age at which an entry is still served
        max_entries: Upper bound on stored entries
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize cache.

        Args:
            ttl_seconds: Entry lifetime in seconds
            max_entries: Maximum number of entries kept
            clock: Monotonic clock in seconds (injectable for tests)
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[CacheKey, CacheEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.inserted_at < self.ttl_seconds

    def get(self, key: CacheKey) -> Answer | None:
        """
        Return the cached answer if present and younger than the TTL.

        Stale entries are removed on access.

        Args:
            key: Cache key from make_cache_key()

        Returns:
            Answer | None: Cached answer or None on miss/expiry
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not self._is_fresh(entry, self._clock()):
            del self._entries[key]
            return None
        return entry.answer

    def set(self, key: CacheKey, answer: Answer) -> None:
        """
        Store an answer, evicting stale then oldest entries when full.

        Args:
            key: Cache key from make_cache_key()
            answer: Answer to cache
        """
        now = self._clock()
        self._entries.pop(key, None)
        if len(self._entries) >= self.max_entries:
            self._evict(now)
        self._entries[key] = CacheEntry(answer=answer, inserted_at=now)

    def _evict(self, now: float) -> None:
        # insertion order == age order, so the scan can stop at the first fresh entry
        while self._entries:
            oldest_key, oldest = next(iter(self._entries.items()))
            if self._is_fresh(oldest, now):
                break
            del self._entries[oldest_key]
        while len(self._entries) >= self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()
