"""
Authoritative real-time feed.

Exports:
  - RealtimeFeed: Snapshot publisher for session message sets and owner session lists
"""

from chatsync.boundary.feed.realtime_feed import RealtimeFeed

__all__ = ["RealtimeFeed"]
