"""
Router utility functions.

Contains helper functions extracted from router endpoints to keep them clean.
"""

from chatsync.api.routers.router_utils.errors import http_error, internal_error

__all__ = [
    "http_error",
    "internal_error",
]
