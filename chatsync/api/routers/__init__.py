"""API routers."""

from .chat import router as chat_router
from .health import router as health_router
from .messages import router as messages_router
from .sessions import router as sessions_router
from .sync import router as sync_router

__all__ = [
    "chat_router",
    "health_router",
    "messages_router",
    "sessions_router",
    "sync_router",
]
