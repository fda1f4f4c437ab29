"""
Dependency injection container.

ServiceContainer is the composition root: it builds the engine, HTTP
client, cache, gateway, feed and services once per application (in the
FastAPI lifespan) and the factory functions below hand them to routes.

Dependencies: fastapi, httpx, sqlalchemy, chatsync.application, chatsync.boundary
System role: DI container for service injection
"""

import logging
from functools import partial

import httpx
from fastapi import Depends, Header, HTTPException, Query, WebSocketException, status
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from starlette.requests import HTTPConnection

from chatsync.application.services import (
    ChatService,
    MessageLedger,
    SessionRegistry,
    SyncReconciler,
)
from chatsync.boundary.db.connection import get_async_engine, get_async_session_factory
from chatsync.boundary.feed import RealtimeFeed
from chatsync.boundary.inference import ResponseGateway
from chatsync.configs import Settings, get_settings
from chatsync.core.events import EventChannel
from chatsync.core.read_tracker import ReadTracker
from chatsync.core.response_cache import ResponseCache
from chatsync.observability.performance import LoggingSink, PerformanceRecorder

logger = logging.getLogger(__name__)

OWNER_HEADER = "X-User-Id"


class ServiceContainer:
    """Container for the application's long-lived components."""

    def __init__(
        self,
        settings: Settings,
        engine: AsyncEngine,
        session_factory: async_sessionmaker,
        http_client: httpx.AsyncClient,
        owns_engine: bool = True,
        owns_http_client: bool = True,
    ) -> None:
        """
        Wire every component explicitly.

        Args:
            settings: Application settings
            engine: Async engine
            session_factory: Session factory bound to engine
            http_client: Client used by the gateway
            owns_engine: Dispose the engine in aclose()
            owns_http_client: Close the HTTP client in aclose()
        """
        self.settings = settings
        self.engine = engine
        self.session_factory = session_factory
        self.http_client = http_client
        self._owns_engine = owns_engine
        self._owns_http_client = owns_http_client

        self.events = EventChannel()
        self.feed = RealtimeFeed(session_factory)
        self.recorder = PerformanceRecorder(
            sinks=[LoggingSink(slow_threshold_ms=settings.observability.slow_response_ms)],
            enabled=settings.observability.performance_events_enabled,
        )
        inference = settings.inference
        self.cache = (
            ResponseCache(
                ttl_seconds=inference.cache_ttl_seconds,
                max_entries=inference.cache_max_entries,
            )
            if inference.cache_enabled
            else None
        )
        self.gateway = ResponseGateway(
            client=http_client,
            settings=inference,
            cache=self.cache,
            recorder=self.recorder,
        )
        self.registry = SessionRegistry(session_factory, self.events, self.feed)
        self.ledger = MessageLedger(
            session_factory, self.events, self.feed, page_size=settings.chat.page_size
        )
        self.reconciler = SyncReconciler(
            self.feed,
            self.events,
            dedup_window_seconds=settings.chat.dedup_window_seconds,
            local_source=self.ledger.local_messages,
        )
        self.chat_service = ChatService(self.registry, self.ledger, self.gateway, settings)

    @classmethod
    def build(
        cls,
        settings: Settings,
        engine: AsyncEngine | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "ServiceContainer":
        """
        Build a container, creating the engine and HTTP client if not given.

        Args:
            settings: Application settings
            engine: Existing engine (tests), None to create from settings
            http_client: Existing client (tests), None to create one

        Returns:
            ServiceContainer: Ready-to-use container
        """
        owns_engine = engine is None
        engine = engine or get_async_engine(settings.database)
        owns_http_client = http_client is None
        http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.inference.timeout_seconds)
        )
        return cls(
            settings=settings,
            engine=engine,
            session_factory=get_async_session_factory(engine),
            http_client=http_client,
            owns_engine=owns_engine,
            owns_http_client=owns_http_client,
        )

    def read_tracker(self, session_id: str) -> ReadTracker:
        """New read tracker that writes receipts for one session."""
        chat = self.settings.chat
        return ReadTracker(
            mark_read=partial(self.ledger.mark_read, session_id),
            threshold=chat.read_visibility_threshold,
            dwell_seconds=chat.read_dwell_seconds,
            flush_delay_seconds=chat.read_flush_seconds,
        )

    async def aclose(self) -> None:
        """Finish pending writes and events, then release owned resources."""
        await self.ledger.drain()
        await self.recorder.drain()
        self.ledger.close()
        if self._owns_http_client:
            await self.http_client.aclose()
        if self._owns_engine:
            await self.engine.dispose()
        logger.info(f"{__name__}:aclose - container closed")


def get_container(conn: HTTPConnection) -> ServiceContainer:
    """Container built by the application lifespan."""
    container = getattr(conn.app.state, "container", None)
    if container is None:
        raise RuntimeError("ServiceContainer not initialized (lifespan not run)")
    return container


def get_settings_dependency() -> Settings:
    """Get settings singleton."""
    return get_settings()


def get_owner_id(x_user_id: str | None = Header(default=None, alias=OWNER_HEADER)) -> str:
    """
    Owner id supplied by the identity provider.

    Raises:
        HTTPException(401): Header missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {OWNER_HEADER} header",
        )
    return x_user_id.strip()


def get_ws_owner_id(
    x_user_id: str | None = Header(default=None, alias=OWNER_HEADER),
    user_id: str | None = Query(default=None),
) -> str:
    """Owner id for WebSocket clients, from the header or `?user_id=`."""
    owner_id = (x_user_id or user_id or "").strip()
    if not owner_id:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="Missing owner id")
    return owner_id


def get_session_registry(container: ServiceContainer = Depends(get_container)) -> SessionRegistry:
    return container.registry


def get_message_ledger(container: ServiceContainer = Depends(get_container)) -> MessageLedger:
    return container.ledger


def get_chat_service(container: ServiceContainer = Depends(get_container)) -> ChatService:
    return container.chat_service


def get_sync_reconciler(container: ServiceContainer = Depends(get_container)) -> SyncReconciler:
    return container.reconciler
