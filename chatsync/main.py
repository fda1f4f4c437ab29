"""
FastAPI application entry point.

Initializes FastAPI app, registers routers, adds middleware, and configures lifespan.

Dependencies: fastapi, chatsync.api, chatsync.observability, chatsync.configs
System role: Application initialization and configuration
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatsync.api import api_router
from chatsync.api.deps import ServiceContainer
from chatsync.api.routers import sync_router
from chatsync.boundary.db.create_tables import create_all_tables
from chatsync.configs import Settings, get_settings
from chatsync.observability.logger import configure_logging
from chatsync.observability.middleware import (
    CorrelationMiddleware,
    RequestLoggingMiddleware,
)

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Settings to build the app with (defaults to get_settings())

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan context manager.

        Builds the service container on startup and closes it on shutdown.
        """
        configure_logging(settings.log_level)
        logger.info("Application startup: logging configured")

        container = ServiceContainer.build(settings)
        if settings.database.auto_create_tables:
            await create_all_tables(container.engine)
        app.state.container = container
        logger.info("Application startup complete: services initialized")

        yield

        logger.info("Application shutdown")
        await container.aclose()

    app = FastAPI(
        title="ChatSync API",
        description="Chat session sync and response delivery engine",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Add observability middleware (added first = last to execute)
    app.add_middleware(CorrelationMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register API routes
    app.include_router(api_router, prefix="/api/v1")
    app.include_router(sync_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chatsync.main:app",
        host="localhost",
        port=8082,
        reload=True,
    )
