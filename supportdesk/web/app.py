"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from supportdesk.collaborators import Collaborators
from supportdesk.config.logging import setup_logging
from supportdesk.config.settings import get_settings
from supportdesk.web.dependencies import get_collaborators
from supportdesk.web.errors import register_exception_handlers
from supportdesk.web.health import check_health
from supportdesk.web.middleware import RequestContextMiddleware
from supportdesk.web.routes.conversations import router as conversations_router
from supportdesk.web.routes.departments import router as departments_router
from supportdesk.web.routes.events import router as events_router
from supportdesk.web.routes.inbox import router as inbox_router
from supportdesk.web.routes.tenancy import router as tenancy_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    if settings.use_database and settings.debug:
        from supportdesk.storage.database import init_db

        await init_db()
    yield
    collaborators = app.dependency_overrides.get(get_collaborators, get_collaborators)()
    await collaborators.cache.backend.close()
    logger.info("app_shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    setup_logging(log_level=settings.log_level, json_output=not settings.debug)

    app = FastAPI(
        title="SupportDesk",
        description="Multi-tenant support inbox with hierarchical authorization",
        version="0.1.0",
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # Middleware: last added runs first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    app.add_middleware(RequestContextMiddleware)

    # Health check (public)
    @app.get("/api/health")
    async def health_check(
        collaborators: Collaborators = Depends(get_collaborators),
    ) -> dict[str, object]:
        return await check_health(collaborators)

    # Every other route declares its own role gate
    for router in (
        tenancy_router,
        conversations_router,
        inbox_router,
        departments_router,
        events_router,
    ):
        app.include_router(router)

    logger.info("app_created")
    return app
