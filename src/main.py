from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config import Settings, get_settings
from src.dependencies import Container
from src.shared.api.middleware import CorrelationIdMiddleware
from src.shared.exceptions import register_exception_handlers  # central mapping
from src.shared.infrastructure.observability.logger import configure_logging, get_logger

from src.broadcast.api.routes import router as campaign_router
from src.messaging.api import conversation_router, event_stream_router, webhook_router
from src.shared.health import router as health_router

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None, run_workers: Optional[bool] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings.LOG_LEVEL, settings.json_logs)
        container = Container.build(settings)
        if settings.DB_AUTO_CREATE:
            await container.database.create_all()
        app.state.container = container
        await container.start(run_workers)
        logger.info("Application started", extra={"app": settings.PROJECT_NAME})
        try:
            yield
        finally:
            await container.shutdown()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.PROJECT_VERSION,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )
    app.add_middleware(CorrelationIdMiddleware)

    # Routers
    app.include_router(health_router)
    app.include_router(webhook_router)
    app.include_router(conversation_router)
    app.include_router(campaign_router)
    app.include_router(event_stream_router)

    # Centralized error handling → {code, message, details?, correlation_id?}
    register_exception_handlers(app)

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "message": f"{settings.PROJECT_NAME} API",
            "docs": "/docs",
            "health": "/_health/db",
        }

    return app


app = create_app()
