"""FastAPI application factory.

UI-facing HTTP surface over the local store and the sync engine.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from examsync import __version__
from examsync.context import AppContext, build_context
from examsync.web.routes import health_router, history_router, sync_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the context if none was injected and run background sync."""
    owns_context = getattr(app.state, "context", None) is None
    if owns_context:
        app.state.context = build_context()

    context: AppContext = app.state.context
    if owns_context and context.config.sync.auto_sync_enabled:
        context.engine.start()
        context.monitor.start()

    logger.info(
        "api_startup",
        db_path=str(context.db.db_path),
        base_url=context.config.api.base_url,
        auto_sync=owns_context and context.config.sync.auto_sync_enabled,
    )
    yield

    if owns_context:
        await context.aclose()
    logger.info("api_shutdown")


def create_app(context: AppContext | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        context: Prebuilt app context (tests inject one); built at startup otherwise

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="ExamSync API",
        description="Offline-first sync and history for exam preparation",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.context = context

    # CORS middleware for web clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(sync_router)
    app.include_router(history_router)

    return app


# Default app instance for uvicorn
app = create_app()
