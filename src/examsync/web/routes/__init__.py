"""Route handlers for the Web API."""

from examsync.web.routes.health import router as health_router
from examsync.web.routes.history import router as history_router
from examsync.web.routes.sync import router as sync_router

__all__ = [
    "health_router",
    "history_router",
    "sync_router",
]
