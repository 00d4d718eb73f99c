"""Health check endpoint."""

from fastapi import APIRouter

from examsync import __version__
from examsync.utils.timestamps import utc_now_iso
from examsync.web.schemas import HealthResponse

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check API health status."""
    return HealthResponse(status="ok", version=__version__, timestamp=utc_now_iso())
