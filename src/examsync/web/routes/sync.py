"""Sync endpoints: status, manual sync and pull."""

from fastapi import APIRouter, Request

from examsync.context import AppContext
from examsync.web.schemas import PullResponse, SyncNowRequest, SyncNowResponse, SyncStatusResponse

router = APIRouter(prefix="/api/sync", tags=["sync"])


def _context(request: Request) -> AppContext:
    return request.app.state.context


@router.get("/status", response_model=SyncStatusResponse)
async def get_status(request: Request) -> SyncStatusResponse:
    """Pending/failed counts and the last sync outcome."""
    engine = _context(request).engine
    return SyncStatusResponse.from_status(engine.status())


@router.post("/now", response_model=SyncNowResponse)
async def sync_now(request: Request, body: SyncNowRequest | None = None) -> SyncNowResponse:
    """Run a sync cycle now.

    Returns started=false when a cycle was already running.
    """
    engine = _context(request).engine
    retry_failed = body.retry_failed if body is not None else False

    result = await engine.sync_now(retry_failed=retry_failed)
    await engine.wait_for_background()
    status = SyncStatusResponse.from_status(engine.status())

    if result is None:
        return SyncNowResponse(started=False, status=status)

    return SyncNowResponse(
        started=True,
        synced=len(result.pushed.synced) + len(result.retried.synced),
        failed=len(result.pushed.failed) + len(result.retried.failed),
        over_ceiling=len(result.retried.skipped),
        skipped_reason=result.skipped_reason,
        error=result.error,
        status=status,
    )


@router.post("/pull", response_model=PullResponse)
async def pull(request: Request) -> PullResponse:
    """Pull remote stats, streak and history and merge them locally."""
    report = await _context(request).engine.pull_now()
    return PullResponse.from_report(report)
